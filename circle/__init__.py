"""Point streaming demo: a server traces the unit circle over UDP and a
client draws what it receives into a PNG."""

__version__ = "0.1.0"
