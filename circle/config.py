"""Runtime configuration read from the environment.

Values come from `os.getenv` after `load_dotenv()` has pulled in an optional
`.env` file. Every value has a default matching the fixed endpoints of the
protocol, so nothing has to be configured for the demo to run.
"""

import logging
import os

from dotenv import load_dotenv

load_dotenv()  # load .env file if present


DEFAULT_HOST = "localhost"
DEFAULT_CONTROL_PORT = 5000
DEFAULT_DATA_PORT = 5001
DEFAULT_SESSION_SECONDS = 10.0


def host() -> str:
    return os.getenv("CIRCLE_HOST", DEFAULT_HOST)


def control_port() -> int:
    return int(os.getenv("CIRCLE_CONTROL_PORT", str(DEFAULT_CONTROL_PORT)))


def data_port() -> int:
    return int(os.getenv("CIRCLE_DATA_PORT", str(DEFAULT_DATA_PORT)))


def session_seconds() -> float:
    return float(os.getenv("CIRCLE_SESSION_SECONDS", str(DEFAULT_SESSION_SECONDS)))


def log_level() -> str:
    """Return the configured logging level name.

    Raises ValueError for a name the logging module does not know.
    """
    level = os.getenv("CIRCLE_LOG_LEVEL", "INFO").upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"unknown CIRCLE_LOG_LEVEL {level!r}")
    return level
