"""Control-plane framing shared by the server and the client.

The control protocol is ASCII, line framed with a single LF. The server
greets with `HELLO`; the client sends `start`, `stop` or `bye` and gets
exactly one reply line back for each: `OK`, or `Unknown command: <cmd>.`
for anything it does not recognise.
"""

from __future__ import annotations

import socket
from typing import BinaryIO

HELLO = "HELLO"
OK = "OK"

START = "start"
STOP = "stop"
BYE = "bye"


class ProtocolError(Exception):
    """The peer answered with something other than the expected line."""

    def __init__(self, expected: str, got: str):
        super().__init__(f"expected {expected!r}, server replied {got!r}")
        self.expected = expected
        self.got = got


def unknown_command(cmd: str) -> str:
    return f"Unknown command: {cmd}."


def send_line(conn: socket.socket, line: str) -> None:
    conn.sendall(line.encode("ascii", errors="replace") + b"\n")


def recv_line(rfile: BinaryIO) -> str:
    """Read one LF-terminated line and return it with surrounding whitespace
    removed. Raises ConnectionError if the peer closed the stream."""
    raw = rfile.readline()
    if not raw:
        raise ConnectionError("connection closed")
    return raw.decode("ascii", errors="replace").strip()


def expect_reply(rfile: BinaryIO, expected: str) -> None:
    reply = recv_line(rfile)
    if reply != expected:
        raise ProtocolError(expected, reply)


def request(conn: socket.socket, rfile: BinaryIO, cmd: str) -> None:
    """Send `cmd` and require an `OK` reply before returning."""
    send_line(conn, cmd)
    expect_reply(rfile, OK)


def resolve_udp(host: str, port: int) -> tuple[str, int]:
    """Resolve `host:port` to an IPv4 datagram address."""
    infos = socket.getaddrinfo(host, port, socket.AF_INET, socket.SOCK_DGRAM)
    return infos[0][4]
