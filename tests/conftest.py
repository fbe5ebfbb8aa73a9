import socket
import threading

import pytest

from circle.server import Server

HOST = "127.0.0.1"


def free_port(kind: int = socket.SOCK_STREAM) -> int:
    with socket.socket(socket.AF_INET, kind) as s:
        s.bind((HOST, 0))
        return s.getsockname()[1]


@pytest.fixture
def data_sock():
    """A bound UDP socket standing in for the client's data-plane port."""
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    s.bind((HOST, 0))
    s.settimeout(2.0)
    yield s
    s.close()


@pytest.fixture
def server(data_sock):
    srv = Server(HOST, 0, data_port=data_sock.getsockname()[1])
    srv.bind()
    t = threading.Thread(target=srv.serve_forever, daemon=True)
    t.start()
    yield srv
    srv.shutdown()
    t.join(timeout=2)
