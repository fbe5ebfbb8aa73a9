import socket
import time

import pytest

from circle.point import decode_point
from circle.server import Session, State

HOST = "127.0.0.1"


def _connect(srv):
    conn = socket.create_connection((HOST, srv.port), timeout=2)
    return conn, conn.makefile("rb")


def _ask(conn, rfile, line: bytes) -> bytes:
    conn.sendall(line)
    return rfile.readline()


def _drain(sock: socket.socket) -> int:
    n = 0
    sock.settimeout(0.05)
    try:
        while True:
            sock.recvfrom(1024)
            n += 1
    except socket.timeout:
        return n
    finally:
        sock.settimeout(2.0)


def _count_for(sock: socket.socket, seconds: float) -> int:
    n = 0
    deadline = time.monotonic() + seconds
    sock.settimeout(0.05)
    try:
        while time.monotonic() < deadline:
            try:
                sock.recvfrom(1024)
                n += 1
            except socket.timeout:
                pass
    finally:
        sock.settimeout(2.0)
    return n


def _wait_emitters(session: Session, timeout: float = 1.0):
    for e in session.emitters:
        e.join(timeout)


# ---- state machine, no sockets ----

def test_session_starts_greeted():
    assert Session(HOST, 9).state is State.GREETED


def test_session_unknown_command_echoes():
    s = Session(HOST, 9)
    assert s.handle("foo") == "Unknown command: foo."
    assert s.state is State.GREETED


def test_session_stop_before_start():
    s = Session(HOST, 9)
    assert s.handle("stop") == "OK"
    assert s.state is State.GREETED
    assert s.cancels == []


def test_session_bye_closes():
    s = Session(HOST, 9)
    assert s.handle("bye") == "OK"
    assert s.state is State.CLOSED


def test_session_is_case_sensitive():
    s = Session(HOST, 9)
    assert s.handle("START") == "Unknown command: START."
    assert s.cancels == []


def test_session_start_stop_accumulates(data_sock):
    s = Session(HOST, data_sock.getsockname()[1])
    try:
        assert s.handle("start") == "OK"
        assert s.state is State.STREAMING
        assert s.handle("start") == "OK"
        assert len(s.cancels) == 2
        assert s.handle("stop") == "OK"
        assert s.state is State.STREAMING
        _wait_emitters(s)
        assert s.active_emitters() == 0
        # handles stay, a second stop is a no-op
        assert len(s.cancels) == 2
        assert s.handle("stop") == "OK"
        assert s.handle("start") == "OK"
        assert len(s.cancels) == 3
        assert s.active_emitters() == 1
    finally:
        s.stop()


# ---- control protocol over loopback ----

def test_greeting(server):
    conn, rfile = _connect(server)
    with conn, rfile:
        assert rfile.readline() == b"HELLO\n"


def test_garbage_command_keeps_session_open(server):
    conn, rfile = _connect(server)
    with conn, rfile:
        rfile.readline()
        assert _ask(conn, rfile, b"foo\n") == b"Unknown command: foo.\n"
        assert _ask(conn, rfile, b"bye\n") == b"OK\n"
        # server closed its end, no further reads happen
        assert rfile.readline() == b""


def test_commands_are_trimmed(server):
    conn, rfile = _connect(server)
    with conn, rfile:
        rfile.readline()
        assert _ask(conn, rfile, b"  stop \t\n") == b"OK\n"
        assert _ask(conn, rfile, b" bad cmd \n") == b"Unknown command: bad cmd.\n"
        assert _ask(conn, rfile, b"bye\r\n") == b"OK\n"


def _wait_until(pred, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while not pred():
        if time.monotonic() > deadline:
            return False
        time.sleep(0.01)
    return True


def test_stop_before_start_sends_nothing(server, data_sock):
    conn, rfile = _connect(server)
    with conn, rfile:
        rfile.readline()
        session = server.sessions[0]
        assert _ask(conn, rfile, b"stop\n") == b"OK\n"
        assert _ask(conn, rfile, b"bye\n") == b"OK\n"
    data_sock.settimeout(0.2)
    with pytest.raises(socket.timeout):
        data_sock.recvfrom(1024)
    assert session.emitters == []


def test_start_streams_points_until_stop(server, data_sock):
    conn, rfile = _connect(server)
    with conn, rfile:
        rfile.readline()
        assert _ask(conn, rfile, b"start\n") == b"OK\n"
        data, _ = data_sock.recvfrom(1024)
        p = decode_point(data)
        assert p.x ** 2 + p.y ** 2 == pytest.approx(1.0)

        assert _ask(conn, rfile, b"stop\n") == b"OK\n"
        _wait_emitters(server.sessions[0])
        _drain(data_sock)
        data_sock.settimeout(0.2)
        with pytest.raises(socket.timeout):
            data_sock.recvfrom(1024)
        assert _ask(conn, rfile, b"bye\n") == b"OK\n"


def test_double_start_runs_two_emitters(server, data_sock):
    conn, rfile = _connect(server)
    with conn, rfile:
        rfile.readline()
        session = server.sessions[0]
        assert _ask(conn, rfile, b"start\n") == b"OK\n"
        single = _count_for(data_sock, 0.5)
        assert _ask(conn, rfile, b"start\n") == b"OK\n"
        assert session.active_emitters() == 2
        double = _count_for(data_sock, 0.5)
        assert single > 0
        # two emitters on one port roughly double the datagram rate
        assert double >= 1.5 * single

        assert _ask(conn, rfile, b"stop\n") == b"OK\n"
        _wait_emitters(session)
        assert session.active_emitters() == 0
        _drain(data_sock)
        assert _count_for(data_sock, 0.2) == 0
        assert _ask(conn, rfile, b"bye\n") == b"OK\n"


def test_bye_without_stop_acknowledges(server):
    conn, rfile = _connect(server)
    with conn, rfile:
        rfile.readline()
        session = server.sessions[0]
        assert _ask(conn, rfile, b"start\n") == b"OK\n"
        assert _ask(conn, rfile, b"bye\n") == b"OK\n"
        assert rfile.readline() == b""
    assert session.state is State.CLOSED
    # bye alone leaves the emitter to the server's lifetime
    assert _wait_until(lambda: session not in server.sessions)
    assert session.active_emitters() == 1
    assert session.scope in server.scope.children()
    server.shutdown()
    _wait_emitters(session)
    assert session.active_emitters() == 0


def test_disconnect_without_bye_cancels_emitters(server):
    conn, rfile = _connect(server)
    with conn, rfile:
        rfile.readline()
        session = server.sessions[0]
        assert _ask(conn, rfile, b"start\n") == b"OK\n"
    assert _wait_until(lambda: session.active_emitters() == 0)


def test_finished_sessions_are_released(server):
    for i in range(20):
        conn, rfile = _connect(server)
        with conn, rfile:
            rfile.readline()
            if i % 2:
                assert _ask(conn, rfile, b"start\n") == b"OK\n"
                assert _ask(conn, rfile, b"stop\n") == b"OK\n"
            assert _ask(conn, rfile, b"bye\n") == b"OK\n"
    assert _wait_until(lambda: server.sessions == [])
    assert _wait_until(lambda: server.scope.children() == [])


def test_server_accepts_several_connections(server):
    a, ra = _connect(server)
    b, rb = _connect(server)
    with a, ra, b, rb:
        assert ra.readline() == b"HELLO\n"
        assert rb.readline() == b"HELLO\n"
        assert len(server.sessions) == 2
        assert _ask(b, rb, b"bye\n") == b"OK\n"
        assert _ask(a, ra, b"nope\n") == b"Unknown command: nope.\n"
