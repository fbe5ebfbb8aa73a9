"""Control-plane server that streams unit-circle points over UDP.

Every accepted TCP connection is greeted with `HELLO` and then driven by a
`Session`. A `start` command spawns an `Emitter` thread which sends the
current point to the data-plane endpoint every `TICK` seconds; `stop`
cancels every emitter the session has started so far; `bye` acknowledges
and closes the connection.
"""

from __future__ import annotations

import enum
import logging
import socket
import threading
import time
from typing import Tuple

from circle import config
from circle.cancel import CancelScope
from circle.point import encode_point, position
from circle.protocol import (
    BYE,
    HELLO,
    OK,
    START,
    STOP,
    resolve_udp,
    send_line,
    unknown_command,
)

logger = logging.getLogger(__name__)

# emitter ticker interval, seconds
TICK = 0.007


class Emitter(threading.Thread):
    """Background producer sending one point datagram per tick until its
    scope is cancelled."""

    def __init__(self, addr: Tuple[str, int], scope: CancelScope):
        super().__init__(name=f"emitter-{addr[1]}", daemon=True)
        self.addr = addr
        self.scope = scope
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    def run(self) -> None:
        start = time.monotonic()
        next_tick = start + TICK
        try:
            while not self.scope.wait(max(0.0, next_tick - time.monotonic())):
                data = encode_point(position(time.monotonic() - start))
                try:
                    self.sock.sendto(data, self.addr)
                except OSError:
                    if self.scope.cancelled():
                        return
                    logger.exception("Point transmission to %s:%d failed", *self.addr)
                    return
                next_tick += TICK
                now = time.monotonic()
                if next_tick < now:
                    # fell behind, drop the missed ticks
                    next_tick = now + TICK
        finally:
            self.sock.close()


class State(enum.Enum):
    GREETED = "greeted"
    STREAMING = "streaming"
    CLOSED = "closed"


class Session:
    """Command state machine for one control connection.

    `handle` consumes one trimmed command and returns the reply line. The
    session keeps the cancel scope of every emitter it started; `stop`
    cancels all of them but keeps them in the list, so a repeated `stop`
    does nothing new.
    """

    def __init__(self, data_host: str, data_port: int, parent: CancelScope | None = None):
        self.data_host = data_host
        self.data_port = data_port
        self.scope = CancelScope(parent)
        self.cancels: list[CancelScope] = []
        self.emitters: list[Emitter] = []
        self.state = State.GREETED

    def handle(self, cmd: str) -> str:
        if cmd == START:
            self.start()
            return OK
        if cmd == STOP:
            self.stop()
            return OK
        if cmd == BYE:
            logger.info("Acknowledging goodbye")
            self.state = State.CLOSED
            return OK
        return unknown_command(cmd)

    def start(self) -> None:
        addr = resolve_udp(self.data_host, self.data_port)
        logger.info("Starting point transmission via UDP to %s:%d", *addr)
        scope = self.scope.child()
        emitter = Emitter(addr, scope)
        emitter.start()
        self.cancels.append(scope)
        self.emitters.append(emitter)
        self.state = State.STREAMING

    def stop(self) -> None:
        logger.info("Stopping point transmission")
        for cancel in self.cancels:
            cancel.cancel()

    def active_emitters(self) -> int:
        return sum(1 for e in self.emitters if e.is_alive())

    def idle(self) -> bool:
        """True when every emitter this session started has been cancelled."""
        return all(c.cancelled() for c in self.cancels)


def serve(conn: socket.socket, session: Session) -> None:
    """Run one control connection to completion.

    The session ends on `bye`, on EOF and on any transport error; only the
    latter two cancel its emitters.
    """
    with conn, conn.makefile("rb") as rfile:
        try:
            send_line(conn, HELLO)
        except OSError as e:
            logger.error("Failed to greet client: %s", e)
            session.stop()
            return

        while session.state is not State.CLOSED:
            try:
                raw = rfile.readline()
            except OSError as e:
                logger.error("Control connection read failed: %s", e)
                break
            if not raw:
                logger.info("Control connection closed by peer")
                break
            cmd = raw.decode("ascii", errors="replace").strip()
            try:
                reply = session.handle(cmd)
                send_line(conn, reply)
            except OSError as e:
                logger.error("Session ended on %r: %s", cmd, e)
                break

        if session.state is not State.CLOSED:
            session.stop()


class Server:
    """Accept loop for the control plane.

    Each connection gets its own handler thread. `sessions` lists the
    connections still open. All sessions hang off the server's cancel
    scope, so `shutdown` stops every emitter still running, including those
    a client left streaming with `bye`.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        *,
        data_host: str | None = None,
        data_port: int | None = None,
    ):
        self.host = host if host is not None else config.host()
        self.port = port if port is not None else config.control_port()
        self.data_host = data_host if data_host is not None else self.host
        self.data_port = data_port if data_port is not None else config.data_port()
        self.scope = CancelScope()
        self.sessions: list[Session] = []
        self._lock = threading.Lock()
        self._lsock: socket.socket | None = None

    def bind(self) -> Tuple[str, int]:
        """Open the listening socket and return the bound address."""
        s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        s.bind((self.host, self.port))
        s.listen()
        # wake up periodically to notice shutdown
        s.settimeout(0.2)
        self._lsock = s
        addr = s.getsockname()
        self.port = addr[1]
        logger.info("Server listening on %s:%d", addr[0], addr[1])
        return addr

    def serve_forever(self) -> None:
        if self._lsock is None:
            self.bind()
        try:
            while not self.scope.cancelled():
                try:
                    conn, addr = self._lsock.accept()
                except socket.timeout:
                    continue
                except OSError:
                    if self.scope.cancelled():
                        return
                    raise
                conn.settimeout(None)
                logger.info("New TCP connection from %s:%d, saying hello", addr[0], addr[1])
                session = Session(self.data_host, self.data_port, self.scope)
                with self._lock:
                    self.sessions.append(session)
                threading.Thread(
                    target=self._run_session, args=(conn, session), name=f"session-{addr[1]}", daemon=True
                ).start()
        finally:
            self._lsock.close()

    def _run_session(self, conn: socket.socket, session: Session) -> None:
        try:
            serve(conn, session)
        finally:
            with self._lock:
                self.sessions.remove(session)
            # a session left streaming by `bye` stays under the server scope
            # until shutdown; otherwise detach it now
            if session.idle():
                session.scope.cancel()

    def shutdown(self) -> None:
        self.scope.cancel()


def main(host: str | None = None, port: int | None = None, data_port: int | None = None) -> None:
    server = Server(host, port, data_port=data_port)
    try:
        server.bind()
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Caught keyboard interrupt, exiting")
    finally:
        server.shutdown()


if __name__ == "__main__":
    main()
