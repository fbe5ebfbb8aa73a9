"""Client that asks the server for a point stream and sketches it.

The driver opens the control connection, waits for `HELLO`, binds the
data-plane UDP port and starts two threads linked by a one-slot queue:

- `Receiver` reads point datagrams and forwards them on the queue.
- `Sketcher` draws a segment from the previous point to each new one and
  saves the canvas as a PNG when it finishes.

After `start` is acknowledged the driver lets the sketch run for the session
duration, cancels both threads, waits for the image to be written, then
sends `stop` and `bye`.
"""

from __future__ import annotations

import logging
import queue
import socket
import threading

from circle import config
from circle.cancel import CancelScope
from circle.canvas import Canvas
from circle.point import Point, decode_point
from circle.protocol import BYE, HELLO, START, STOP, expect_reply, request, resolve_udp

logger = logging.getLogger(__name__)

# per-read deadline on the data plane, seconds
READ_DEADLINE = 30.0
# how often blocked queue operations look at their cancel scope, seconds
POLL = 0.05
# how long the driver waits for the receiver after cancelling it, seconds
RECEIVER_JOIN = 1.0

# end-of-stream marker put on the point queue
CLOSED = object()


class ReceiverError(Exception):
    """The datagram receiver stopped on a read or parse failure."""


class SketchError(Exception):
    """The sketcher could not draw or save the image."""


class Receiver(threading.Thread):
    def __init__(
        self,
        sock: socket.socket,
        ch: queue.Queue,
        scope: CancelScope,
        deadline: float = READ_DEADLINE,
    ):
        super().__init__(name="receiver", daemon=True)
        self.sock = sock
        self.ch = ch
        self.scope = scope
        self.deadline = deadline
        self.error: Exception | None = None

    def run(self) -> None:
        self.sock.settimeout(self.deadline)
        try:
            while True:
                try:
                    data, _ = self.sock.recvfrom(1024)
                except OSError as e:
                    if self.scope.cancelled():
                        return
                    logger.error("Datagram read failed: %s", e)
                    self.error = e
                    return
                if data:
                    try:
                        p = decode_point(data)
                    except ValueError as e:
                        logger.error("Bad point record %r: %s", data, e)
                        self.error = e
                        return
                    if not self._forward(p):
                        return
                if self.scope.cancelled():
                    return
        finally:
            self._close()

    def _forward(self, item) -> bool:
        while not self.scope.cancelled():
            try:
                self.ch.put(item, timeout=POLL)
                return True
            except queue.Full:
                continue
        return False

    def _close(self) -> None:
        try:
            self.ch.put_nowait(CLOSED)
        except queue.Full:
            self._forward(CLOSED)


class Sketcher(threading.Thread):
    """Draws the received points as one polyline, in arrival order."""

    def __init__(
        self,
        ch: queue.Queue,
        scope: CancelScope,
        output: str,
        canvas: Canvas | None = None,
    ):
        super().__init__(name="sketcher", daemon=True)
        self.ch = ch
        self.scope = scope
        self.output = output
        self.canvas = canvas if canvas is not None else Canvas()
        self.last: Point | None = None
        self.drawn = 0
        self.error: Exception | None = None

    def run(self) -> None:
        try:
            while not self.scope.cancelled():
                try:
                    item = self.ch.get(timeout=POLL)
                except queue.Empty:
                    continue
                if item is CLOSED:
                    logger.info("Channel closed")
                    return
                try:
                    self.draw(item)
                except Exception as e:
                    # handed to the driver, which raises it after the join
                    logger.exception("Failed to draw %r", item)
                    self.error = e
                    return
        finally:
            try:
                self.canvas.save(self.output)
            except OSError as e:
                logger.error("Failed to save sketch to %s: %s", self.output, e)
                if self.error is None:
                    self.error = e

    def draw(self, p: Point) -> None:
        if self.last is not None:
            self.canvas.line(self.last, p)
            self.drawn += 1
        self.last = p


def run(
    output: str,
    host: str | None = None,
    control_port: int | None = None,
    data_port: int | None = None,
    duration: float | None = None,
) -> None:
    """Run one client session, writing the sketch to `output`.

    Raises ProtocolError on an unexpected reply, ReceiverError when the data
    plane failed, SketchError when drawing or saving failed, and OSError for
    transport failures.
    """
    if host is None:
        host = config.host()
    if control_port is None:
        control_port = config.control_port()
    if data_port is None:
        data_port = config.data_port()
    if duration is None:
        duration = config.session_seconds()

    logger.info("Starting TCP connection with server at %s:%d", host, control_port)
    with socket.create_connection((host, control_port)) as conn, conn.makefile("rb") as rfile:
        expect_reply(rfile, HELLO)

        addr = resolve_udp(host, data_port)
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as udp:
            udp.bind(addr)
            logger.info("Listening for UDP packets on %s:%d", *addr)

            scope = CancelScope()
            ch: queue.Queue = queue.Queue(maxsize=1)
            receiver = Receiver(udp, ch, scope.child())
            sketcher = Sketcher(ch, scope.child(), output)
            sketcher.start()
            receiver.start()

            try:
                logger.info("Telling server to start transmitting points")
                request(conn, rfile, START)
                # returns early only if the receiver closed the channel
                sketcher.join(duration)
            finally:
                scope.cancel()
                sketcher.join()
                # an empty datagram to ourselves wakes a receiver blocked in recvfrom
                udp.sendto(b"", udp.getsockname())
                receiver.join(RECEIVER_JOIN)
                if receiver.is_alive():
                    logger.warning("Receiver did not stop within %.1fs", RECEIVER_JOIN)

            if receiver.error is not None:
                raise ReceiverError(f"receiver stopped: {receiver.error}") from receiver.error
            if sketcher.error is not None:
                raise SketchError(f"sketch failed: {sketcher.error}") from sketcher.error
            logger.info("Drew %d segments", sketcher.drawn)

        logger.info("Telling server to stop transmitting points")
        request(conn, rfile, STOP)
        logger.info("Saying goodbye to server")
        request(conn, rfile, BYE)
