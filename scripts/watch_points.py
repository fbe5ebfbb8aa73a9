#!/usr/bin/env python3
"""Print point records arriving on the data-plane port.

Binds the UDP port the server streams to and prints every decoded point,
with a running count. Run it instead of the client to watch an emitter
without drawing anything (start the stream from another control session).

Usage: python scripts/watch_points.py [--port 5001] [--count 100]
"""

import argparse
import math
import pathlib
import socket
import sys

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1]))

from circle import config
from circle.point import decode_point
from circle.protocol import resolve_udp


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--host", default=None, help="Host to bind (default: CIRCLE_HOST or localhost)")
    p.add_argument("--port", type=int, default=None, help="UDP port to bind")
    p.add_argument("--count", type=int, default=0, help="Stop after this many points (0 = forever)")
    args = p.parse_args()

    addr = resolve_udp(args.host or config.host(), args.port or config.data_port())
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        s.bind(addr)
        print(f"Listening for points on {addr[0]}:{addr[1]}")
        n = 0
        try:
            while args.count == 0 or n < args.count:
                data, _ = s.recvfrom(1024)
                pt = decode_point(data)
                n += 1
                angle = math.degrees(math.atan2(pt.y, pt.x))
                print(f"#{n:<6} x={pt.x:+.4f} y={pt.y:+.4f} angle={angle:+7.2f}")
        except KeyboardInterrupt:
            pass
    print(f"Received {n} points")


if __name__ == "__main__":
    main()
