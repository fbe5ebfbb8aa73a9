#!/usr/bin/env python3
"""Run server and client in-process for one short sketch session.

This starts the server in a background thread, then runs the client against
it and writes the sketch to the given PNG path. Useful for capturing the
whole exchange in one terminal.

Usage: python scripts/run_demo.py [--output circle.png] [--duration 2]
"""

import argparse
import logging
import pathlib
import sys
import threading

# ensure project root on sys.path when run as script
sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1]))

from circle import client, config, server


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--output", default="circle.png", help="Output PNG file")
    p.add_argument("--duration", type=float, default=2.0, help="Seconds to sketch for")
    p.add_argument("--control-port", type=int, default=None, help="Control-plane TCP port")
    p.add_argument("--data-port", type=int, default=None, help="Data-plane UDP port")
    args = p.parse_args()
    try:
        level = config.log_level()
    except ValueError as e:
        p.error(str(e))

    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    srv = server.Server(port=args.control_port, data_port=args.data_port)
    _, port = srv.bind()
    t = threading.Thread(target=srv.serve_forever, daemon=True)
    t.start()
    try:
        client.run(args.output, control_port=port, data_port=srv.data_port, duration=args.duration)
    finally:
        srv.shutdown()
        t.join(timeout=2)
    print("Sketch written to", args.output)


if __name__ == "__main__":
    main()
