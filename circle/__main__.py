"""Command-line entry point.

Usage:
    python -m circle server
    python -m circle client --output circle.png
"""

import argparse
import logging
import sys

from circle import client, config, server
from circle.client import ReceiverError, SketchError
from circle.protocol import ProtocolError

logger = logging.getLogger("circle")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="circle", description="Stream unit-circle points and sketch them")
    sub = p.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--host", default=None, help="Host for both planes (default: CIRCLE_HOST or localhost)")
    common.add_argument("--control-port", type=int, default=None, help="Control-plane TCP port")
    common.add_argument("--data-port", type=int, default=None, help="Data-plane UDP port")

    sub.add_parser("server", parents=[common], help="Serve points to clients")

    c = sub.add_parser("client", parents=[common], help="Receive point data and draw it")
    c.add_argument("-o", "--output", required=True, help="Output PNG file")
    c.add_argument("--duration", type=float, default=None, help="Seconds to sketch for (default: 10)")
    return p


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        level = config.log_level()
    except ValueError as e:
        parser.error(str(e))
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.command == "server":
        try:
            server.main(args.host, args.control_port, data_port=args.data_port)
        except OSError as e:
            logger.error("Server failed: %s", e)
            return 1
        return 0

    try:
        client.run(
            args.output,
            host=args.host,
            control_port=args.control_port,
            data_port=args.data_port,
            duration=args.duration,
        )
    except (ProtocolError, ReceiverError, SketchError, OSError) as e:
        logger.error("Client failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
