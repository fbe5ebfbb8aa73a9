"""Points on the unit circle and their data-plane encoding.

Each datagram carries exactly one JSON object with two keys, `X` and `Y`:

    {"X": 0.9997, "Y": 0.0246}

There is no other framing, no sequence number and no acknowledgement.
"""

from __future__ import annotations

import json
import math
from typing import NamedTuple

# seconds per revolution
PERIOD = 1.0


class Point(NamedTuple):
    x: float
    y: float


def position(elapsed: float) -> Point:
    """Return the point on the unit circle `elapsed` seconds into a session.

    The angle advances one full turn every `PERIOD` seconds, starting at
    (1, 0) for `elapsed == 0`.
    """
    radians = (elapsed / PERIOD) * 2.0 * math.pi
    return Point(math.cos(radians), math.sin(radians))


def encode_point(p: Point) -> bytes:
    # allow_nan=False: a non-finite coordinate is a bug, let ValueError escape
    return json.dumps({"X": p.x, "Y": p.y}, allow_nan=False).encode()


def _reject_constant(name: str):
    raise ValueError(f"non-finite value {name} in point record")


def decode_point(data: bytes) -> Point:
    """Parse a datagram payload into a Point.

    Raises `ValueError` (json.JSONDecodeError included) when the payload is
    not a JSON object with finite numeric `X` and `Y` keys.
    """
    obj = json.loads(data.decode(), parse_constant=_reject_constant)
    if not isinstance(obj, dict):
        raise ValueError(f"point record must be an object, got {type(obj).__name__}")
    try:
        p = Point(float(obj["X"]), float(obj["Y"]))
    except (KeyError, TypeError) as e:
        raise ValueError(f"malformed point record: {obj!r}") from e
    # overflowing literals such as 1e999 still parse to inf
    if not (math.isfinite(p.x) and math.isfinite(p.y)):
        raise ValueError(f"non-finite point record: {obj!r}")
    return p
