"""2D vector helpers operating on tuple[float, float]."""
from __future__ import annotations

import math

Vec2 = tuple[float, float]


def lerp(a: Vec2, b: Vec2, t: float) -> Vec2:
    return (a[0] + (b[0] - a[0]) * t, a[1] + (b[1] - a[1]) * t)


def magnitude(v: Vec2) -> float:
    return math.hypot(v[0], v[1])


def from_angle(radians: float, length: float = 1.0) -> Vec2:
    return (math.cos(radians) * length, math.sin(radians) * length)
