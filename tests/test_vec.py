"""Tests for terrarium.vec."""
from __future__ import annotations

import math

import pytest

from terrarium import vec


def test_lerp() -> None:
    assert vec.lerp((0.0, 0.0), (2.0, 4.0), 0.25) == (0.5, 1.0)


def test_lerp_endpoints() -> None:
    a, b = (1.0, -1.0), (3.0, 5.0)
    assert vec.lerp(a, b, 0.0) == a
    assert vec.lerp(a, b, 1.0) == b


def test_from_angle_length() -> None:
    v = vec.from_angle(math.pi / 3, 2.5)
    assert vec.magnitude(v) == pytest.approx(2.5)


def test_from_angle_unit_default() -> None:
    """Without a length, from_angle yields a unit direction."""
    assert vec.from_angle(0.0) == pytest.approx((1.0, 0.0))
