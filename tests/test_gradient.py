"""Tests for imaging.gradient — the dither's opacity/density mask."""

from __future__ import annotations

import math

import pytest
from pydantic import ValidationError

from imaging.gradient import (
    JITTER_AMOUNT,
    GradientMask,
    GradientPoint,
    GradientSpec,
    cubic,
    gradient_position,
    jitter,
    mask_at,
)


def _ramp(angle: float = 0) -> GradientSpec:
    return GradientSpec(angle=angle, points=(
        GradientPoint(position=0, opacity=0, density=100),
        GradientPoint(position=100, opacity=100, density=0),
    ))


class TestJitter:
    @pytest.mark.parametrize(("x", "y"), [(0, 0), (3, 7), (640, 480), (12.5, 0.25)])
    def test_small_and_non_negative(self, x: float, y: float) -> None:
        assert 0 <= jitter(x, y) < JITTER_AMOUNT

    def test_origin_has_no_jitter(self) -> None:
        assert jitter(0, 0) == 0


class TestCubic:
    def test_endpoints(self) -> None:
        assert cubic(10, 20, 30, 40, 0) == 20
        assert cubic(10, 20, 30, 40, 1) == 30

    def test_constant_stays_constant(self) -> None:
        for mu in (0, 0.3, 0.7, 1):
            assert cubic(100, 100, 100, 100, mu) == 100


class TestMaskAt:
    def test_flat_gradient_is_full_everywhere(self) -> None:
        flat = GradientSpec.flat()
        for x, y in [(0, 0), (13, 57), (99, 99), (250, 3)]:
            assert mask_at(x, y, 100, 100, flat) == GradientMask(1.0, 1.0)

    def test_flat_preset_values(self) -> None:
        mask = mask_at(40, 20, 200, 100, GradientSpec.flat(opacity=46, density=100))
        assert mask.opacity == pytest.approx(0.46)
        assert mask.density == pytest.approx(1.0)

    def test_idempotent(self) -> None:
        spec = _ramp(angle=30)
        assert mask_at(17, 42, 320, 200, spec) == mask_at(17, 42, 320, 200, spec)

    def test_horizontal_ramp(self) -> None:
        spec = _ramp()
        left = mask_at(0, 50, 100, 100, spec)
        middle = mask_at(50, 50, 100, 100, spec)
        right = mask_at(99, 50, 100, 100, spec)
        assert left.opacity < middle.opacity < right.opacity
        assert left.density > middle.density > right.density
        assert middle.opacity == pytest.approx(0.5, abs=0.05)

    def test_vertical_ramp_ignores_x(self) -> None:
        spec = _ramp(angle=90)
        top = mask_at(50, 0, 100, 100, spec)
        bottom = mask_at(50, 99, 100, 100, spec)
        assert top.opacity < bottom.opacity

    def test_values_clamped_to_unit_interval(self) -> None:
        # Overshoot from the cubic between sharply changing points
        spec = GradientSpec(points=(
            GradientPoint(position=0, opacity=0),
            GradientPoint(position=40, opacity=100),
            GradientPoint(position=60, opacity=0),
            GradientPoint(position=100, opacity=100),
        ))
        for x in range(0, 100, 3):
            mask = mask_at(x, 10, 100, 100, spec)
            assert 0 <= mask.opacity <= 1
            assert 0 <= mask.density <= 1

    def test_points_are_sorted(self) -> None:
        forward = _ramp()
        backward = GradientSpec(points=tuple(reversed(forward.points)))
        assert mask_at(30, 30, 100, 100, forward) == mask_at(30, 30, 100, 100, backward)

    def test_single_point(self) -> None:
        spec = GradientSpec(points=(GradientPoint(position=50, opacity=25, density=75),))
        assert mask_at(5, 5, 10, 10, spec) == GradientMask(0.25, 0.75)

    def test_empty_points_rejected(self) -> None:
        with pytest.raises(ValidationError):
            GradientSpec(points=())


class TestGradientPosition:
    def test_centre_projects_to_fifty(self) -> None:
        # jitter(50, 50) is below 0.015, times 100
        position = gradient_position(50, 50, 100, 100, angle=0)
        assert 50 <= position < 50 + JITTER_AMOUNT * 100

    def test_angle_rotates_axis(self) -> None:
        position = gradient_position(0, 100, 100, 100, angle=90) - jitter(0, 100) * 100
        assert position == pytest.approx(100)
        assert math.isfinite(position)
