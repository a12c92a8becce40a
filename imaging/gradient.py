"""Gradient mask — spatially varying opacity and density for the dither pass.

A gradient is a direction (``angle`` in degrees) plus control points laid out
along that direction.  Each pixel is projected onto the direction, nudged by a
tiny deterministic jitter so the bands between control points do not look
banded, and then cubically interpolated between its neighbouring points.
"""

from __future__ import annotations

import math
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field

# Hash constants for the positional jitter (the classic GLSL one-liner).
_JITTER_X = 12.9898
_JITTER_Y = 78.233
_JITTER_SCALE = 43758.5453123
JITTER_AMOUNT = 0.015


class GradientPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    position: float = Field(ge=0, le=100)
    opacity: float = Field(default=100, ge=0, le=100)
    density: float = Field(default=100, ge=0, le=100)


class GradientSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    angle: float = 0
    points: tuple[GradientPoint, ...] = Field(min_length=1)

    @classmethod
    def flat(cls, opacity: float = 100, density: float = 100) -> GradientSpec:
        """A gradient with the same opacity and density everywhere."""
        return cls(points=(
            GradientPoint(position=0, opacity=opacity, density=density),
            GradientPoint(position=100, opacity=opacity, density=density),
        ))


class GradientMask(NamedTuple):
    opacity: float  # 0..1
    density: float  # 0..1


def jitter(x: float, y: float) -> float:
    v = math.sin(x * _JITTER_X + y * _JITTER_Y) * _JITTER_SCALE
    return (v - math.floor(v)) * JITTER_AMOUNT


def cubic(y0: float, y1: float, y2: float, y3: float, mu: float) -> float:
    """Cubic interpolation between ``y1`` and ``y2``; ``y0``/``y3`` shape the curve."""
    mu2 = mu * mu
    a0 = y3 - y2 - y0 + y1
    a1 = y0 - y1 - a0
    a2 = y2 - y0
    a3 = y1
    return a0 * mu * mu2 + a1 * mu2 + a2 * mu + a3


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def gradient_position(x: float, y: float, width: int, height: int, angle: float) -> float:
    """Project (x, y) onto the gradient direction, in 0..100 plus jitter."""
    theta = math.radians(angle)
    nx = x / width - 0.5
    ny = y / height - 0.5
    position = (nx * math.cos(theta) + ny * math.sin(theta) + 0.5) * 100
    return position + jitter(x, y) * 100


def mask_at(x: float, y: float, width: int, height: int, gradient: GradientSpec) -> GradientMask:
    """Evaluate the gradient at pixel (x, y) of a ``width`` x ``height`` surface."""
    position = gradient_position(x, y, width, height, gradient.angle)

    points = sorted(gradient.points, key=lambda p: p.position)
    n = len(points)
    if n == 1:
        only = points[0]
        return GradientMask(_clamp01(only.opacity / 100), _clamp01(only.density / 100))

    i = 1
    while i < n - 1 and points[i].position < position:
        i += 1

    p0 = points[max(0, i - 2)]
    p1 = points[max(0, i - 1)]
    p2 = points[min(n - 1, i)]
    p3 = points[min(n - 1, i + 1)]

    span = p2.position - p1.position
    mu = _clamp01((position - p1.position) / span) if span else 0.0

    opacity = cubic(p0.opacity, p1.opacity, p2.opacity, p3.opacity, mu)
    density = cubic(p0.density, p1.density, p2.density, p3.density, mu)
    return GradientMask(_clamp01(opacity / 100), _clamp01(density / 100))
