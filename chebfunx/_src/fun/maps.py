# ============================================================================
# Coordinate Maps
# ============================================================================
"""
Changes of variable x = forward(y) from the reference interval y ∈ [-1, 1]
onto a piece's interval.

    linear      x = (b-a)/2 · y + (a+b)/2
    [a, ∞)      x = 15s (y+1)/(1-y) + a
    (-∞, b]     x = 15s (y-1)/(y+1) + b
    (-∞, ∞)     x = 5s · y/(1-y²)
"""

import math
from typing import Callable

import equinox as eqx
import jax.numpy as jnp


class Map(eqx.Module):
    """
    Coordinate map record.

    Attributes:
    -----------
        name : str
            "linear", "unbounded" or a user-chosen name.
        forward : callable
            y ↦ x.
        inverse : callable
            x ↦ y.
        der : callable
            dx/dy as a function of y.
        par : tuple
            Map parameters, interval endpoints first.
    """

    name: str
    forward: Callable
    inverse: Callable
    der: Callable
    par: tuple

    @property
    def is_linear(self) -> bool:
        return self.name == "linear"

    @property
    def ends(self) -> tuple[float, float]:
        return float(self.par[0]), float(self.par[1])


def linear_map(a: float, b: float) -> Map:
    """Affine map of [-1, 1] onto [a, b]."""
    a, b = float(a), float(b)
    half = 0.5 * (b - a)
    mid = 0.5 * (a + b)
    return Map(
        name="linear",
        forward=lambda y: half * y + mid,
        inverse=lambda x: (x - mid) / half,
        der=lambda y: half * jnp.ones_like(jnp.asarray(y, dtype=float)),
        par=(a, b),
    )


def unbounded_map(a: float, b: float, scale: float = 1.0) -> Map:
    """
    Rational map of [-1, 1] onto an interval with one or two infinite ends.

    Parameters:
    -----------
    a, b : float
        Interval endpoints; at least one must be infinite.
    scale : float
        Horizontal stretch s.

    Returns:
    --------
    Map with ``name == "unbounded"`` and ``par == (a, b, s)``.
    """
    a, b, s = float(a), float(b), float(scale)
    if math.isinf(a) and math.isinf(b):
        c = 5.0 * s

        def forward(y):
            y = jnp.asarray(y)
            return c * y / (1.0 - y**2)

        def inverse(x):
            x = jnp.asarray(x, dtype=float)
            xf = jnp.where(jnp.isinf(x), 0.0, x)
            y = 2.0 * xf / (c + jnp.sqrt(c**2 + 4.0 * xf**2))
            return jnp.where(jnp.isinf(x), jnp.sign(x), y)

        def der(y):
            y = jnp.asarray(y)
            return c * (1.0 + y**2) / (1.0 - y**2) ** 2

    elif math.isinf(b):
        c = 15.0 * s

        def forward(y):
            y = jnp.asarray(y)
            return c * (y + 1.0) / (1.0 - y) + a

        def inverse(x):
            x = jnp.asarray(x, dtype=float)
            xf = jnp.where(jnp.isinf(x), 0.0, x)
            y = (xf - a - c) / (xf - a + c)
            return jnp.where(jnp.isinf(x), 1.0, y)

        def der(y):
            y = jnp.asarray(y)
            return 2.0 * c / (1.0 - y) ** 2

    elif math.isinf(a):
        c = 15.0 * s

        def forward(y):
            y = jnp.asarray(y)
            return c * (y - 1.0) / (y + 1.0) + b

        def inverse(x):
            x = jnp.asarray(x, dtype=float)
            xf = jnp.where(jnp.isinf(x), 0.0, x)
            y = (c + xf - b) / (c - xf + b)
            return jnp.where(jnp.isinf(x), -1.0, y)

        def der(y):
            y = jnp.asarray(y)
            return 2.0 * c / (y + 1.0) ** 2

    else:
        raise ValueError(f"unbounded_map needs an infinite endpoint, got [{a}, {b}]")

    return Map(name="unbounded", forward=forward, inverse=inverse, der=der, par=(a, b, s))


def default_map(a: float, b: float) -> Map:
    """Linear map on bounded intervals, rational map otherwise."""
    if math.isinf(a) or math.isinf(b):
        return unbounded_map(a, b)
    return linear_map(a, b)


def make_map(spec, a: float, b: float) -> Map:
    """
    Resolve a map preference for the interval [a, b].

    ``spec`` may be None (default map), a ``Map`` whose endpoints match the
    interval, or a factory ``(a, b) -> Map``.
    """
    if spec is None:
        return default_map(a, b)
    if isinstance(spec, Map):
        if spec.ends == (float(a), float(b)):
            return spec
        raise ValueError(f"Map on {spec.ends} cannot be used on [{a}, {b}]")
    if callable(spec):
        return spec(a, b)
    raise TypeError(f"Unrecognised map specification: {spec!r}")
