"""
Tests for the edge detector.
"""

import warnings

import jax.numpy as jnp
import numpy as np

from chebfunx._src.fun.edges import detect_edge, find_blowup, max_derivatives

# ============================================================================
# Derivative estimates
# ============================================================================


def test_max_derivatives_of_cubic():
    """Finite differences of x³ on [0, 1] estimate 3, 6, 6 and ~0."""
    f = lambda x: x**3
    _, _, maxd = max_derivatives(f, 0.0, 1.0, nder=4, N=50)
    assert abs(maxd[0] - 3.0) < 0.1
    assert abs(maxd[1] - 6.0) < 0.2
    assert abs(maxd[2] - 6.0) < 1e-3
    assert maxd[3] < 1e-3


def test_max_derivatives_non_finite_is_inf():
    f = lambda x: np.where(x > 0.5, np.nan, x)
    _, _, maxd = max_derivatives(f, 0.0, 1.0, nder=2, N=15)
    assert maxd[0] == float("inf")


# ============================================================================
# Edge location
# ============================================================================


def test_detect_edge_jump():
    """sign(x) on [-1, 1] jumps at the origin."""
    edge = detect_edge(jnp.sign, -1.0, 1.0, 1.0, 1.0)
    assert edge is not None
    assert abs(edge) < 1e-10, f"edge = {edge}"


def test_detect_edge_jump_is_silent():
    """Bisection down to adjacent floats raises no floating-point warnings."""
    with warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        edge = detect_edge(np.sign, -1.0, 1.0, 1.0, 1.0)
    assert abs(edge) < 1e-10


def test_detect_edge_kink():
    """|x| has a derivative jump at the origin."""
    edge = detect_edge(jnp.abs, -1.0, 1.0, 1.0, 1.0)
    assert edge is not None
    assert abs(edge) < 1e-8, f"edge = {edge}"


def test_detect_edge_smooth_returns_none():
    """A smooth function has no derivative growth under zooming."""
    assert detect_edge(jnp.sin, -1.0, 1.0, 1.0, 1.0) is None


def test_detect_edge_pole():
    """A simple pole at 0.25 is found by the blow-up search."""
    edge = detect_edge(lambda x: 1.0 / (x - 0.25), -1.0, 2.0, 1.5, 1.0)
    assert edge is not None
    assert abs(edge - 0.25) < 1e-6, f"edge = {edge}"


def test_detect_edge_nan_region():
    """NaN samples count as an infinite derivative; the edge brackets the NaN boundary."""
    edge = detect_edge(lambda x: jnp.where(x > 0.4, jnp.nan, x), -1.0, 1.0, 1.0, 1.0)
    assert edge is not None
    assert abs(edge - 0.4) < 0.1, f"edge = {edge}"


def test_find_blowup_below_threshold():
    """A bounded bump is not reported as a blow-up."""
    f = lambda x: 1.0 / (1.0 + 25.0 * np.atleast_1d(x) ** 2)
    assert find_blowup(f, -1.0, 1.0, 1.0, 1.0) is None
