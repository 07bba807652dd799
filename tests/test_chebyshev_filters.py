"""
Tests for the Chebyshev tail filter.
"""

import jax.numpy as jnp

from chebfunx._src.chebyshev.filters import tail_filter
from chebfunx._src.chebyshev.grid import chebpts, vals_to_coeffs

# ============================================================================
# Tail filter
# ============================================================================


def test_tail_filter_shape_preserved():
    v = jnp.sin(chebpts(17))
    assert tail_filter(v).shape == (17,)


def test_tail_filter_smooth_unchanged():
    """Resolved content is kept; only coefficients below tol can move."""
    x = chebpts(33)
    v = jnp.exp(x) * jnp.cos(2 * x)
    out = tail_filter(v, 1e-8)
    assert jnp.allclose(out, v, atol=1e-7), f"max change = {jnp.abs(out - v).max()}"


def test_tail_filter_removes_noise():
    """Trailing roundoff on a quadratic is zeroed."""
    x = chebpts(17)
    noise = 1e-12 * jnp.cos(16 * jnp.arccos(x)) + 1e-12 * jnp.cos(11 * jnp.arccos(x))
    out = tail_filter(x**2 + noise, 1e-8)
    c = vals_to_coeffs(out)
    assert jnp.all(jnp.abs(c[3:]) < 1e-14), f"tail = {c[3:]}"
    assert jnp.allclose(out, x**2, atol=1e-14)


def test_tail_filter_short_vector_unchanged():
    v = jnp.asarray([1.0, -1.0])
    assert jnp.array_equal(tail_filter(v), v)


def test_tail_filter_zero_vector():
    v = jnp.zeros(9)
    assert jnp.array_equal(tail_filter(v), v)

