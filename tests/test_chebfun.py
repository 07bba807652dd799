"""
Tests for Chebfun: evaluation, calculus through breakpoints, algebra and
point values.
"""

import jax.numpy as jnp
import numpy as np
import pytest

from chebfunx import Chebfun, DomainMismatchError

# ============================================================================
# Construction and evaluation
# ============================================================================


def test_chebfun_sin_integral():
    """∫₀^π sin x dx = 2."""
    f = Chebfun(jnp.sin, (0.0, jnp.pi))
    assert jnp.isclose(f.sum(), 2.0, atol=1e-13), f"sum = {f.sum()}"


def test_chebfun_evaluation_matches_function():
    g = lambda x: jnp.exp(x) * jnp.sin(5 * x)
    f = Chebfun(g, (-1.0, 2.0))
    x = jnp.asarray([-0.97, -0.3, 0.0, 0.61, 1.4, 1.999])
    assert jnp.allclose(f(x), g(x), atol=1e-12)


def test_chebfun_outside_domain_is_nan():
    f = Chebfun(jnp.cos, (0.0, 1.0))
    assert bool(jnp.isnan(f(jnp.asarray(1.5))))


def test_chebfun_constant_and_identity():
    c = Chebfun(3.0, (0.0, 2.0))
    x = Chebfun.identity((0.0, 2.0))
    assert jnp.allclose(c(jnp.asarray([0.5, 1.5])), 3.0)
    assert jnp.isclose(x.sum(), 2.0, atol=1e-14)
    assert len(x) == 2


# ============================================================================
# Calculus
# ============================================================================


def test_chebfun_diff_of_cumsum():
    """(∫f)' = f for a smooth function."""
    f = Chebfun(lambda x: jnp.exp(x) * jnp.sin(2 * x), (-1.0, 2.0))
    g = f.cumsum().diff()
    x = jnp.linspace(-0.9, 1.9, 9)
    assert jnp.allclose(g(x), f(x), atol=1e-10)


def test_chebfun_cumsum_of_diff():
    """∫(f') = f - f(a)."""
    f = Chebfun(lambda x: jnp.cos(3 * x) + x**2, (0.0, 2.0))
    g = f.diff().cumsum()
    x = jnp.linspace(0.1, 1.9, 9)
    assert jnp.allclose(g(x), f(x) - f(jnp.asarray(0.0)), atol=1e-11)


def test_chebfun_partial_sum():
    f = Chebfun(lambda x: x**2, (0.0, 3.0))
    assert jnp.isclose(f.sum(1.0, 2.0), 7.0 / 3.0, atol=1e-13)


def test_chebfun_delta_from_jump():
    """Differentiating sign(x) leaves a delta of weight 2 at the origin."""
    h = Chebfun(jnp.sign, (-1.0, 1.0), splitting=True)
    dh = h.diff()
    assert dh.imps.shape[0] == 2
    assert jnp.isclose(dh.imps[1, 1], 2.0)
    assert jnp.isclose(dh.sum(), 2.0)
    assert dh(jnp.asarray(h.ends[1])) == jnp.inf


def test_chebfun_cumsum_through_delta():
    """∫ of sign' recovers sign(x) + 1 on both sides of the jump."""
    h = Chebfun(jnp.sign, (-1.0, 1.0), splitting=True)
    H = h.diff().cumsum()
    assert jnp.allclose(H(jnp.asarray([-0.5, 0.5])), jnp.asarray([0.0, 2.0]), atol=1e-12)


# ============================================================================
# Roots and extrema
# ============================================================================


def test_chebfun_roots_include_endpoint():
    """sin(3x) on [0, 3] vanishes at 0, π/3 and 2π/3."""
    f = Chebfun(lambda x: jnp.sin(3 * x), (0.0, 3.0))
    expected = np.pi / 3 * np.arange(3)
    assert jnp.allclose(f.roots(), expected, atol=1e-12), f"roots = {f.roots()}"


def test_chebfun_max_min():
    f = Chebfun(jnp.cos, (-1.0, 4.0))
    assert jnp.isclose(f.max(), 1.0, atol=1e-13)
    assert jnp.isclose(f.min(), -1.0, atol=1e-13)


def test_chebfun_norms():
    x = Chebfun.identity((0.0, 1.0))
    assert jnp.isclose(x.norm(), 1.0 / jnp.sqrt(3.0), atol=1e-14)
    assert jnp.isclose(x.norm(jnp.inf), 1.0)
    assert jnp.isclose((x - 0.5).norm(1), 0.25, atol=1e-13)


# ============================================================================
# Algebra
# ============================================================================


def test_chebfun_arithmetic():
    f = Chebfun(jnp.sin, (0.0, 2.0))
    g = Chebfun(jnp.exp, (0.0, 2.0))
    x = jnp.linspace(0.0, 2.0, 7)
    assert jnp.allclose((f + g)(x), jnp.sin(x) + jnp.exp(x), atol=1e-13)
    assert jnp.allclose((f * g)(x), jnp.sin(x) * jnp.exp(x), atol=1e-13)
    assert jnp.allclose((2.0 * f - 1.0)(x), 2 * jnp.sin(x) - 1.0, atol=1e-13)
    assert jnp.allclose((g**2)(x), jnp.exp(2 * x), atol=1e-11)


def test_chebfun_compose():
    f = Chebfun(jnp.sin, (0.0, 2.0))
    g = Chebfun(jnp.cos, (0.0, 2.0))
    x = jnp.linspace(0.1, 1.9, 7)
    assert jnp.allclose(f.compose(jnp.exp)(x), jnp.exp(jnp.sin(x)), atol=1e-12)
    assert jnp.allclose(f.compose(jnp.arctan2, g)(x), jnp.arctan2(jnp.sin(x), jnp.cos(x)), atol=1e-12)


def test_chebfun_domain_mismatch():
    f = Chebfun(jnp.sin, (0.0, 1.0))
    g = Chebfun(jnp.sin, (0.0, 2.0))
    with pytest.raises(DomainMismatchError):
        f + g


def test_chebfun_abs_integral():
    """∫₋₂² |sin x| dx = 2(1 - cos 2)."""
    f = Chebfun(jnp.sin, (-2.0, 2.0)).abs()
    assert len(f.ends) == 3
    assert jnp.isclose(f.sum(), 2.0 * (1.0 - jnp.cos(2.0)), atol=1e-12)


def test_chebfun_greater_than_zero():
    """sin > 0 on [0, 2π] is 1 on (0, π), 0 on (π, 2π) and 0 at the root."""
    h = Chebfun(jnp.sin, (0.0, 2 * np.pi)) > 0
    assert len(h.ends) == 3
    assert abs(h.ends[1] - np.pi) < 1e-12, f"ends = {h.ends}"
    assert jnp.allclose(h(jnp.asarray([1.0, 4.0])), jnp.asarray([1.0, 0.0]))
    assert h(jnp.asarray(h.ends[1])) == 0.0
    assert jnp.isclose(h.sum(), np.pi, atol=1e-12)


def test_chebfun_less_than():
    x = Chebfun.identity((0.0, 1.0))
    h = x < 0.25
    assert jnp.isclose(h.sum(), 0.25, atol=1e-14)
    assert (0.25 > x).ends == h.ends
    k = x > Chebfun(jnp.cos, (0.0, 1.0))
    assert len(k.ends) == 3
    assert abs(k.ends[1] - 0.7390851332151607) < 1e-12
    assert jnp.allclose(k(jnp.asarray([0.2, 0.9])), jnp.asarray([0.0, 1.0]))


def test_chebfun_comparison_merges_pieces():
    """A comparison that never changes value has a single piece."""
    h = Chebfun(jnp.exp, (0.0, 1.0)) > 0
    assert h.ends == (0.0, 1.0)
    assert jnp.allclose(h(jnp.asarray([0.0, 0.5, 1.0])), 1.0)


def test_chebfun_scalar_shift_keeps_deltas():
    """Adding a constant moves point values only."""
    dh = Chebfun(jnp.sign, (-1.0, 1.0), splitting=True).diff()
    shifted = dh + 1.0
    assert jnp.allclose(shifted.imps[1], dh.imps[1])
    assert jnp.allclose(shifted.imps[0], dh.imps[0] + 1.0)


# ============================================================================
# Breakpoints and point values
# ============================================================================


def test_chebfun_sign_single_breakpoint():
    f = Chebfun(jnp.sign, (-1.0, 1.0), splitting=True)
    assert len(f.ends) == 3
    assert abs(f.ends[1]) < 1e-10
    assert jnp.allclose(f(jnp.asarray([-0.5, 0.5])), jnp.asarray([-1.0, 1.0]))


def test_set_value_at_breakpoint_idempotent():
    f = Chebfun(jnp.sign, (-1.0, 1.0), splitting=True)
    e = f.ends[1]
    g = f.set_value(e, 0.25)
    assert g(jnp.asarray(e)) == 0.25
    h = g.set_value(e, 0.25)
    assert h.ends == g.ends
    assert jnp.array_equal(h.imps, g.imps)


def test_set_value_over_delta():
    """Overwriting a point that carries a delta reads back the new value."""
    dh = Chebfun(jnp.sign, (-1.0, 1.0), splitting=True).diff()
    e = dh.ends[1]
    assert dh(jnp.asarray(e)) == jnp.inf
    g = dh.set_value(e, 0.25)
    assert g(jnp.asarray(e)) == 0.25
    assert jnp.isclose(g.sum(), 0.0, atol=1e-12)
    h = g.set_value(e, 0.25)
    assert jnp.array_equal(h.imps, g.imps)
    assert h(jnp.asarray(e)) == 0.25


def test_set_value_inserts_breakpoint():
    f = Chebfun(jnp.exp, (0.0, 1.0))
    g = f.set_value(0.5, -3.0)
    assert g.ends == (0.0, 0.5, 1.0)
    assert g(jnp.asarray(0.5)) == -3.0
    x = jnp.asarray([0.2, 0.7])
    assert jnp.allclose(g(x), jnp.exp(x), atol=1e-13)


def test_restrict():
    f = Chebfun(jnp.sin, (0.0, 3.0))
    g = f.restrict(1.0, 2.0)
    assert g.domain == (1.0, 2.0)
    assert jnp.isclose(g.sum(), jnp.cos(1.0) - jnp.cos(2.0), atol=1e-13)
