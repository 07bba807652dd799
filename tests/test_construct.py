"""
Tests for the adaptive constructor: happiness, growth, splitting and state.
"""

import jax.numpy as jnp
import pytest

from chebfunx._src.chebyshev.grid import chebpts
from chebfunx._src.config import ChebfunPrefs
from chebfunx._src.errors import ConvergenceWarning
from chebfunx._src.fun.construct import Sampler, construct, expand_exps, happiness

# ============================================================================
# Happiness
# ============================================================================


def test_happiness_resolved():
    """exp on 33 points is resolved and chops to fewer coefficients."""
    x = chebpts(33)
    happy, cutoff = happiness(jnp.exp(x), 0.0, 1.0, 2.0**-52, x)
    assert happy
    assert cutoff < 33


def test_happiness_unresolved():
    """An alternating vector puts unit weight on the highest mode."""
    vals = (-1.0) ** jnp.arange(17)
    happy, cutoff = happiness(vals, 0.0, 1.0, 2.0**-52)
    assert not happy
    assert cutoff == 17


def test_happiness_zero_vector():
    assert happiness(jnp.zeros(9), 0.0, 1.0, 2.0**-52) == (True, 1)


# ============================================================================
# Smooth mode
# ============================================================================


def test_construct_smooth_single_piece():
    res = construct(jnp.sin, (0.0, jnp.pi))
    assert res.happy
    assert len(res.pieces) == 1
    assert res.ends == (0.0, float(jnp.pi))
    x = jnp.linspace(0.0, jnp.pi, 11)
    assert jnp.allclose(res.pieces[0](x), jnp.sin(x), atol=1e-14)


def test_construct_polynomial_is_short():
    """A quadratic chops down to three values."""
    res = construct(lambda x: 1.0 + x - 2 * x**2)
    assert res.pieces[0].n == 3


def test_construct_imps_hold_breakpoint_values():
    res = construct(jnp.exp, (-1.0, 0.0, 1.0))
    assert res.imps.shape == (1, 3)
    assert jnp.allclose(res.imps[0], jnp.exp(jnp.asarray([-1.0, 0.0, 1.0])), atol=1e-14)


def test_construct_fixed_length():
    res = construct(jnp.exp, prefs=ChebfunPrefs(n=5))
    assert res.pieces[0].n == 5
    assert res.happy


def test_construct_unresolved_warns():
    """|x| cannot be resolved by one polynomial of degree 64."""
    with pytest.warns(ConvergenceWarning):
        res = construct(jnp.abs, prefs=ChebfunPrefs(maxdegree=64))
    assert not res.happy
    assert res.pieces[0].n == 65


# ============================================================================
# Split mode
# ============================================================================


def test_construct_splitting_sign():
    """sign(x) splits exactly once, at the origin."""
    res = construct(jnp.sign, prefs=ChebfunPrefs(splitting=True))
    assert res.happy
    assert len(res.ends) == 3
    assert abs(res.ends[1]) < 1e-10, f"ends = {res.ends}"
    assert jnp.allclose(res.pieces[0](jnp.asarray([-0.5])), -1.0)
    assert jnp.allclose(res.pieces[1](jnp.asarray([0.5])), 1.0)


def test_construct_splitting_kink_accurate():
    """|x| on [-1, 2] is represented to near machine precision in split mode."""
    f = jnp.abs
    res = construct(f, (-1.0, 2.0), prefs=ChebfunPrefs(splitting=True))
    assert res.happy
    assert any(abs(e) < 1e-8 for e in res.ends), f"ends = {res.ends}"
    x = jnp.linspace(-1.0, 2.0, 41)
    for p in res.pieces:
        a, b = p.domain
        xi = x[(x >= a) & (x <= b)]
        if xi.shape[0]:
            assert jnp.allclose(p(xi), f(xi), atol=1e-13)


def test_construct_one_handle_per_interval():
    res = construct([lambda x: 0.0 * x, lambda x: x], (-1.0, 0.0, 1.0))
    assert len(res.pieces) == 2
    assert jnp.allclose(res.pieces[1](jnp.asarray([0.5])), 0.5)


# ============================================================================
# Sampler state and exponents
# ============================================================================


def test_construct_returns_sampler_state():
    """The state of the last sampler call is handed back with the result."""
    sampler = Sampler(lambda x: (jnp.cos(x), int(x.shape[0])), pointwise=False)
    res = construct(sampler)
    assert res.state in (9, 17, 33, 65)
    assert res.state >= res.pieces[0].n


def test_expand_exps_forms():
    assert expand_exps(None, 3) == [(0.0, 0.0), (0.0, 0.0)]
    assert expand_exps([0.5], 3) == [(0.5, 0.5), (0.5, 0.5)]
    assert expand_exps([0.5, -0.5], 3) == [(0.5, 0.0), (0.0, -0.5)]
    assert expand_exps([1.0, 2.0, 3.0], 3) == [(1.0, 2.0), (2.0, 3.0)]
    with pytest.raises(ValueError):
        expand_exps([1.0, 2.0, 3.0], 5)


def test_construct_bad_breakpoints():
    with pytest.raises(ValueError):
        construct(jnp.sin, (1.0, 0.0))
