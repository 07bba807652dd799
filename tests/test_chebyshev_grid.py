"""
Tests for Chebyshev points, transforms and matrices.
"""

import jax.numpy as jnp
import numpy as np
import numpy.polynomial.chebyshev as npcheb

from chebfunx._src.chebyshev.grid import (
    bary,
    barymat,
    chebpts,
    chebval,
    clenshaw_curtis,
    coeffs_to_vals,
    cumsum_coeffs,
    cumsummat,
    diff_coeffs,
    diffmat,
    quadwts,
    vals_to_coeffs,
)

# ============================================================================
# Points
# ============================================================================


def test_chebpts_second_kind_endpoints_exact():
    """Second-kind points include the exact interval ends, ascending."""
    x = chebpts(9, (0.3, 2.7))
    assert x.shape == (9,)
    assert x[0] == 0.3
    assert x[-1] == 2.7
    assert jnp.all(jnp.diff(x) > 0), "Points should be ascending"


def test_chebpts_second_kind_symmetric():
    """Points on [-1, 1] are exactly symmetric: x[j] = -x[n-1-j]."""
    x = chebpts(12)
    assert jnp.allclose(x, -x[::-1], rtol=0.0, atol=1e-16)


def test_chebpts_first_kind_interior():
    """First-kind points exclude the ends."""
    x = chebpts(8, (-1.0, 1.0), kind=1)
    assert x.shape == (8,)
    assert jnp.all(jnp.abs(x) < 1.0)
    expected = -np.cos(np.pi * (2 * np.arange(8) + 1) / 16)
    assert jnp.allclose(x, expected, atol=1e-15)


# ============================================================================
# Transforms
# ============================================================================


def test_vals_to_coeffs_single_mode():
    """Values of T₃ give a unit coefficient at degree 3."""
    x = chebpts(9)
    vals = jnp.cos(3 * jnp.arccos(x))
    c = vals_to_coeffs(vals)
    expected = jnp.zeros(9).at[3].set(1.0)
    assert jnp.allclose(c, expected, atol=1e-14), f"coeffs = {c}"


def test_transforms_invert_each_other():
    """coeffs_to_vals(vals_to_coeffs(v)) = v."""
    v = jnp.exp(chebpts(17)) * jnp.sin(3 * chebpts(17))
    assert jnp.allclose(coeffs_to_vals(vals_to_coeffs(v)), v, atol=1e-14)


def test_chebval_matches_numpy():
    """Clenshaw evaluation agrees with numpy.polynomial.chebyshev."""
    c = jnp.asarray([0.5, -1.0, 0.25, 2.0, 0.125])
    x = jnp.linspace(-1, 1, 11)
    assert jnp.allclose(chebval(x, c), npcheb.chebval(np.asarray(x), np.asarray(c)), atol=1e-14)


def test_diff_coeffs_matches_numpy():
    c = jnp.asarray([1.0, 2.0, -0.5, 0.75, 0.3])
    expected = npcheb.chebder(np.asarray(c))
    assert jnp.allclose(diff_coeffs(c), expected, atol=1e-14)


def test_cumsum_coeffs_vanishes_at_left_end():
    """The indefinite integral is zero at x = -1 and differentiates back."""
    c = jnp.asarray([1.0, 2.0, -0.5, 0.75])
    C = cumsum_coeffs(c)
    assert C.shape == (5,)
    assert abs(float(chebval(jnp.asarray(-1.0), C))) < 1e-14
    assert jnp.allclose(diff_coeffs(C)[:4], c, atol=1e-14)


def test_clenshaw_curtis_polynomial():
    """∫₋₁¹ x⁴ dx = 2/5 from the coefficients of x⁴."""
    c = jnp.asarray(npcheb.poly2cheb([0, 0, 0, 0, 1.0]))
    assert jnp.isclose(clenshaw_curtis(c), 0.4, atol=1e-15)


# ============================================================================
# Interpolation
# ============================================================================


def test_bary_exact_at_nodes():
    x = chebpts(7)
    v = x**3 - x
    assert jnp.array_equal(bary(x, v), v)


def test_barymat_interpolates_polynomials():
    """Second-kind to first-kind interpolation is exact for degree < n."""
    x = chebpts(10, (0.0, 2.0))
    y = chebpts(7, (0.0, 2.0), kind=1)
    P = barymat(y, x)
    assert P.shape == (7, 10)
    assert jnp.allclose(P @ (x**5 - 2 * x), y**5 - 2 * y, atol=1e-12)


# ============================================================================
# Matrices
# ============================================================================


def test_diffmat_row_sum_zero():
    """Rows of D sum to zero (derivative of constant = 0)."""
    D = diffmat(16, (-2.0, 3.0))
    assert jnp.allclose(D.sum(axis=1), 0.0, atol=1e-10)


def test_diffmat_exact_on_cubic():
    """D x³ = 3x² on [0, 2]."""
    x = chebpts(8, (0.0, 2.0))
    D = diffmat(8, (0.0, 2.0))
    assert jnp.allclose(D @ x**3, 3 * x**2, atol=1e-11), (
        f"max error = {jnp.abs(D @ x**3 - 3 * x**2).max()}"
    )


def test_diffmat_of_identity_is_one():
    """D x = 1: the first derivative keeps its sign on ascending points."""
    for n in (2, 5, 9):
        x = chebpts(n)
        assert jnp.allclose(diffmat(n) @ x, 1.0, atol=1e-12), f"n = {n}: {diffmat(n) @ x}"
    x = chebpts(9, (0.0, 1.0))
    assert jnp.allclose(diffmat(9, (0.0, 1.0)) @ jnp.exp(x), jnp.exp(x), atol=1e-6)


def test_diffmat_odd_order():
    x = chebpts(10, (-1.0, 2.0))
    D3 = diffmat(10, (-1.0, 2.0), order=3)
    assert jnp.allclose(D3 @ x**4, 24 * x, atol=1e-8)


def test_diffmat_second_order():
    x = chebpts(12, (-1.0, 1.0))
    D2 = diffmat(12, (-1.0, 1.0), order=2)
    assert jnp.allclose(D2 @ x**4, 12 * x**2, atol=1e-9)


def test_cumsummat_polynomial():
    """Q (3x²) = x³ - a³ on [a, b]."""
    a, b = -0.5, 1.5
    x = chebpts(8, (a, b))
    Q = cumsummat(8, (a, b))
    assert jnp.allclose(Q @ (3 * x**2), x**3 - a**3, atol=1e-12)


def test_quadwts_polynomial():
    """Clenshaw–Curtis weights integrate x⁴ on [0, 2] exactly."""
    x = chebpts(9, (0.0, 2.0))
    w = quadwts(9, (0.0, 2.0))
    assert jnp.isclose(w @ x**4, 32.0 / 5.0, atol=1e-12)
