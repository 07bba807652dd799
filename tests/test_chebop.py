"""
Tests for collocation fields and the Newton solver of Operator.
"""

import jax
import jax.numpy as jnp
import pytest

from chebfunx import (
    Chebfun,
    Collocation,
    Operator,
    SolverConvergenceError,
    SolverPrefs,
    chebpts,
    diff_operator,
    diffmat,
    functional,
    quadwts,
)

DOMAIN = (0.0, 1.0)
X_TEST = jnp.linspace(0.05, 0.95, 11)

# ============================================================================
# Collocation fields
# ============================================================================


def test_collocation_diff_tracks_order():
    x = chebpts(9, DOMAIN)
    u = Collocation(x**3, DOMAIN)
    du = u.diff()
    assert du.order == 1
    assert jnp.allclose(du.values, 3 * x**2, atol=1e-12)
    assert u.diff(2).order == 2
    assert u.cumsum().order == -1


def test_collocation_arithmetic_keeps_max_order():
    x = chebpts(9, DOMAIN)
    u = Collocation(jnp.sin(x), DOMAIN)
    w = u.diff(2) + u.x * u**2 - 1.0
    assert w.order == 2
    expected = diffmat(9, DOMAIN, 2) @ jnp.sin(x) + x * jnp.sin(x) ** 2 - 1.0
    assert jnp.allclose(w.values, expected, atol=1e-12)


def test_collocation_with_chebfun_operand():
    """A chebfun coefficient is sampled on the collocation grid."""
    x = chebpts(9, DOMAIN)
    u = Collocation(jnp.ones(9), DOMAIN)
    f = Chebfun(jnp.exp, DOMAIN)
    assert jnp.allclose((u * f).values, jnp.exp(x), atol=1e-13)
    assert jnp.allclose((f * u).values, jnp.exp(x), atol=1e-13)


def test_collocation_sum_and_eval():
    x = chebpts(9, DOMAIN)
    u = Collocation(x**2, DOMAIN)
    assert jnp.isclose(u.sum(), 1.0 / 3.0, atol=1e-14)
    assert jnp.isclose(u.sum(), quadwts(9, DOMAIN) @ x**2)
    assert jnp.allclose(u(jnp.asarray([0.3])), 0.09, atol=1e-14)


def test_collocation_jacobian():
    """jacfwd through a collocation expression gives D² + diag(2u)."""
    x = chebpts(9, DOMAIN)
    v0 = jnp.sin(x)
    J = jax.jacfwd(lambda v: (Collocation(v, DOMAIN).diff(2) + Collocation(v, DOMAIN) ** 2).values)(v0)
    assert jnp.allclose(J, diffmat(9, DOMAIN, 2) + jnp.diag(2 * v0), atol=1e-10)


# ============================================================================
# Operator evaluation and linearization
# ============================================================================


def test_operator_order():
    N = Operator(DOMAIN, lambda x, u: u.diff(2) + u.compose(jnp.exp))
    assert N.order == 2
    L = Operator(DOMAIN, diff_operator(DOMAIN, 1))
    assert L.order == 1


def test_operator_apply():
    N = Operator(DOMAIN, lambda x, u: u.diff() + x * u)
    u = Chebfun(jnp.exp, DOMAIN)
    r = N(u)
    assert jnp.allclose(r(X_TEST), jnp.exp(X_TEST) * (1.0 + X_TEST), atol=1e-12)


def test_linearize_matches_frechet_derivative():
    N = Operator(DOMAIN, lambda x, u: u.diff(2) + x * u**2)
    u = Chebfun(lambda x: 1.0 + x, DOMAIN)
    J = N.linearize(u)
    assert J.order == 2
    x = chebpts(9, DOMAIN)
    expected = diffmat(9, DOMAIN, 2) + jnp.diag(2 * x * (1.0 + x))
    assert jnp.allclose(J.matrix(9), expected, atol=1e-9)


def test_operator_algebra():
    A = Operator(DOMAIN, lambda x, u: u.diff())
    B = Operator(DOMAIN, lambda x, u: u**2)
    u = Chebfun(lambda x: 2.0 * x, DOMAIN)
    assert jnp.allclose((A + B)(u)(X_TEST), 2.0 + 4 * X_TEST**2, atol=1e-12)
    assert jnp.allclose((A - 2.0)(u)(X_TEST), 0.0, atol=1e-12)
    assert jnp.allclose((3.0 * A)(u)(X_TEST), 6.0, atol=1e-12)


# ============================================================================
# Newton
# ============================================================================


def test_newton_linear_problem():
    """A linear operator converges in a couple of steps to u = x."""
    N = Operator(DOMAIN, diff_operator(DOMAIN, 2), lbc=0.0, rbc=1.0)
    u = N.solve()
    assert jnp.allclose(u(X_TEST), X_TEST, atol=1e-10)


def test_newton_nonlinear():
    """u'' - u² = f with exact solution 1 + x²."""
    exact = lambda x: 1.0 + x**2
    N = Operator(DOMAIN, lambda x, u: u.diff(2) - u**2, lbc=1.0, rbc=2.0)
    u = N.solve(lambda x: 2.0 - exact(x) ** 2)
    assert jnp.allclose(u(X_TEST), exact(X_TEST), atol=1e-8)


def test_newton_exponential_nonlinearity():
    """u'' = e^u with u(0) = u(1) = 0 has a small negative solution."""
    N = Operator(DOMAIN, lambda x, u: u.diff(2) - u.compose(jnp.exp), lbc=0.0, rbc=0.0)
    u = N.solve()
    r = N.residual(u)
    assert float(r.norm(jnp.inf)) < 1e-7
    assert float(u(jnp.asarray(0.5))) < 0.0


def test_newton_callable_boundary_functional():
    """A boundary condition written on fields is linearized with the operator."""
    N = Operator(DOMAIN, lambda x, u: u.diff(2), lbc=functional(lambda u: u.diff(), 1.0), rbc=0.0)
    u = N.solve()
    assert jnp.allclose(u(X_TEST), X_TEST - 1.0, atol=1e-10)


def test_newton_initial_guess():
    N = Operator(DOMAIN, lambda x, u: u.diff(2) - u**2, lbc=1.0, rbc=2.0, init=lambda x: 1.0 + x)
    u = N.solve(lambda x: 2.0 - (1.0 + x**2) ** 2)
    assert jnp.allclose(u(X_TEST), 1.0 + X_TEST**2, atol=1e-8)


def test_newton_iteration_cap():
    N = Operator(DOMAIN, lambda x, u: u.diff(2) - u**2, lbc=1.0, rbc=2.0)
    with pytest.raises(SolverConvergenceError):
        N.solve(lambda x: 2.0 - (1.0 + x**2) ** 2, prefs=SolverPrefs(newton_maxiter=1))


def test_newton_first_order():
    """u' + u² = 2x + x⁴ with u(0) = 0 gives x²."""
    N = Operator(DOMAIN, lambda x, u: u.diff() + u**2, lbc=0.0)
    u = N.solve(lambda x: 2 * x + x**4)
    assert jnp.allclose(u(X_TEST), X_TEST**2, atol=1e-8)

