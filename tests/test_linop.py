"""
Tests for LinearOperator: discretization, boundary rows, algebra and
application.
"""

import jax.numpy as jnp
import pytest

from chebfunx import (
    BCKind,
    Chebfun,
    DomainMismatchError,
    LinearOperator,
    OperatorMatrix,
    chebpts,
    cumsum_operator,
    diag_operator,
    diff_operator,
    diffmat,
    dirichlet,
    identity_operator,
    neumann,
    periodic,
)
from chebfunx._src.operators.bcs import Side

DOMAIN = (0.0, 2.0)

# ============================================================================
# Discretization
# ============================================================================


def test_diff_operator_matrix():
    D2 = diff_operator(DOMAIN, 2)
    assert jnp.allclose(D2.matrix(9), diffmat(9, DOMAIN, 2))
    assert D2.order == 2


def test_bdyreplace_dirichlet_rows():
    A = diff_operator(DOMAIN, 2).with_lbc(0.5).with_rbc(-1.0)
    rows, values, rowidx = A.bdyreplace(7)
    assert rows.shape == (2, 7)
    assert jnp.array_equal(rowidx, jnp.asarray([0, 6]))
    assert jnp.array_equal(rows[0], jnp.eye(7)[0])
    assert jnp.array_equal(rows[1], jnp.eye(7)[6])
    assert jnp.allclose(values, jnp.asarray([0.5, -1.0]))


def test_bdyreplace_neumann_row():
    A = diff_operator(DOMAIN, 2).with_lbc(neumann(1.0)).with_rbc(0.0)
    rows, values, _ = A.bdyreplace(9)
    assert jnp.allclose(rows[0], diffmat(9, DOMAIN)[0])
    assert values[0] == 1.0


def test_bdyreplace_periodic_alternates_ends():
    """Two periodic rows for a second-order operator, one at each end."""
    A = diff_operator(DOMAIN, 2).with_bc(periodic())
    assert A.numbc == 2
    assert A.rbc == ()
    rows, values, rowidx = A.bdyreplace(9)
    assert jnp.array_equal(rowidx, jnp.asarray([0, 8]))
    assert jnp.allclose(rows[0], jnp.eye(9)[0] - jnp.eye(9)[8])
    assert jnp.allclose(values, 0.0)


def test_with_bc_kinds():
    A = diff_operator(DOMAIN, 2).with_bc(BCKind.NEUMANN)
    assert [bc.kind for bc in A.lbc + A.rbc] == [BCKind.NEUMANN, BCKind.NEUMANN]
    B = diff_operator(DOMAIN, 2).with_lbc([0.0, neumann(0.0)])
    assert B.numbc == 2


def test_functional_condition_row():
    """An operator condition uses the end row of its matrix."""
    D = diff_operator(DOMAIN, 1)
    A = diff_operator(DOMAIN, 2).with_lbc(D + identity_operator(DOMAIN)).with_rbc(0.0)
    rows, _, _ = A.bdyreplace(9)
    assert jnp.allclose(rows[0], diffmat(9, DOMAIN)[0] + jnp.eye(9)[0])


# ============================================================================
# Identity tokens
# ============================================================================


def test_new_conditions_new_id():
    A = diff_operator(DOMAIN, 2)
    B = A.with_lbc(0.0)
    C = B.with_rbc(0.0)
    assert len({A.id, B.id, C.id}) == 3
    assert C.with_scale(5.0).id == C.id


# ============================================================================
# Algebra and order bookkeeping
# ============================================================================


def test_sum_takes_max_order():
    A = diff_operator(DOMAIN, 2) + 3.0
    assert A.order == 2
    assert jnp.allclose(A.matrix(7), diffmat(7, DOMAIN, 2) + 3.0 * jnp.eye(7))
    assert A.lbc == () and A.rbc == ()


def test_composition_adds_orders():
    D = diff_operator(DOMAIN, 1)
    assert (D @ D).order == 2
    assert (D * D).order == 2
    assert (D**3).order == 3
    assert (cumsum_operator(DOMAIN) @ D).difforder == ((0,),)


def test_chebfun_times_operator():
    """f * A composes multiplication by f with A."""
    f = Chebfun(lambda x: 1.0 + x**2, DOMAIN)
    D = diff_operator(DOMAIN, 1)
    M = (f * D).matrix(9)
    x = chebpts(9, DOMAIN)
    assert jnp.allclose(M, jnp.diag(1.0 + x**2) @ diffmat(9, DOMAIN), atol=1e-12)


def test_domain_mismatch():
    with pytest.raises(DomainMismatchError):
        diff_operator((0.0, 1.0)) + diff_operator((0.0, 2.0))


def test_block_operator_shapes():
    D = diff_operator(DOMAIN, 1)
    A = LinearOperator.block([[D, -1.0], [1.0, D]])
    assert A.blocksize == (2, 2)
    assert A.difforder == ((1, 0), (0, 1))
    M = A.matrix(5)
    assert M.shape == (10, 10)
    assert jnp.allclose(M[:5, 5:], -jnp.eye(5))


# ============================================================================
# Application
# ============================================================================


def test_apply_functional_form():
    u = Chebfun(jnp.sin, DOMAIN)
    A = diff_operator(DOMAIN, 2) + diag_operator(Chebfun(lambda x: x, DOMAIN))
    v = A * u
    x = jnp.linspace(0.1, 1.9, 7)
    assert jnp.allclose(v(x), -jnp.sin(x) + x * jnp.sin(x), atol=1e-11)


def test_apply_matrix_form():
    """Without a functional form, application grows matrix products."""
    A = LinearOperator(OperatorMatrix(lambda n: diffmat(n, DOMAIN)), None, DOMAIN, ((1,),))
    v = A(Chebfun(jnp.sin, DOMAIN))
    x = jnp.linspace(0.1, 1.9, 7)
    assert jnp.allclose(v(x), jnp.cos(x), atol=1e-7)


def test_block_apply():
    D = diff_operator(DOMAIN, 1)
    A = LinearOperator.block([[D, -1.0], [1.0, D]])
    u, v = Chebfun(jnp.sin, DOMAIN), Chebfun(jnp.cos, DOMAIN)
    r = A * [u, v]
    x = jnp.linspace(0.1, 1.9, 7)
    assert jnp.allclose(r[0](x), 0.0, atol=1e-12)
    assert jnp.allclose(r[1](x), 0.0, atol=1e-12)


def test_dirichlet_row_on_system():
    """A condition on variable 1 of a two-variable system sits in the second block."""
    bc = dirichlet(2.0, var=1)
    [(row, value)] = bc.rows(Side.RIGHT, 4, DOMAIN, nvars=2)
    assert jnp.array_equal(row, jnp.eye(8)[7])
    assert value == 2.0
