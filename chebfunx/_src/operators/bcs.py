# ============================================================================
# Boundary Conditions
# ============================================================================
"""
Boundary-condition records with an explicit evaluation contract per kind.

Each condition knows how to produce its replacement row(s) at a given
discretization size and how to measure its residual on a chebfun:

    DIRICHLET   u(end) = value                 one row
    NEUMANN     u'(end) = value                one row
    PERIODIC    u⁽ᵏ⁾(a) = u⁽ᵏ⁾(b), k < order     one row per derivative
    OPERATOR    (L u)(end) = value             one row of L at the end

For systems of equations, DIRICHLET and NEUMANN act on variable ``var``;
an OPERATOR condition with a block operator spans all variables.
"""

import enum
import numbers
from typing import Any

import equinox as eqx
import jax.numpy as jnp
from jaxtyping import Array

from ..chebyshev.grid import diffmat
from .varmat import OperatorMatrix


class BCKind(enum.Enum):
    DIRICHLET = "dirichlet"
    NEUMANN = "neumann"
    PERIODIC = "periodic"
    OPERATOR = "operator"


class Side(enum.Enum):
    LEFT = "left"
    RIGHT = "right"


def _operator_matrix(op, n: int) -> Array:
    if hasattr(op, "matrix"):
        return op.matrix(n)
    if isinstance(op, OperatorMatrix):
        return op(n)
    raise TypeError(
        f"Boundary functional {op!r} has no matrix form; linearize it before discretizing"
    )


def _unit_row(idx: int, n: int, nvars: int, var: int) -> Array:
    return jnp.zeros(n * nvars).at[var * n + idx].set(1.0)


def _block_row(row: Array, n: int, nvars: int, var: int) -> Array:
    return jnp.zeros(n * nvars, dtype=row.dtype).at[var * n : (var + 1) * n].set(row)


def _pick(u, var: int):
    return u[var] if isinstance(u, (list, tuple)) else u


class BoundaryCondition(eqx.Module):
    """
    A single boundary condition.

    Attributes:
    -----------
        kind : BCKind
        value : float
            Target value (ignored for PERIODIC).
        operator : LinearOperator, OperatorMatrix or callable, optional
            Boundary functional for OPERATOR conditions. A callable acts on
            fields and is only usable through ``Operator`` (Newton), which
            linearizes it.
        var : int
            Variable index for DIRICHLET/NEUMANN conditions on systems, and
            the block whose rows an OPERATOR condition replaces.
    """

    kind: BCKind
    value: Any = 0.0
    operator: Any = None
    var: int = 0

    def count(self, difforder: int) -> int:
        """Number of rows this condition contributes."""
        if self.kind is BCKind.PERIODIC:
            return max(int(difforder), 0)
        return 1

    def rows(self, side: Side, n: int, domain, difforder: int = 2, nvars: int = 1) -> list[tuple[Array, Any]]:
        """
        Replacement rows and target values at size n.

        Parameters:
        -----------
        side : Side
            End of the domain the condition is imposed at.
        n : int
            Points per variable.
        domain : tuple
            Interval (a, b).
        difforder : int
            Differential order of the operator (PERIODIC only).
        nvars : int
            Number of variables.

        Returns:
        --------
        list of (row [n * nvars], value)
        """
        end = 0 if side is Side.LEFT else n - 1
        if self.kind is BCKind.DIRICHLET:
            return [(_unit_row(end, n, nvars, self.var), self.value)]
        if self.kind is BCKind.NEUMANN:
            D = diffmat(n, domain, 1)
            return [(_block_row(D[end], n, nvars, self.var), self.value)]
        if self.kind is BCKind.PERIODIC:
            out = []
            for k in range(self.count(difforder)):
                Dk = diffmat(n, domain, k)
                out.append((_block_row(Dk[0] - Dk[-1], n, nvars, self.var), 0.0))
            return out
        M = _operator_matrix(self.operator, n)
        row = M[0] if side is Side.LEFT else M[n - 1]
        if row.shape[0] != n * nvars:
            row = _block_row(row, n, nvars, self.var)
        return [(row, self.value)]

    def residual(self, u, side: Side, difforder: int = 2) -> list:
        """
        Amount by which a chebfun (or list of chebfuns) misses the condition.

        Used by Newton iterations: the correction must satisfy the same
        condition with target ``-residual``.
        """
        a, b = _pick(u, 0).domain
        end = jnp.asarray(a if side is Side.LEFT else b)
        if self.kind is BCKind.DIRICHLET:
            return [_pick(u, self.var)(end) - self.value]
        if self.kind is BCKind.NEUMANN:
            return [_pick(u, self.var).diff()(end) - self.value]
        if self.kind is BCKind.PERIODIC:
            w = _pick(u, self.var)
            out = []
            for k in range(self.count(difforder)):
                dk = w.diff(k) if k else w
                out.append(dk(jnp.asarray(a)) - dk(jnp.asarray(b)))
            return out
        op = self.operator
        if hasattr(op, "apply"):
            g = op.apply(u)
        elif callable(op) and not isinstance(op, OperatorMatrix):
            g = op(u)
        else:
            raise TypeError(f"Cannot evaluate boundary functional {op!r} on a chebfun")
        g = g[0] if isinstance(g, (list, tuple)) else g
        return [g(end) - self.value]


def dirichlet(value=0.0, var: int = 0) -> BoundaryCondition:
    return BoundaryCondition(BCKind.DIRICHLET, value, var=var)


def neumann(value=0.0, var: int = 0) -> BoundaryCondition:
    return BoundaryCondition(BCKind.NEUMANN, value, var=var)


def periodic(var: int = 0) -> BoundaryCondition:
    return BoundaryCondition(BCKind.PERIODIC, 0.0, var=var)


def functional(operator, value=0.0, var: int = 0) -> BoundaryCondition:
    return BoundaryCondition(BCKind.OPERATOR, value, operator, var)


def as_bcs(spec) -> tuple:
    """
    Normalize a boundary-condition specification to a tuple of records.

    Accepts None, a number (Dirichlet value), a BCKind (homogeneous
    condition), a BoundaryCondition, an operator or callable (homogeneous
    functional condition), or a list/tuple of these.
    """
    if spec is None:
        return ()
    if isinstance(spec, BoundaryCondition):
        return (spec,)
    if isinstance(spec, BCKind):
        return (BoundaryCondition(spec),)
    if isinstance(spec, numbers.Number) or (hasattr(spec, "shape") and spec.shape == ()):
        return (dirichlet(spec),)
    if isinstance(spec, (list, tuple)):
        return tuple(bc for item in spec for bc in as_bcs(item))
    if hasattr(spec, "matrix") or isinstance(spec, OperatorMatrix) or callable(spec):
        return (functional(spec),)
    raise TypeError(f"Unrecognized boundary condition: {spec!r}")
