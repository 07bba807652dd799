# ============================================================================
# Linear Operators
# ============================================================================
"""
LinearOperator: a differential/integral operator on an interval.

An operator carries two views of itself:

    varmat    OperatorMatrix, n ↦ collocation matrix on n second-kind points
    oparray   optional functional form acting directly on chebfuns

plus its differential order (one entry per block), boundary conditions, a
characteristic scale, and an identity token. Every change of boundary
conditions issues a new token, so cached factorizations keyed by the token
can never be stale.

Algebra:
--------
    A + B, A - B      difforder = max(order(A), order(B))
    A @ B, A * B      composition, difforder = order(A) + order(B)
    c * A, A * c      scaling
    A * u             application to a chebfun
    f * A             composition with multiplication by f

Results of algebra carry no boundary conditions.
"""

import dataclasses
from typing import Any, Callable, ClassVar

import equinox as eqx
import jax.numpy as jnp
from jaxtyping import Array

from ..chebyshev.grid import chebpts, cumsummat, diffmat
from ..errors import UnsupportedRepresentationError
from ..fun.chebfun import Chebfun
from ..utils import OperandKind, domain_check, evaluate, new_id, operand_kind
from . import solver
from .bcs import BCKind, Side, as_bcs
from .varmat import OperatorMatrix


def _as_domain(domain) -> tuple[float, float]:
    domain = [float(d) for d in domain]
    if len(domain) != 2:
        raise UnsupportedRepresentationError(
            f"Operators are defined on a single interval, got breakpoints {domain}"
        )
    return domain[0], domain[1]


def _order_max(a, b) -> tuple:
    return tuple(tuple(max(x, y) for x, y in zip(ra, rb)) for ra, rb in zip(a, b))


def _order_compose(a, b) -> tuple:
    inner = range(len(b))
    return tuple(
        tuple(max(a[i][k] + b[k][j] for k in inner) for j in range(len(b[0]))) for i in range(len(a))
    )


def _lift(fn):
    """Apply a binary function to values or elementwise to lists of values."""

    def lifted(u, v):
        if isinstance(u, (list, tuple)):
            return [fn(p, q) for p, q in zip(u, v)]
        return fn(u, v)

    return lifted


class LinearOperator(eqx.Module):
    """
    Linear operator with boundary conditions on a single interval.

    >>> D2 = diff_operator((0.0, 1.0), 2)
    >>> A = D2.with_lbc(0.0).with_rbc(1.0)
    >>> u = A.solve(0.0)          # u(x) = x

    Attributes:
    -----------
        varmat : OperatorMatrix
            Collocation rule (blocks of n rows/columns per equation/variable).
        oparray : callable or None
            Functional form; acts on a chebfun (or a list of them for blocks).
        domain : tuple
            Interval (a, b).
        difforder : tuple[tuple[int]]
            Differential order of each block.
        blocksize : tuple
            (equations, variables).
        lbc, rbc : tuple[BoundaryCondition]
            Conditions at the left and right ends.
        scale : float, Chebfun or callable
            Characteristic size of the solution, for relative tolerances.
        id : int
            Identity token, renewed whenever the conditions change.
    """

    varmat: OperatorMatrix
    oparray: Callable | None
    domain: tuple
    difforder: tuple
    blocksize: tuple = (1, 1)
    lbc: tuple = ()
    rbc: tuple = ()
    scale: Any = 0.0
    id: int = eqx.field(default_factory=new_id)

    operand_kind: ClassVar[OperandKind] = OperandKind.OPERATOR

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def order(self) -> int:
        """Highest differential order over all blocks (at least 0)."""
        return max(0, max(max(row) for row in self.difforder))

    @property
    def numbc(self) -> int:
        order = self.order
        return sum(bc.count(order) for bc in self.lbc + self.rbc)

    # ------------------------------------------------------------------
    # Boundary conditions and scale
    # ------------------------------------------------------------------

    def with_bc(self, spec) -> "LinearOperator":
        """Same condition(s) at both ends; PERIODIC is imposed once."""
        bcs = as_bcs(spec)
        if any(bc.kind is BCKind.PERIODIC for bc in bcs):
            return dataclasses.replace(self, lbc=bcs, rbc=(), id=new_id())
        return dataclasses.replace(self, lbc=bcs, rbc=bcs, id=new_id())

    def with_lbc(self, spec) -> "LinearOperator":
        return dataclasses.replace(self, lbc=as_bcs(spec), id=new_id())

    def with_rbc(self, spec) -> "LinearOperator":
        return dataclasses.replace(self, rbc=as_bcs(spec), id=new_id())

    def with_scale(self, scale) -> "LinearOperator":
        return dataclasses.replace(self, scale=scale)

    # ------------------------------------------------------------------
    # Discretization
    # ------------------------------------------------------------------

    def matrix(self, n: int) -> Array:
        """Collocation matrix at n points per variable."""
        return self.varmat(n)

    def bdyreplace(self, n: int):
        """
        Boundary rows at size n.

        Left conditions of variable j take rows j·n, j·n + 1, ...; right
        conditions take j·n + n - 1, j·n + n - 2, .... Periodic conditions
        alternate between the two ends.

        Returns:
        --------
        rows : Array [numbc, m·n]
        values : Array [numbc]
        rowidx : Array [numbc] (int)
        """
        m = self.blocksize[1]
        order = self.order
        used = {Side.LEFT: [0] * m, Side.RIGHT: [0] * m}
        rows, values, rowidx = [], [], []
        for side, bcs in ((Side.LEFT, self.lbc), (Side.RIGHT, self.rbc)):
            other = Side.RIGHT if side is Side.LEFT else Side.LEFT
            for bc in bcs:
                for k, (row, value) in enumerate(bc.rows(side, n, self.domain, order, m)):
                    place = other if bc.kind is BCKind.PERIODIC and k % 2 else side
                    j = bc.var
                    offset = used[place][j]
                    used[place][j] += 1
                    rowidx.append(j * n + offset if place is Side.LEFT else j * n + n - 1 - offset)
                    rows.append(row)
                    values.append(jnp.asarray(value))
        if not rows:
            return jnp.zeros((0, m * n)), jnp.zeros(0), jnp.zeros(0, dtype=int)
        return jnp.stack(rows), jnp.stack(values), jnp.asarray(rowidx, dtype=int)

    def discretize(self, n: int):
        """``(matrix, boundary rows, boundary values, row indices)`` at size n."""
        return (self.matrix(n), *self.bdyreplace(n))

    # ------------------------------------------------------------------
    # Application and solves
    # ------------------------------------------------------------------

    def apply(self, u, prefs=None):
        """A u, using the functional form when available (conditions ignored)."""
        if self.oparray is not None:
            return self.oparray(u)
        return solver.apply_linear(self, u, prefs)

    def __call__(self, u, prefs=None):
        return self.apply(u, prefs)

    def solve(self, f, prefs=None, cache=None):
        """Solve A u = f; see ``solve_linear``."""
        return solver.solve_linear(self, f, prefs, cache)

    def eigs(self, k: int = 6, sigma=None, prefs=None):
        return solver.eigs(self, k, sigma, prefs)

    # ------------------------------------------------------------------
    # Algebra
    # ------------------------------------------------------------------

    def _identity_like(self) -> "LinearOperator":
        rows, cols = self.blocksize
        if (rows, cols) == (1, 1):
            return identity_operator(self.domain)
        if rows != cols:
            raise ValueError(f"No identity for block size {self.blocksize}")
        return LinearOperator.block(
            [[identity_operator(self.domain) if i == j else 0 for j in range(cols)] for i in range(rows)]
        )

    def _scaled(self, c) -> "LinearOperator":
        op = None
        if self.oparray is not None:
            inner = self.oparray

            def op(u):
                out = inner(u)
                if isinstance(out, (list, tuple)):
                    return [c * w for w in out]
                return c * out

        return LinearOperator(c * self.varmat, op, self.domain, self.difforder, self.blocksize)

    def __add__(self, other):
        kind = operand_kind(other)
        if kind is OperandKind.SCALAR:
            return self + self._identity_like()._scaled(other)
        if kind is not OperandKind.OPERATOR:
            return NotImplemented
        domain = domain_check(self.domain, other.domain)
        if self.blocksize != other.blocksize:
            raise ValueError(f"Block sizes differ: {self.blocksize} and {other.blocksize}")
        op = None
        if self.oparray is not None and other.oparray is not None:
            a, b = self.oparray, other.oparray
            op = lambda u: _lift(lambda p, q: p + q)(a(u), b(u))
        return LinearOperator(
            self.varmat + other.varmat,
            op,
            domain,
            _order_max(self.difforder, other.difforder),
            self.blocksize,
        )

    def __radd__(self, other):
        return self + other

    def __neg__(self) -> "LinearOperator":
        return self._scaled(-1.0)

    def __sub__(self, other):
        if operand_kind(other) is OperandKind.CHEBFUN:
            return NotImplemented
        return self + (-other)

    def __rsub__(self, other):
        return (-self) + other

    def __matmul__(self, other):
        if operand_kind(other) is not OperandKind.OPERATOR:
            return NotImplemented
        domain = domain_check(self.domain, other.domain)
        if self.blocksize[1] != other.blocksize[0]:
            raise ValueError(f"Inner block dimensions differ: {self.blocksize} and {other.blocksize}")
        op = None
        if self.oparray is not None and other.oparray is not None:
            a, b = self.oparray, other.oparray
            op = lambda u: a(b(u))
        return LinearOperator(
            self.varmat @ other.varmat,
            op,
            domain,
            _order_compose(self.difforder, other.difforder),
            (self.blocksize[0], other.blocksize[1]),
        )

    def __mul__(self, other):
        if isinstance(other, (list, tuple)):
            return self.apply(list(other))
        kind = operand_kind(other)
        if kind is OperandKind.SCALAR:
            return self._scaled(other)
        if kind is OperandKind.OPERATOR:
            return self @ other
        domain_check(self.domain, other.domain)
        return self.apply(other)

    def __rmul__(self, other):
        kind = operand_kind(other)
        if kind is OperandKind.SCALAR:
            return self._scaled(other)
        if kind is OperandKind.CHEBFUN:
            return diag_operator(other) @ self
        return NotImplemented

    def __truediv__(self, other):
        if operand_kind(other) is not OperandKind.SCALAR:
            return NotImplemented
        return self._scaled(1.0 / other)

    def __pow__(self, k: int) -> "LinearOperator":
        if int(k) != k or k < 0:
            raise ValueError(f"Operator powers must be non-negative integers, got {k}")
        out = self._identity_like()
        for _ in range(int(k)):
            out = out @ self
        return out

    # ------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------

    @classmethod
    def block(cls, rows) -> "LinearOperator":
        """
        Block operator for a system of equations.

        Entries are LinearOperators on a common domain, or numbers (0 is the
        zero operator, c the multiple c·I).
        """
        domain = None
        for row in rows:
            for b in row:
                if operand_kind(b) is OperandKind.OPERATOR:
                    domain = b.domain if domain is None else domain_check(domain, b.domain)
        if domain is None:
            raise ValueError("A block operator needs at least one operator entry")

        def as_op(b):
            if operand_kind(b) is OperandKind.OPERATOR:
                return b
            if b == 0:
                return zeros_operator(domain)
            return identity_operator(domain)._scaled(b)

        ops = [[as_op(b) for b in row] for row in rows]
        ncols = len(ops[0])
        if any(len(row) != ncols for row in ops):
            raise ValueError("Block rows must have equal length")
        if any(op.blocksize != (1, 1) for row in ops for op in row):
            raise ValueError("Block entries must be scalar operators")

        oparray = None
        if all(op.oparray is not None for row in ops for op in row):

            def oparray(us):
                out = []
                for row in ops:
                    terms = [op.oparray(u) for op, u in zip(row, us)]
                    total = terms[0]
                    for t in terms[1:]:
                        total = total + t
                    out.append(total)
                return out

        return cls(
            OperatorMatrix.block([[op.varmat for op in row] for row in ops]),
            oparray,
            domain,
            tuple(tuple(op.difforder[0][0] for op in row) for row in ops),
            (len(ops), ncols),
        )


# ============================================================================
# Constructors
# ============================================================================


def diff_operator(domain=(-1.0, 1.0), k: int = 1) -> LinearOperator:
    """k-th derivative d^k/dx^k."""
    domain = _as_domain(domain)
    return LinearOperator(
        OperatorMatrix(lambda n: diffmat(n, domain, k)),
        lambda u: u.diff(k),
        domain,
        ((k,),),
    )


def identity_operator(domain=(-1.0, 1.0)) -> LinearOperator:
    domain = _as_domain(domain)
    return LinearOperator(OperatorMatrix.eye(), lambda u: u, domain, ((0,),))


def zeros_operator(domain=(-1.0, 1.0)) -> LinearOperator:
    domain = _as_domain(domain)
    return LinearOperator(OperatorMatrix.zeros(), lambda u: 0.0 * u, domain, ((0,),))


def cumsum_operator(domain=(-1.0, 1.0)) -> LinearOperator:
    """Indefinite integral from the left end (order -1)."""
    domain = _as_domain(domain)
    return LinearOperator(
        OperatorMatrix(lambda n: cumsummat(n, domain)),
        lambda u: u.cumsum(),
        domain,
        ((-1,),),
    )


def diag_operator(f, domain=None) -> LinearOperator:
    """
    Multiplication by a function.

    Parameters:
    -----------
    f : Chebfun or callable
        Multiplier; a callable needs an explicit domain.
    domain : tuple, optional
        Interval (defaults to the chebfun's domain).
    """
    if isinstance(f, Chebfun):
        domain = f.domain if domain is None else domain_check(f.domain, domain)
    elif domain is None:
        raise ValueError("diag_operator of a plain function needs a domain")
    domain = _as_domain(domain)
    return LinearOperator(
        OperatorMatrix(lambda n: jnp.diag(evaluate(f, chebpts(n, domain)))),
        lambda u: u * f if isinstance(f, Chebfun) else u * Chebfun(f, domain),
        domain,
        ((0,),),
    )
