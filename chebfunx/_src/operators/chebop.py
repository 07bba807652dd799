# ============================================================================
# Nonlinear Operators (Newton)
# ============================================================================
"""
Operator: a possibly nonlinear differential operator N(u) with boundary
conditions, solved by Newton iteration on chebfuns.

The operator is written once, as a function ``op(x, u)`` of the independent
variable and the unknown, using the field protocol shared by ``Chebfun``
and ``Collocation``:

    op = lambda x, u: u.diff(2) + u.compose(jnp.exp)

Newton Iteration:
-----------------
    r  = N(u) - f                     residual (a chebfun)
    J  = jacfwd of the collocation form at u, sampled on n points
    J du = -r,  B du = -(B u - g)     linear solve with growing matrices
    u ← u + du

until ‖du‖ ≤ newton_tol · max(1, ‖u‖).
"""

import dataclasses
from typing import Any, ClassVar

import equinox as eqx
import jax
import jax.numpy as jnp
from loguru import logger

from ..chebyshev.grid import chebpts
from ..config import SolverPrefs
from ..errors import SolverConvergenceError
from ..fun.chebfun import Chebfun
from ..utils import OperandKind, domain_check, new_id, operand_kind
from .bcs import BCKind, Side, as_bcs
from .collocation import Collocation
from .linop import LinearOperator, _as_domain
from .varmat import OperatorMatrix

# Grid used to read off the differential order of an expression
_TRACE_SIZE = 9


def _field_values(out, n: int):
    if operand_kind(out) is OperandKind.FIELD:
        return out.values
    return jnp.broadcast_to(jnp.asarray(out), (n,))


def _field_order(out) -> int:
    return out.order if operand_kind(out) is OperandKind.FIELD else 0


def _jacobian_operator(fn, u: Chebfun, domain) -> LinearOperator:
    """
    LinearOperator whose matrix at size n is d fn / d u at the samples of u.

    Parameters:
    -----------
    fn : callable
        Collocation ↦ Collocation (or scalar).
    u : Chebfun
        Linearization point.
    domain : tuple
    """

    def matrix(n):
        v0 = jnp.asarray(u(chebpts(n, domain)), dtype=float)
        return jax.jacfwd(lambda v: _field_values(fn(Collocation(v, domain)), n))(v0)

    probe = fn(Collocation(jnp.ones(_TRACE_SIZE), domain))
    order = _field_order(probe)
    return LinearOperator(OperatorMatrix(matrix), None, domain, ((order,),))


class Operator(eqx.Module):
    """
    Differential operator with boundary conditions on an interval.

    >>> N = Operator((0.0, 1.0), lambda x, u: u.diff(2) - u**2, lbc=0.0, rbc=1.0)
    >>> u = N.solve()

    Attributes:
    -----------
        domain : tuple
            Interval (a, b).
        op : LinearOperator or callable
            Linear operator, or ``op(x, u)`` on fields.
        lbc, rbc : tuple[BoundaryCondition]
            Conditions; OPERATOR conditions may hold callables ``g(u)``.
        init : Chebfun, callable, scalar or None
            Initial Newton iterate (zero by default).
    """

    domain: tuple
    op: Any
    lbc: tuple
    rbc: tuple
    init: Any

    operand_kind: ClassVar[OperandKind] = OperandKind.OPERATOR

    def __init__(self, domain, op, lbc=(), rbc=(), init=None):
        self.domain = _as_domain(domain)
        if isinstance(op, LinearOperator):
            domain_check(self.domain, op.domain)
        self.op = op
        self.lbc = as_bcs(lbc)
        self.rbc = as_bcs(rbc)
        self.init = init

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, x, u):
        """N(u) on a Chebfun or a Collocation."""
        if not isinstance(self.op, LinearOperator):
            return self.op(x, u)
        if operand_kind(u) is OperandKind.FIELD:
            return Collocation(self.op.matrix(u.n) @ u.values, u.domain, u.order + self.op.order)
        return self.op.apply(u)

    def apply(self, u: Chebfun) -> Chebfun:
        domain_check(self.domain, u.domain)
        return self.evaluate(u.x, u)

    def __call__(self, u: Chebfun) -> Chebfun:
        return self.apply(u)

    @property
    def order(self) -> int:
        """Differential order, read from a collocation trace."""
        probe = Collocation(jnp.ones(_TRACE_SIZE), self.domain)
        return max(0, _field_order(self.evaluate(probe.x, probe)))

    # ------------------------------------------------------------------
    # Boundary conditions
    # ------------------------------------------------------------------

    def with_bc(self, spec) -> "Operator":
        bcs = as_bcs(spec)
        if any(bc.kind is BCKind.PERIODIC for bc in bcs):
            return Operator(self.domain, self.op, bcs, (), self.init)
        return Operator(self.domain, self.op, bcs, bcs, self.init)

    def with_lbc(self, spec) -> "Operator":
        return Operator(self.domain, self.op, spec, self.rbc, self.init)

    def with_rbc(self, spec) -> "Operator":
        return Operator(self.domain, self.op, self.lbc, spec, self.init)

    def with_init(self, init) -> "Operator":
        return Operator(self.domain, self.op, self.lbc, self.rbc, init)

    def _linear_bcs(self, bcs, u: Chebfun, side: Side, order: int) -> tuple:
        """Conditions on the Newton correction at u."""
        out = []
        for bc in bcs:
            if bc.kind is BCKind.PERIODIC:
                out.append(bc)
                continue
            residual = bc.residual(u, side, order)[0]
            operator = bc.operator
            if bc.kind is BCKind.OPERATOR and not hasattr(operator, "matrix"):
                operator = _jacobian_operator(operator, u, self.domain)
            out.append(dataclasses.replace(bc, value=-residual, operator=operator))
        return tuple(out)

    # ------------------------------------------------------------------
    # Linearization and Newton
    # ------------------------------------------------------------------

    def linearize(self, u: Chebfun) -> LinearOperator:
        """Fréchet derivative of N at u (without boundary conditions)."""
        if isinstance(self.op, LinearOperator):
            return dataclasses.replace(self.op, lbc=(), rbc=(), id=new_id())
        return _jacobian_operator(lambda w: self.evaluate(w.x, w), u, self.domain)

    def _initial_guess(self) -> Chebfun:
        if self.init is None:
            return Chebfun(0.0, self.domain)
        if isinstance(self.init, Chebfun):
            domain_check(self.domain, self.init.domain)
            return self.init
        return Chebfun(self.init, self.domain)

    def residual(self, u: Chebfun, rhs=0.0) -> Chebfun:
        """N(u) - rhs."""
        r = self.apply(u)
        if operand_kind(r) is OperandKind.SCALAR:
            r = Chebfun(r, self.domain)
        return r - rhs

    def solve(self, rhs=0.0, prefs: SolverPrefs | None = None) -> Chebfun:
        """
        Solve N(u) = rhs with the attached boundary conditions.

        Parameters:
        -----------
        rhs : Chebfun, callable or scalar
        prefs : SolverPrefs, optional
            ``newton_tol`` and ``newton_maxiter`` control the iteration;
            the remaining fields are passed to each linear solve.

        Raises:
        -------
        SolverConvergenceError
            Newton did not converge within ``newton_maxiter`` steps.
        """
        prefs = SolverPrefs() if prefs is None else prefs
        if callable(rhs) and not isinstance(rhs, Chebfun):
            rhs = Chebfun(rhs, self.domain)
        u = self._initial_guess()
        order = self.order
        for it in range(prefs.newton_maxiter):
            r = self.residual(u, rhs)
            L = self.linearize(u)
            L = dataclasses.replace(
                L,
                lbc=self._linear_bcs(self.lbc, u, Side.LEFT, order),
                rbc=self._linear_bcs(self.rbc, u, Side.RIGHT, order),
                scale=float(u.norm()),
                id=new_id(),
            )
            du = L.solve(-r, prefs)
            u = u + du
            nu, ndu = float(u.norm()), float(du.norm())
            logger.info(f"newton step {it + 1}: |du| = {ndu:.3e}, |u| = {nu:.3e}")
            if ndu <= prefs.newton_tol * max(1.0, nu):
                return u
        raise SolverConvergenceError(
            f"Newton iteration did not converge in {prefs.newton_maxiter} steps"
        )

    # ------------------------------------------------------------------
    # Algebra
    # ------------------------------------------------------------------

    def _combine(self, other, fn) -> "Operator":
        kind = operand_kind(other)
        if kind is OperandKind.SCALAR:
            return Operator(self.domain, lambda x, u: fn(self.evaluate(x, u), other))
        if kind is OperandKind.OPERATOR:
            domain = domain_check(self.domain, other.domain)
            if isinstance(other, LinearOperator):
                other = Operator(domain, other)
            return Operator(domain, lambda x, u: fn(self.evaluate(x, u), other.evaluate(x, u)))
        return NotImplemented

    def __add__(self, other):
        return self._combine(other, lambda a, b: a + b)

    def __radd__(self, other):
        return self + other

    def __sub__(self, other):
        return self._combine(other, lambda a, b: a - b)

    def __rsub__(self, other):
        return (-self) + other

    def __neg__(self) -> "Operator":
        return Operator(self.domain, lambda x, u: -self.evaluate(x, u))

    def __mul__(self, other):
        kind = operand_kind(other)
        if kind is OperandKind.CHEBFUN:
            return self.apply(other)
        if kind is OperandKind.SCALAR:
            return self._combine(other, lambda a, b: a * b)
        return NotImplemented

    def __rmul__(self, other):
        if operand_kind(other) is OperandKind.SCALAR:
            return self * other
        return NotImplemented
