# ============================================================================
# Collocation Fields
# ============================================================================
"""
Collocation: an unknown sampled at n second-kind points.

A Collocation supports the same small protocol as a Chebfun (``diff``,
``cumsum``, ``sum``, arithmetic, ``**``, ``compose``, ``x``, evaluation),
so one operator expression written as ``op(x, u)`` can be evaluated on
chebfuns (to form residuals) and on collocation fields (to form Jacobian
matrices with ``jax.jacfwd``). The highest derivative order applied is
tracked statically, which gives the differential order of the expression.

Example:
--------
>>> op = lambda x, u: u.diff(2) + u.compose(jnp.exp)
>>> J = jax.jacfwd(lambda v: op(None, Collocation(v, (0.0, 1.0))).values)(v0)
"""

from typing import ClassVar

import equinox as eqx
import jax.numpy as jnp
from jaxtyping import Array, Float

from ..chebyshev.grid import bary, bary_weights, chebpts, cumsummat, diffmat, quadwts
from ..fun.chebfun import Chebfun
from ..utils import OperandKind, operand_kind


class Collocation(eqx.Module):
    """
    Values of one unknown at n second-kind points of an interval.

    Attributes:
    -----------
        values : Array [n]
        domain : tuple
            Interval (a, b).
        order : int
            Highest derivative order applied so far (integration counts -1).
    """

    values: Float[Array, "n"]
    domain: tuple = eqx.field(static=True)
    order: int = eqx.field(static=True, default=0)

    operand_kind: ClassVar[OperandKind] = OperandKind.FIELD

    @property
    def n(self) -> int:
        return int(self.values.shape[0])

    @property
    def points(self) -> Array:
        return chebpts(self.n, self.domain)

    @property
    def x(self) -> "Collocation":
        """The independent variable on the same grid."""
        return Collocation(self.points, self.domain, 0)

    def _new(self, values, order=None) -> "Collocation":
        return Collocation(values, self.domain, self.order if order is None else order)

    def __call__(self, x) -> Array:
        """Barycentric evaluation of the interpolant at x."""
        return bary(jnp.asarray(x, dtype=float), self.values, self.points, bary_weights(self.n))

    # ------------------------------------------------------------------
    # Calculus
    # ------------------------------------------------------------------

    def diff(self, k: int = 1) -> "Collocation":
        if k == 0:
            return self
        return self._new(diffmat(self.n, self.domain, k) @ self.values, self.order + k)

    def cumsum(self) -> "Collocation":
        return self._new(cumsummat(self.n, self.domain) @ self.values, self.order - 1)

    def sum(self) -> Array:
        return quadwts(self.n, self.domain) @ self.values

    def compose(self, fn) -> "Collocation":
        """Pointwise fn (a jnp function) of the values."""
        return self._new(fn(self.values))

    # ------------------------------------------------------------------
    # Algebra
    # ------------------------------------------------------------------

    def _operand(self, other):
        """Values and order of the other operand on this grid."""
        if isinstance(other, jnp.ndarray) and other.ndim == 1:
            return other, 0
        kind = operand_kind(other)
        if kind is OperandKind.FIELD:
            return other.values, other.order
        if kind is OperandKind.CHEBFUN:
            return other(self.points), 0
        if kind is OperandKind.SCALAR:
            return other, 0
        raise TypeError(f"Cannot combine a collocation field with {type(other).__name__}")

    def _binary(self, other, fn, reverse: bool = False):
        try:
            vals, order = self._operand(other)
        except TypeError:
            return NotImplemented
        out = fn(vals, self.values) if reverse else fn(self.values, vals)
        return self._new(out, max(self.order, order))

    def __add__(self, other):
        return self._binary(other, lambda a, b: a + b)

    def __radd__(self, other):
        return self._binary(other, lambda a, b: a + b, reverse=True)

    def __sub__(self, other):
        return self._binary(other, lambda a, b: a - b)

    def __rsub__(self, other):
        return self._binary(other, lambda a, b: a - b, reverse=True)

    def __mul__(self, other):
        return self._binary(other, lambda a, b: a * b)

    def __rmul__(self, other):
        return self._binary(other, lambda a, b: a * b, reverse=True)

    def __truediv__(self, other):
        return self._binary(other, lambda a, b: a / b)

    def __rtruediv__(self, other):
        return self._binary(other, lambda a, b: a / b, reverse=True)

    def __pow__(self, other):
        return self._binary(other, lambda a, b: a**b)

    def __rpow__(self, other):
        return self._binary(other, lambda a, b: a**b, reverse=True)

    def __neg__(self) -> "Collocation":
        return self._new(-self.values)

    def __pos__(self) -> "Collocation":
        return self
