# ============================================================================
# Variable-Sized Matrices
# ============================================================================
"""
OperatorMatrix: a deferred rule n ↦ matrix.

Combinators build new rules closed over their operands and never
materialize, so that for every valid n

    (A + B)(n) == A(n) + B(n)
    (A @ B)(n) == A(n) @ B(n)
    A[rows, cols](n) == A(n)[rows, cols]

Row and column selections may be integers, slices, index lists, or
callables of n returning any of these (e.g. ``lambda n: [0, n - 1]``).
"""

from typing import Any, Callable

import equinox as eqx
import jax.numpy as jnp
from jaxtyping import Array

from ..utils import OperandKind, operand_kind


def _resolve(sel, n: int):
    if callable(sel):
        sel = sel(n)
    if isinstance(sel, int):
        return jnp.asarray([sel], dtype=int)
    if isinstance(sel, (list, tuple)):
        return jnp.asarray(sel, dtype=int)
    return sel


class OperatorMatrix(eqx.Module):
    """
    Variable-sized matrix defined by a rule of the discretization size.

    >>> D = OperatorMatrix(lambda n: diffmat(n, (0.0, 1.0)))
    >>> (D @ D)(9).shape
    (9, 9)

    Attributes:
    -----------
        defn : callable
            n ↦ Array [r(n), c(n)].
        rowsel, colsel : optional
            Row and column selections applied after the rule.
    """

    defn: Callable
    rowsel: Any = None
    colsel: Any = None

    def materialize(self, n: int) -> Array:
        """Concrete matrix at size n."""
        A = jnp.atleast_2d(jnp.asarray(self.defn(n)))
        if self.rowsel is not None:
            A = A[_resolve(self.rowsel, n), :]
        if self.colsel is not None:
            A = A[:, _resolve(self.colsel, n)]
        return A

    def __call__(self, n: int) -> Array:
        return self.materialize(n)

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def eye(cls) -> "OperatorMatrix":
        return cls(lambda n: jnp.eye(n))

    @classmethod
    def zeros(cls) -> "OperatorMatrix":
        return cls(lambda n: jnp.zeros((n, n)))

    @classmethod
    def block(cls, rows) -> "OperatorMatrix":
        """
        Blocked rule from a nested list of OperatorMatrix (or scalars, which
        act as multiples of the identity).
        """
        rows = [[cls._as_block(b) for b in row] for row in rows]

        def defn(n):
            return jnp.block([[b(n) for b in row] for row in rows])

        return cls(defn)

    @classmethod
    def _as_block(cls, b) -> "OperatorMatrix":
        if isinstance(b, OperatorMatrix):
            return b
        return b * cls.eye()

    # ------------------------------------------------------------------
    # Algebra
    # ------------------------------------------------------------------

    def _combine(self, other, fn) -> "OperatorMatrix":
        if isinstance(other, OperatorMatrix):
            return OperatorMatrix(lambda n: fn(self(n), other(n)))
        if operand_kind(other) is OperandKind.SCALAR:
            return OperatorMatrix(lambda n: fn(self(n), other))
        return NotImplemented

    def __add__(self, other):
        return self._combine(other, lambda a, b: a + b)

    def __radd__(self, other):
        return self + other

    def __sub__(self, other):
        return self._combine(other, lambda a, b: a - b)

    def __rsub__(self, other):
        return (-self) + other

    def __mul__(self, other):
        if isinstance(other, OperatorMatrix):
            return self @ other
        return self._combine(other, lambda a, b: a * b)

    def __rmul__(self, other):
        return self._combine(other, lambda a, b: b * a)

    def __matmul__(self, other):
        if not isinstance(other, OperatorMatrix):
            return NotImplemented
        return OperatorMatrix(lambda n: self(n) @ other(n))

    def __truediv__(self, other):
        if operand_kind(other) is not OperandKind.SCALAR:
            return NotImplemented
        return self._combine(other, lambda a, b: a / b)

    def __neg__(self) -> "OperatorMatrix":
        return OperatorMatrix(lambda n: -self(n))

    def __pow__(self, k: int) -> "OperatorMatrix":
        if k == 0:
            return OperatorMatrix(lambda n: jnp.eye(self(n).shape[0]))
        out = self
        for _ in range(k - 1):
            out = out @ self
        return out

    def __getitem__(self, index) -> "OperatorMatrix":
        """Row/column selection; stacks on top of any existing selection."""
        if not isinstance(index, tuple):
            index = (index, slice(None))
        rowsel, colsel = index
        if self.rowsel is None and self.colsel is None:
            return OperatorMatrix(self.defn, rowsel, colsel)
        return OperatorMatrix(self.materialize, rowsel, colsel)
