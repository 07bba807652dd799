# ============================================================================
# Piecewise Chebyshev Functions
# ============================================================================
"""
Chebfun: an ordered sequence of pieces plus a table of breakpoint values.

Breakpoint table (``imps``):
----------------------------
    Row 0 holds the function value at each breakpoint. Row k ≥ 1 holds the
    coefficient of δ^(k-1) (a Dirac delta or its derivatives) sitting at that
    breakpoint. Differentiation turns jumps into deltas; integration turns
    deltas back into jumps, so that

        (∫f)' = f      and      ∫(f') = f - f(a)

    hold through discontinuities.

Arithmetic between chebfuns and composition re-run the adaptive constructor
on the composed handle over the union of breakpoints, evaluating every
operand from the correct side of each breakpoint.
"""

import math
from typing import ClassVar

import equinox as eqx
import jax.numpy as jnp
import numpy as np
from jaxtyping import Array
from loguru import logger

from ..config import EPS, ChebfunPrefs, merge_prefs
from ..errors import UnsupportedRepresentationError
from ..utils import OperandKind, domain_check, horizontal_scale, operand_kind
from .construct import _point_values, construct
from .maps import default_map
from .piece import Piece

_JUMP_TOL = 1e-11


def _union_ends(*groups, hscale: float) -> list[float]:
    pts = sorted(float(e) for g in groups for e in g)
    out = []
    for e in pts:
        if out and (e == out[-1] or abs(e - out[-1]) <= 10 * EPS * hscale):
            continue
        out.append(e)
    return out


def _interior_point(a: float, b: float) -> float:
    if math.isinf(a) or math.isinf(b):
        return float(default_map(a, b).forward(jnp.asarray(0.0)))
    return 0.5 * (a + b)


class Chebfun(eqx.Module):
    """
    Piecewise Chebyshev representation of a function of one variable.

    Construct adaptively from a vectorised handle:

    >>> f = Chebfun(jnp.sin, (0.0, jnp.pi))
    >>> f.sum()          # ≈ 2
    >>> g = Chebfun(jnp.sign, splitting=True)

    Attributes:
    -----------
        pieces : tuple[Piece]
            Smooth pieces, left to right.
        ends : tuple[float]
            Breakpoints (len(pieces) + 1), strictly increasing.
        imps : Array [k+1, len(ends)]
            Breakpoint table: point values and delta coefficients.
        vscale : float
            Global vertical scale.
        transposed : bool
            Row (True) or column (False) orientation.
        happy : bool
            Whether every piece converged.
    """

    pieces: tuple
    ends: tuple
    imps: Array
    vscale: float
    transposed: bool
    happy: bool

    operand_kind: ClassVar[OperandKind] = OperandKind.CHEBFUN

    def __init__(
        self,
        op=None,
        domain=(-1.0, 1.0),
        prefs: ChebfunPrefs | None = None,
        *,
        pieces=None,
        ends=None,
        imps=None,
        vscale=None,
        transposed: bool = False,
        happy=None,
        **overrides,
    ):
        if pieces is None:
            if op is None:
                raise ValueError("Chebfun needs a function, a constant or pieces")
            domain = [float(d) for d in domain]
            if isinstance(op, Chebfun):
                pieces, ends, imps, happy = op.pieces, op.ends, op.imps, op.happy
                transposed = op.transposed
            elif callable(op):
                prefs = merge_prefs(prefs, **overrides)
                res = construct(op, domain, prefs)
                pieces, ends, imps, happy = res.pieces, res.ends, res.imps, res.happy
                logger.debug(f"chebfun on {domain}: {len(pieces)} piece(s), lengths {[p.n for p in pieces]}")
            else:
                value = jnp.asarray(op)
                pieces = tuple(Piece.constant(value, (a, b)) for a, b in zip(domain[:-1], domain[1:]))
                ends = tuple(domain)
                imps = jnp.full((1, len(domain)), value)
        pieces = tuple(pieces)
        if not pieces:
            raise ValueError("A chebfun needs at least one piece")
        if ends is None:
            ends = (pieces[0].domain[0],) + tuple(p.domain[1] for p in pieces)
        ends = tuple(float(e) for e in ends)
        if len(ends) != len(pieces) + 1:
            raise ValueError(f"{len(pieces)} pieces need {len(pieces) + 1} breakpoints, got {len(ends)}")
        if imps is None:
            imps = _point_values(None, pieces, ends)[None, :]
        imps = jnp.atleast_2d(jnp.asarray(imps))
        if vscale is None:
            vscale = max(p.vscale for p in pieces)

        self.pieces = pieces
        self.ends = ends
        self.imps = imps
        self.vscale = float(vscale)
        self.transposed = bool(transposed)
        self.happy = all(p.happy for p in pieces) if happy is None else bool(happy)

    # ------------------------------------------------------------------
    # Alternative constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_values(cls, vals, domain=(-1.0, 1.0)) -> "Chebfun":
        """Single-piece chebfun through values at second-kind points."""
        return cls(pieces=(Piece(vals, domain),))

    @classmethod
    def from_pieces(cls, pieces, imps=None) -> "Chebfun":
        return cls(pieces=tuple(pieces), imps=imps)

    @classmethod
    def constant(cls, value, domain=(-1.0, 1.0)) -> "Chebfun":
        return cls(value, domain)

    @classmethod
    def identity(cls, domain=(-1.0, 1.0)) -> "Chebfun":
        """The function x on a bounded domain (breakpoints allowed)."""
        domain = [float(d) for d in domain]
        if math.isinf(domain[0]) or math.isinf(domain[-1]):
            raise UnsupportedRepresentationError("x is unbounded on an infinite interval")
        pieces = tuple(Piece(jnp.asarray([a, b]), (a, b)) for a, b in zip(domain[:-1], domain[1:]))
        return cls(pieces=pieces, imps=jnp.asarray(domain)[None, :])

    def _rebuild(self, pieces, ends=None, imps=None, happy=None) -> "Chebfun":
        return Chebfun(
            pieces=pieces,
            ends=self.ends if ends is None else ends,
            imps=imps,
            transposed=self.transposed,
            happy=happy,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def domain(self) -> tuple[float, float]:
        return self.ends[0], self.ends[-1]

    @property
    def hscale(self) -> float:
        return horizontal_scale(self.domain)

    @property
    def x(self) -> "Chebfun":
        return Chebfun.identity(self.ends)

    @property
    def T(self) -> "Chebfun":
        return self.transpose()

    @property
    def is_complex(self) -> bool:
        return any(jnp.iscomplexobj(p.vals) for p in self.pieces) or jnp.iscomplexobj(self.imps)

    def __len__(self) -> int:
        return sum(p.n for p in self.pieces)

    def transpose(self) -> "Chebfun":
        return Chebfun(pieces=self.pieces, ends=self.ends, imps=self.imps, transposed=not self.transposed, happy=self.happy)

    def _piece_index(self, x: float) -> int:
        idx = np.searchsorted(np.asarray(self.ends), x, side="right") - 1
        return int(np.clip(idx, 0, len(self.pieces) - 1))

    def _onesided(self):
        """Left and right limits at every breakpoint (None beyond the domain)."""
        ev = [p.endvalues() for p in self.pieces]
        left = [None] + [e[1] for e in ev]
        right = [e[0] for e in ev] + [None]
        return left, right

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def __call__(self, x) -> Array:
        """
        Evaluate at x.

        Exact breakpoints return the stored point value (signed infinity when
        a delta sits there); points outside the domain give NaN.
        """
        x = jnp.asarray(x)
        if not jnp.issubdtype(x.dtype, jnp.inexact):
            x = x.astype(float)
        shape = x.shape
        xf = x.reshape(-1)
        dtype = jnp.result_type(self.imps.dtype, *[p.vals.dtype for p in self.pieces], float)
        out = jnp.full(xf.shape, jnp.nan, dtype=dtype)
        for i, p in enumerate(self.pieces):
            lo, hi = self.ends[i], self.ends[i + 1]
            inside = (xf > lo) & (xf < hi)
            if bool(jnp.any(inside)):
                safe = jnp.where(inside, xf, _interior_point(lo, hi))
                out = jnp.where(inside, p(safe), out)
        for j, e in enumerate(self.ends):
            hit = xf == e
            if bool(jnp.any(hit)):
                out = jnp.where(hit, self._point_value(j), out)
        return out.reshape(shape)

    def _point_value(self, j: int):
        if self.imps.shape[0] > 1:
            deltas = np.asarray(self.imps[1:, j])
            nz = np.flatnonzero(deltas != 0)
            if nz.shape[0]:
                return jnp.inf * jnp.sign(jnp.real(deltas[nz[0]]))
        return self.imps[0, j]

    def set_value(self, x: float, value) -> "Chebfun":
        """
        Overwrite the point value at x, inserting a breakpoint if needed.

        Reading back ``f(x)`` returns exactly ``value``; repeating the call
        is a no-op. Delta content at x is replaced by the point value.
        """
        x = float(x)
        a, b = self.domain
        if not a <= x <= b:
            raise ValueError(f"{x} is outside the domain [{a}, {b}]")
        if x in self.ends:
            j = self.ends.index(x)
            imps = self.imps.at[0, j].set(value).at[1:, j].set(0.0)
            return self._rebuild(self.pieces, imps=imps)
        i = self._piece_index(x)
        p = self.pieces[i]
        lo, hi = self.ends[i], self.ends[i + 1]
        pieces = self.pieces[:i] + (p.restrict(lo, x), p.restrict(x, hi)) + self.pieces[i + 1 :]
        ends = self.ends[: i + 1] + (x,) + self.ends[i + 1 :]
        column = jnp.zeros((self.imps.shape[0], 1), dtype=jnp.result_type(self.imps, jnp.asarray(value)))
        column = column.at[0, 0].set(value)
        imps = jnp.concatenate([self.imps[:, : i + 1], column, self.imps[:, i + 1 :]], axis=1)
        return self._rebuild(pieces, ends, imps)

    # ------------------------------------------------------------------
    # Calculus
    # ------------------------------------------------------------------

    def sum(self, a=None, b=None) -> Array:
        """
        Definite integral over the domain, or over [a, b] via ``cumsum``.

        Delta content in the breakpoint table contributes its weight.
        """
        if a is None and b is None:
            total = sum(p.sum() for p in self.pieces)
            if self.imps.shape[0] > 1:
                total = total + jnp.sum(self.imps[1])
            return total
        a = self.domain[0] if a is None else a
        b = self.domain[1] if b is None else b
        F = self.cumsum()
        return F(b) - F(a)

    def cumsum(self) -> "Chebfun":
        """Indefinite integral from the left end; deltas become jumps."""
        n_ends = len(self.ends)
        deltas = self.imps[1] if self.imps.shape[0] > 1 else jnp.zeros(n_ends)
        pieces, row0 = [], []
        last = 0.0
        for i, p in enumerate(self.pieces):
            last = last + deltas[i]
            g = p.cumsum()
            if g.has_exps and last != 0:
                raise UnsupportedRepresentationError(
                    "Cannot add an integration constant to a singular piece"
                )
            g = g + last
            left, right = g.endvalues()
            pieces.append(g)
            row0.append(left)
            last = right
        row0.append(last)
        imps = jnp.stack([jnp.asarray(v) for v in row0])[None, :]
        if self.imps.shape[0] > 2:
            imps = jnp.concatenate([imps, self.imps[2:]], axis=0)
        return self._rebuild(tuple(pieces), imps=imps)

    def diff(self, k: int = 1) -> "Chebfun":
        """k-th derivative; jumps are deposited as deltas at breakpoints."""
        f = self
        for _ in range(k):
            f = f._diff1()
        return f

    def _diff1(self) -> "Chebfun":
        left, right = self._onesided()
        n_ends = len(self.ends)
        tol = _JUMP_TOL * max(self.vscale, EPS)
        jumps = []
        for j in range(n_ends):
            if left[j] is None or right[j] is None:
                jumps.append(0.0)
                continue
            jump = right[j] - left[j]
            ok = bool(jnp.isfinite(jump)) and bool(jnp.abs(jump) > tol)
            jumps.append(jump if ok else 0.0)

        pieces = tuple(p.diff() for p in self.pieces)
        new = Chebfun(pieces=pieces, ends=self.ends, transposed=self.transposed)
        dleft, dright = new._onesided()
        row0 = []
        for j in range(n_ends):
            vals = [v for v in (dleft[j], dright[j]) if v is not None]
            row0.append(jnp.mean(jnp.stack(vals)))
        rows = [jnp.stack(row0), jnp.stack([jnp.asarray(v) for v in jumps])]
        for r in range(1, self.imps.shape[0]):
            rows.append(self.imps[r])
        dtype = jnp.result_type(*rows)
        imps = jnp.stack([r.astype(dtype) for r in rows])
        while imps.shape[0] > 1 and not bool(jnp.any(imps[-1] != 0)):
            imps = imps[:-1]
        return self._rebuild(pieces, imps=imps)

    def roots(self) -> Array:
        """Real roots, including breakpoints where the function crosses zero."""
        out = []
        for p in self.pieces:
            out.extend(np.asarray(p.roots()).tolist())
        left, right = self._onesided()
        tol = 1e3 * EPS * max(self.vscale, EPS)
        real = not self.is_complex
        for j, e in enumerate(self.ends):
            v = self.imps[0, j]
            if bool(jnp.abs(v) <= tol):
                out.append(e)
            elif real and left[j] is not None and right[j] is not None:
                if float(jnp.sign(left[j]) * jnp.sign(right[j])) < 0:
                    out.append(e)
        out = sorted(out)
        hs = self.hscale
        dedup = []
        for r in out:
            if dedup and abs(r - dedup[-1]) <= 1e-12 * hs:
                continue
            dedup.append(r)
        return jnp.asarray(dedup)

    def _extrema_values(self) -> Array:
        vals = []
        for p in self.pieces:
            crit = p.diff().roots()
            if crit.shape[0]:
                vals.append(p(crit))
            vals.append(p.endvalues())
        vals.append(self.imps[0])
        return jnp.concatenate([jnp.atleast_1d(v) for v in vals])

    def max(self) -> Array:
        """Global maximum (largest modulus for complex functions)."""
        v = self._extrema_values()
        key = jnp.abs(v) if self.is_complex else v
        key = jnp.where(jnp.isnan(key), -jnp.inf, key)
        return v[jnp.argmax(key)]

    def min(self) -> Array:
        """Global minimum (smallest modulus for complex functions)."""
        v = self._extrema_values()
        key = jnp.abs(v) if self.is_complex else v
        key = jnp.where(jnp.isnan(key), jnp.inf, key)
        return v[jnp.argmin(key)]

    def norm(self, p=2) -> Array:
        """L1, L2 or L∞ norm."""
        if p == 2:
            total = sum(jnp.real((q.conj() * q).sum()) for q in self.pieces)
            return jnp.sqrt(total)
        if p == 1:
            return jnp.real(self.abs().sum())
        if p in (jnp.inf, "inf", math.inf):
            if self.is_complex:
                return jnp.abs(self.abs().max())
            return jnp.maximum(jnp.abs(self.max()), jnp.abs(self.min()))
        raise ValueError(f"Unsupported norm: {p!r}")

    def mean(self) -> Array:
        a, b = self.domain
        return self.sum() / (b - a)

    def inner(self, other: "Chebfun") -> Array:
        """∫ conj(f) g."""
        return (self.conj() * other).sum()

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def compose(self, fn, other: "Chebfun | None" = None, prefs: ChebfunPrefs | None = None, breaks=()) -> "Chebfun":
        """
        Chebfun of ``fn(f)`` or ``fn(f, g)`` by adaptive reconstruction.

        Parameters:
        -----------
        fn : callable
            Vectorised function of one or two arrays.
        other : Chebfun, optional
            Second operand.
        prefs : ChebfunPrefs, optional
            Construction options; the vertical scale defaults to the
            operands' scale.
        breaks : sequence of float
            Additional breakpoints.
        """
        operands = [self] if other is None else [self, other]
        if other is not None:
            domain_check(self.domain, other.domain)
        hs = self.hscale
        ends = _union_ends(*[op.ends for op in operands], breaks, hscale=hs)

        handles = []
        for a, b in zip(ends[:-1], ends[1:]):
            mid = _interior_point(a, b)
            owners = [op.pieces[op._piece_index(mid)] for op in operands]
            handles.append(lambda x, owners=owners: fn(*[q(x) for q in owners]))

        prefs = ChebfunPrefs() if prefs is None else prefs
        vs = max(op.vscale for op in operands)
        prefs = prefs.replace(scale=max(prefs.scale, vs))
        res = construct(handles, ends, prefs)

        at = jnp.asarray(res.ends)
        point = jnp.asarray(fn(*[op(at) for op in operands]))
        point = jnp.broadcast_to(point, at.shape)
        imps = jnp.where(jnp.isfinite(point), point, res.imps[0])[None, :]
        return Chebfun(pieces=res.pieces, ends=res.ends, imps=imps, transposed=self.transposed, happy=res.happy)

    def abs(self) -> "Chebfun":
        """|f| with breakpoints inserted at interior roots."""
        a, b = self.domain
        roots = [float(r) for r in np.asarray(self.roots()) if a < r < b]
        return self.compose(jnp.abs, breaks=roots)

    __abs__ = abs

    # ------------------------------------------------------------------
    # Comparisons
    # ------------------------------------------------------------------

    def _indicator(self, other, sign: float):
        """
        Logical chebfun: 1 where sign·(f - g) > 0 and 0 elsewhere.

        Breakpoints sit at the roots of f - g; zeros of f - g are false.
        Neighbouring pieces with equal values are merged.
        """
        kind = operand_kind(other)
        if kind not in (OperandKind.SCALAR, OperandKind.CHEBFUN):
            return NotImplemented
        if self.is_complex or (kind is OperandKind.CHEBFUN and other.is_complex):
            raise TypeError("Comparison of complex chebfuns is undefined")
        d = (self - other) * sign
        a, b = d.domain
        roots = [float(r) for r in np.asarray(d.roots()) if a < r < b]
        ends = _union_ends(d.ends, roots, hscale=d.hscale)
        tol = 1e3 * EPS * max(d.vscale, EPS)

        def truth(v) -> float:
            return 1.0 if float(jnp.real(v)) > tol else 0.0

        vals = [truth(d(jnp.asarray(_interior_point(lo, hi)))) for lo, hi in zip(ends[:-1], ends[1:])]
        points = [truth(d(jnp.asarray(e))) for e in ends]
        keep = [0]
        for j in range(1, len(ends) - 1):
            if not vals[j - 1] == vals[j] == points[j]:
                keep.append(j)
        keep.append(len(ends) - 1)
        pieces = [Piece.constant(vals[j], (ends[j], ends[k])) for j, k in zip(keep[:-1], keep[1:])]
        imps = jnp.asarray([points[j] for j in keep])[None, :]
        return Chebfun.from_pieces(pieces, imps)

    def __gt__(self, other):
        return self._indicator(other, 1.0)

    def __lt__(self, other):
        return self._indicator(other, -1.0)

    # ------------------------------------------------------------------
    # Algebra
    # ------------------------------------------------------------------

    def _map_pieces(self, fn, imps_fn=None) -> "Chebfun":
        pieces = tuple(fn(p) for p in self.pieces)
        imps = (imps_fn or fn)(self.imps)
        return self._rebuild(pieces, imps=imps)

    def _singular(self) -> bool:
        return any(p.has_exps or p.is_unbounded for p in self.pieces)

    def _piecewise(self, other: "Chebfun", fn) -> "Chebfun":
        """Combine piece by piece (operands must share breakpoints)."""
        if len(self.ends) != len(other.ends) or any(
            abs(a - b) > 10 * EPS * self.hscale for a, b in zip(self.ends, other.ends) if a != b
        ):
            raise UnsupportedRepresentationError(
                "Singular or unbounded chebfuns can only be combined on matching breakpoints"
            )
        pieces = tuple(fn(p, q) for p, q in zip(self.pieces, other.pieces))
        imps = fn(self.imps[:1], other.imps[:1])
        return self._rebuild(pieces, imps=imps)

    def _binary(self, other, fn, shift: bool):
        kind = operand_kind(other)
        if kind is OperandKind.SCALAR:
            pieces = tuple(fn(p, other) for p in self.pieces)
            if shift:
                row0 = fn(self.imps[0], other)
                rest = self.imps[1:].astype(jnp.result_type(row0, self.imps))
                imps = jnp.concatenate([row0[None, :], rest], axis=0)
            else:
                imps = fn(self.imps, other)
            return self._rebuild(pieces, imps=imps)
        if kind is OperandKind.CHEBFUN:
            domain_check(self.domain, other.domain)
            if self._singular() or other._singular():
                return self._piecewise(other, fn)
            return self.compose(fn, other)
        return NotImplemented

    def __add__(self, other):
        return self._binary(other, lambda u, v: u + v, shift=True)

    def __radd__(self, other):
        return self + other

    def __sub__(self, other):
        return self._binary(other, lambda u, v: u - v, shift=True)

    def __rsub__(self, other):
        return (-self) + other

    def __mul__(self, other):
        return self._binary(other, lambda u, v: u * v, shift=False)

    def __rmul__(self, other):
        if operand_kind(other) is OperandKind.SCALAR:
            return self * other
        return NotImplemented

    def __truediv__(self, other):
        return self._binary(other, lambda u, v: u / v, shift=False)

    def __rtruediv__(self, other):
        if operand_kind(other) is OperandKind.SCALAR:
            return self.compose(lambda u: other / u)
        return NotImplemented

    def __pow__(self, other):
        kind = operand_kind(other)
        if kind is OperandKind.SCALAR:
            if other == 1:
                return self
            return self.compose(lambda u: u**other)
        if kind is OperandKind.CHEBFUN:
            return self.compose(lambda u, v: u**v, other)
        return NotImplemented

    def __rpow__(self, other):
        if operand_kind(other) is OperandKind.SCALAR:
            return self.compose(lambda u: other**u)
        return NotImplemented

    def __neg__(self) -> "Chebfun":
        return self._map_pieces(lambda p: -p)

    def __pos__(self) -> "Chebfun":
        return self

    def conj(self) -> "Chebfun":
        return self._map_pieces(lambda p: p.conj(), jnp.conj)

    def real(self) -> "Chebfun":
        return self._map_pieces(lambda p: p.real(), jnp.real)

    def imag(self) -> "Chebfun":
        return self._map_pieces(lambda p: p.imag(), jnp.imag)

    # ------------------------------------------------------------------
    # Restriction and output
    # ------------------------------------------------------------------

    def restrict(self, a: float, b: float) -> "Chebfun":
        """Chebfun on the subinterval [a, b]."""
        a, b = float(a), float(b)
        lo, hi = self.domain
        if not lo <= a < b <= hi:
            raise ValueError(f"[{a}, {b}] is not inside [{lo}, {hi}]")
        ends = [a] + [e for e in self.ends if a < e < b] + [b]
        pieces = []
        for c, d in zip(ends[:-1], ends[1:]):
            p = self.pieces[self._piece_index(_interior_point(c, d))]
            pieces.append(p.restrict(c, d))
        cols = []
        for e in ends:
            if e in self.ends:
                cols.append(self.imps[:, self.ends.index(e)])
            else:
                col = jnp.zeros(self.imps.shape[0], dtype=self.imps.dtype)
                cols.append(col.at[0].set(self(jnp.asarray(e))))
        return self._rebuild(tuple(pieces), tuple(ends), jnp.stack(cols, axis=1))

    def plot_data(self) -> dict:
        """
        Data for external plotting: breakpoints, per-piece sample points and
        values, and the breakpoint table.
        """
        return {
            "ends": jnp.asarray(self.ends),
            "points": [p.points for p in self.pieces],
            "values": [p(p.points) for p in self.pieces],
            "imps": self.imps,
        }
