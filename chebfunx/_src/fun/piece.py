# ============================================================================
# Polynomial Piece
# ============================================================================
"""
A single smooth piece: values at second-kind Chebyshev points of the
reference interval, mapped onto [a, b], optionally carrying algebraic
endpoint behaviour through boundary exponents.

Representation:
---------------
    f(x) = (1 + y)^e₀ (1 - y)^e₁ · p(y),     y = map⁻¹(x) ∈ [-1, 1]

where p is the polynomial interpolating ``vals`` at the n points
yⱼ = -cos(πj/(n-1)).
"""

import math

import equinox as eqx
import jax.numpy as jnp
import numpy as np
from jax.scipy.special import betaln
from jaxtyping import Array

from ..chebyshev.grid import (
    bary,
    bary_weights,
    chebpts,
    chebval,
    clenshaw_curtis,
    coeffs_to_vals,
    cumsum_coeffs,
    diff_coeffs,
    diffmat,
    jacobi_vandermonde,
    vals_to_coeffs,
)
from ..config import EPS
from ..errors import (
    DomainMismatchError,
    UnboundedBlowupError,
    UnsupportedExponentError,
    UnsupportedRepresentationError,
)
from ..utils import as_array, evaluate, horizontal_scale
from .maps import Map, default_map

# Off-centre split used by recursive rootfinding
_ROOT_SPLIT = -0.004849834917525
_ROOT_MAXN = 50


# ============================================================================
# Helpers
# ============================================================================


def exponent_weight(y: Array, exps) -> Array:
    """Weight (1+y)^e₀ (1-y)^e₁ on the reference interval."""
    y = jnp.asarray(y)
    w = jnp.ones(y.shape)
    if exps[0] != 0:
        w = w * (1.0 + y) ** exps[0]
    if exps[1] != 0:
        w = w * (1.0 - y) ** exps[1]
    return w


def extrapolate(vals: Array, y: Array, bad) -> Array:
    """
    Replace flagged entries of ``vals`` by the interpolant through the rest.

    The barycentric weights of the reduced node set are the second-kind
    weights multiplied by Πₘ (yⱼ - yₘ) over the dropped nodes, formed in log
    space to avoid overflow.
    """
    bad = np.asarray(bad, dtype=bool)
    if not bad.any():
        return vals
    good = ~bad
    if not good.any():
        raise UnsupportedRepresentationError("No finite samples to extrapolate from")
    yn = np.asarray(y)
    w = np.asarray(bary_weights(yn.shape[0]))[good]
    dy = yn[good][:, None] - yn[bad][None, :]
    logw = np.log(np.abs(w)) + np.sum(np.log(np.abs(dy)), axis=1)
    sign = np.sign(w) * np.prod(np.sign(dy), axis=1)
    wg = sign * np.exp(logw - logw.max())
    fill = bary(jnp.asarray(yn[bad]), vals[good], pts=jnp.asarray(yn[good]), weights=jnp.asarray(wg))
    return vals.at[np.flatnonzero(bad)].set(fill)


def weighted_samples(fx: Array, y: Array, exps=(0.0, 0.0), skip_ends: bool = False) -> Array:
    """
    Turn raw function samples into piece values.

    Divides by the exponent weight and extrapolates every entry that is not
    finite (and both endpoints when ``skip_ends`` is set or exponents are
    present).
    """
    vals = as_array(fx)
    if exps[0] != 0 or exps[1] != 0:
        vals = vals / exponent_weight(y, exps)
        skip_ends = True
    bad = ~np.array(jnp.isfinite(vals))
    if skip_ends and vals.shape[0] > 2:
        bad[0] = bad[-1] = True
    return extrapolate(vals, y, bad)


def _pad(c: Array, m: int) -> Array:
    n = c.shape[0]
    if m <= n:
        return c[:m]
    return jnp.concatenate([c, jnp.zeros(m - n, dtype=c.dtype)])


def _colleague_roots(c: np.ndarray) -> np.ndarray:
    """All roots of Σ cₖ Tₖ by eigenvalues of the colleague matrix."""
    d = c.shape[0] - 1
    if d == 1:
        return np.array([-c[0] / c[1]])
    C = np.zeros((d, d), dtype=np.result_type(c, float))
    C[0, 1] = 1.0
    for k in range(1, d - 1):
        C[k, k - 1] = 0.5
        C[k, k + 1] = 0.5
    C[d - 1, d - 2] += 0.5
    C[d - 1, :] -= c[:d] / (2.0 * c[d])
    return np.asarray(jnp.linalg.eigvals(jnp.asarray(C)))


def unit_roots(c, htol: float = 1e-8) -> np.ndarray:
    """
    Real roots in [-1, 1] of a Chebyshev series.

    Short series use the colleague matrix directly; long ones are split at a
    point slightly off the origin and each half is re-expanded.
    """
    c = np.asarray(c)
    if c.shape[0] == 0 or not np.any(c):
        return np.zeros(0)
    scale = np.max(np.abs(c))
    nz = np.flatnonzero(np.abs(c) > EPS * scale)
    c = c[: nz[-1] + 1]
    if c.shape[0] <= 1:
        return np.zeros(0)
    if c.shape[0] <= _ROOT_MAXN:
        r = _colleague_roots(c)
        r = r[np.abs(r.imag) < htol].real
        r = r[np.abs(r) <= 1.0 + htol]
        return np.sort(np.clip(r, -1.0, 1.0))
    n = c.shape[0]
    out = []
    for lo, hi in ((-1.0, _ROOT_SPLIT), (_ROOT_SPLIT, 1.0)):
        z = chebpts(n, (lo, hi))
        sub = np.asarray(vals_to_coeffs(chebval(z, jnp.asarray(c))))
        t = unit_roots(sub, htol)
        out.append(lo + 0.5 * (t + 1.0) * (hi - lo))
    r = np.sort(np.concatenate(out))
    if r.shape[0] > 1:
        keep = np.concatenate([[True], np.diff(r) > htol])
        r = r[keep]
    return r


# ============================================================================
# Piece
# ============================================================================


class Piece(eqx.Module):
    """
    One smooth piece of a piecewise Chebyshev representation.

    Attributes:
    -----------
        vals : Array [n]
            Values of the weighted function p at second-kind points.
        domain : tuple
            Interval (a, b); ends may be infinite with an unbounded map.
        exps : tuple
            Boundary exponents (e₀, e₁).
        map : Map
            Coordinate map from [-1, 1] onto the interval.
        hscale : float
            Horizontal scale.
        vscale : float
            Vertical scale (largest finite |vals|).
        happy : bool
            Whether construction converged.
    """

    vals: Array
    domain: tuple
    exps: tuple
    map: Map
    hscale: float
    vscale: float
    happy: bool

    def __init__(
        self,
        vals,
        domain=(-1.0, 1.0),
        exps=(0.0, 0.0),
        map: Map | None = None,
        hscale: float | None = None,
        vscale: float | None = None,
        happy: bool = True,
    ):
        a, b = float(domain[0]), float(domain[-1])
        if not a < b:
            raise ValueError(f"Piece interval must satisfy a < b, got [{a}, {b}]")
        self.vals = as_array(vals).reshape(-1)
        if self.vals.shape[0] < 1:
            raise ValueError("A piece needs at least one value")
        self.domain = (a, b)
        self.exps = (float(exps[0]), float(exps[1]))
        self.map = default_map(a, b) if map is None else map
        self.hscale = horizontal_scale((a, b)) if hscale is None else float(hscale)
        if vscale is None:
            finite = jnp.where(jnp.isfinite(self.vals), jnp.abs(self.vals), 0.0)
            vscale = float(jnp.max(finite))
        self.vscale = float(vscale)
        self.happy = bool(happy)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_values(cls, vals, domain=(-1.0, 1.0), exps=(0.0, 0.0), map=None) -> "Piece":
        return cls(vals, domain, exps, map)

    @classmethod
    def from_function(
        cls, f, domain=(-1.0, 1.0), n: int = 17, exps=(0.0, 0.0), map=None, extrapolate=False
    ) -> "Piece":
        """
        Sample f at n mapped Chebyshev points.

        Parameters:
        -----------
        f : callable
            Vectorised handle.
        domain : tuple
            Interval (a, b).
        n : int
            Number of points.
        exps : tuple
            Boundary exponents; samples are divided by the weight.
        map : Map, optional
            Coordinate map (default map of the interval if None).
        extrapolate : bool
            Do not use the endpoint samples.
        """
        a, b = float(domain[0]), float(domain[-1])
        map = default_map(a, b) if map is None else map
        y = chebpts(n)
        x = _mapped_points(map, y, (a, b))
        vals = weighted_samples(evaluate(f, x), y, exps, skip_ends=extrapolate)
        return cls(vals, (a, b), exps, map)

    @classmethod
    def constant(cls, value, domain=(-1.0, 1.0)) -> "Piece":
        return cls(jnp.asarray([value]), domain)

    def _new(self, vals, exps=None, map=None, happy=None) -> "Piece":
        return Piece(
            vals,
            self.domain,
            self.exps if exps is None else exps,
            self.map if map is None else map,
            self.hscale,
            None,
            self.happy if happy is None else happy,
        )

    # ------------------------------------------------------------------
    # Basic properties
    # ------------------------------------------------------------------

    @property
    def n(self) -> int:
        return int(self.vals.shape[0])

    @property
    def coeffs(self) -> Array:
        """Chebyshev coefficients of p, ascending degree."""
        return vals_to_coeffs(self.vals)

    @property
    def points(self) -> Array:
        """Mapped sample points (endpoints exact)."""
        return _mapped_points(self.map, chebpts(self.n), self.domain)

    @property
    def has_exps(self) -> bool:
        return self.exps[0] != 0 or self.exps[1] != 0

    @property
    def is_unbounded(self) -> bool:
        return math.isinf(self.domain[0]) or math.isinf(self.domain[1])

    def __len__(self) -> int:
        return self.n

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def __call__(self, x) -> Array:
        x = jnp.asarray(x)
        if not jnp.issubdtype(x.dtype, jnp.inexact):
            x = x.astype(float)
        return self.eval_unit(self.map.inverse(x))

    def eval_unit(self, y) -> Array:
        """Evaluate at reference points y ∈ [-1, 1]."""
        out = bary(jnp.asarray(y), self.vals)
        if self.has_exps:
            out = out * exponent_weight(y, self.exps)
        return out

    def endvalues(self) -> Array:
        """Values (with exponent weighting) at the two ends."""
        return self.eval_unit(jnp.asarray([-1.0, 1.0]))

    # ------------------------------------------------------------------
    # Calculus
    # ------------------------------------------------------------------

    def diff(self, k: int = 1) -> "Piece":
        """k-th derivative (a new piece)."""
        g = self
        for _ in range(k):
            g = g._diff1()
        return g

    def _diff1(self) -> "Piece":
        n = self.n
        c = self.coeffs
        dc = diff_coeffs(c)
        if not self.has_exps:
            if self.map.is_linear:
                half = 0.5 * (self.domain[1] - self.domain[0])
                return self._new(coeffs_to_vals(dc) / half)
            y = chebpts(n)
            dvals = coeffs_to_vals(_pad(dc, n)) / self.map.der(y)
            return self._new(extrapolate(dvals, y, ~np.asarray(jnp.isfinite(dvals))))

        # Product rule on (1+y)^e0 (1-y)^e1 p(y); nonzero exponents drop by one
        e0, e1 = self.exps
        s0 = 1.0 if e0 != 0 else 0.0
        s1 = 1.0 if e1 != 0 else 0.0
        m = n + 1
        y = chebpts(m)
        p = coeffs_to_vals(_pad(c, m))
        dp = coeffs_to_vals(_pad(dc, m))
        lw = (1.0 + y) ** s0
        rw = (1.0 - y) ** s1
        q = dp * lw * rw + s0 * e0 * rw * p - s1 * e1 * lw * p
        q = q / self.map.der(y)
        q = extrapolate(q, y, ~np.asarray(jnp.isfinite(q)))
        return self._new(q, exps=(e0 - s0, e1 - s1))

    def cumsum(self) -> "Piece":
        """
        Indefinite integral vanishing at the left end.

        Raises:
        -------
        UnboundedBlowupError
            The integrand does not decay at an infinite end.
        UnsupportedExponentError
            The exponents fall outside the supported combinations.
        """
        if self.is_unbounded:
            return self._cumsum_unbounded()
        if not self.has_exps:
            y = chebpts(self.n)
            g = self.vals * self.map.der(y)
            return self._new(coeffs_to_vals(cumsum_coeffs(vals_to_coeffs(g))))
        if not self.map.is_linear:
            raise UnsupportedExponentError("cumsum with exponents requires a linear map")
        if min(self.exps) <= -1:
            return self._cumsum_poles()
        return self._cumsum_jacobi()

    def _cumsum_jacobi(self) -> "Piece":
        # ∫ (1-t)^α (1+t)^β P_k^(α,β) = -(1/2k) (1-y)^{α+1} (1+y)^{β+1} P_{k-1}^(α+1,β+1)
        e0, e1 = self.exps
        alpha, beta = e1, e0
        n = self.n
        half = 0.5 * (self.domain[1] - self.domain[0])
        y = np.asarray(chebpts(n))
        V = jnp.asarray(jacobi_vandermonde(y, n, alpha, beta))
        j = jnp.linalg.solve(V, self.vals)
        j0 = j[0]
        if abs(j0) < 10 * EPS * max(self.vscale, 1.0):
            j0 = 0.0
        if e1 != 0 and j0 != 0:
            raise UnsupportedExponentError(
                "cumsum does not support singularities at the right-hand endpoint"
            )
        if n == 1:
            q = jnp.zeros(1)
        else:
            k = jnp.arange(1, n)
            jhat = -j[1:] / (2.0 * k)
            q = jnp.asarray(jacobi_vandermonde(y, n - 1, alpha + 1, beta + 1)) @ jhat
        if e1 == 0:
            vals = (1.0 - jnp.asarray(y)) * q + j0 / (e0 + 1.0)
            exps = (e0 + 1.0, 0.0)
        else:
            vals = q
            exps = (e0 + 1.0, e1 + 1.0)
        return self._new(half * vals, exps=exps)

    def _cumsum_poles(self) -> "Piece":
        # F = (1+y)^{-a} h with  (1+y) h' - a h = (1+y) p
        e0, e1 = self.exps
        if e1 != 0:
            raise UnsupportedExponentError("cumsum does not support exponents <= -1 at the right boundary")
        if e0 == -1:
            raise UnsupportedExponentError("cumsum does not support simple poles at the left boundary")
        if round(e0) != e0:
            raise UnsupportedExponentError("cumsum does not support non-integer blow-up of this type")
        order = int(-e0)
        half = 0.5 * (self.domain[1] - self.domain[0])
        unit = Piece(self.vals)
        ck = unit.diff(order - 1).vals[0] / math.factorial(order - 1)
        if abs(ck) > 1e-13 * max(self.vscale, 1.0):
            raise UnsupportedExponentError("cumsum would introduce a logarithmic term")
        m = self.n + 1
        y = chebpts(m)
        s = 1.0 + y
        L = s[:, None] * diffmat(m) - order * jnp.eye(m)
        rhs = s * unit.prolong(m).vals
        h = jnp.linalg.lstsq(L, rhs)[0]
        ht = extrapolate(h / jnp.where(s == 0, 1.0, s), y, np.arange(m) == 0)
        return self._new(half * ht, exps=(e0 + 1.0, 0.0))

    def _cumsum_unbounded(self) -> "Piece":
        if self.has_exps:
            raise UnsupportedExponentError("cumsum with exponents on unbounded intervals")
        a, b = self.domain
        n = self.n
        vals = self.vals
        vs = max(self.vscale, EPS)
        if n <= 2:
            if bool(jnp.all(jnp.abs(vals) <= 10 * EPS * vs)):
                return self._new(jnp.zeros(1))
            raise UnboundedBlowupError("Integral of a function that does not vanish at infinity")

        tol = max(10 * EPS, 1e-8) * vs
        y = chebpts(n)
        ends = np.zeros(n, dtype=bool)
        for idx, inf_end, factor in ((0, math.isinf(a), 1.0 + y), (-1, math.isinf(b), 1.0 - y)):
            if not inf_end:
                continue
            if abs(vals[idx]) > tol:
                raise UnboundedBlowupError("Integral of a function that does not vanish at infinity")
            # decay must be faster than 1/x: f/(1∓y) stays bounded
            mask = np.zeros(n, dtype=bool)
            mask[idx] = True
            rate = extrapolate(vals / jnp.where(factor == 0, 1.0, factor), y, mask)
            if abs(rate[idx]) > 1e3 * tol:
                raise UnboundedBlowupError("Integrand decays too slowly at infinity")
            vals = vals.at[idx].set(0.0)
            ends[idx] = True

        g = vals * self.map.der(y)
        g = extrapolate(g, y, ends | ~np.asarray(jnp.isfinite(g)))
        return self._new(coeffs_to_vals(cumsum_coeffs(vals_to_coeffs(g))))

    def sum(self) -> Array:
        """Definite integral over the piece."""
        e0, e1 = self.exps
        if e0 <= -1 or e1 <= -1:
            ends = self.vals[jnp.asarray([0, -1])]
            signs = [jnp.sign(ends[i]) for i, e in enumerate((e0, e1)) if e <= -1]
            if len(signs) == 2 and signs[0] != signs[1]:
                return jnp.asarray(jnp.nan)
            return jnp.inf * signs[0] if signs[0] != 0 else jnp.asarray(jnp.nan)
        if self.is_unbounded or not self.map.is_linear:
            return self.cumsum().vals[-1]
        half = 0.5 * (self.domain[1] - self.domain[0])
        if not self.has_exps:
            return half * clenshaw_curtis(self.coeffs)
        alpha, beta = e1, e0
        y = np.asarray(chebpts(self.n))
        V = jnp.asarray(jacobi_vandermonde(y, self.n, alpha, beta))
        j = jnp.linalg.solve(V, self.vals)
        mass = 2.0 ** (alpha + beta + 1.0) * jnp.exp(betaln(alpha + 1.0, beta + 1.0))
        return half * j[0] * mass

    # ------------------------------------------------------------------
    # Algebra
    # ------------------------------------------------------------------

    def _check_compatible(self, other: "Piece") -> None:
        tol = 10 * EPS * self.hscale
        same = all(
            (x == y) or abs(x - y) <= tol for x, y in zip(self.domain, other.domain)
        )
        if not same or self.map.name != other.map.name or tuple(self.map.par[2:]) != tuple(other.map.par[2:]):
            raise DomainMismatchError(
                f"Pieces on {self.domain} ({self.map.name}) and {other.domain} ({other.map.name}) cannot be combined"
            )

    def __add__(self, other) -> "Piece":
        if isinstance(other, Piece):
            self._check_compatible(other)
            if self.exps != other.exps:
                raise UnsupportedRepresentationError("Cannot add pieces with different exponents")
            m = max(self.n, other.n)
            return self._new(self.prolong(m).vals + other.prolong(m).vals)
        if other == 0:
            return self
        if self.has_exps:
            raise UnsupportedRepresentationError("Cannot add a constant to a piece with exponents")
        return self._new(self.vals + other)

    __radd__ = __add__

    def __neg__(self) -> "Piece":
        return self._new(-self.vals)

    def __sub__(self, other) -> "Piece":
        return self + (-other)

    def __rsub__(self, other) -> "Piece":
        return (-self) + other

    def __mul__(self, other) -> "Piece":
        if isinstance(other, Piece):
            self._check_compatible(other)
            m = self.n + other.n - 1
            exps = (self.exps[0] + other.exps[0], self.exps[1] + other.exps[1])
            return self._new(self.prolong(m).vals * other.prolong(m).vals, exps=exps)
        return self._new(self.vals * other)

    __rmul__ = __mul__

    def __truediv__(self, other) -> "Piece":
        if isinstance(other, Piece):
            self._check_compatible(other)
            m = max(self.n, other.n)
            exps = (self.exps[0] - other.exps[0], self.exps[1] - other.exps[1])
            return self._new(self.prolong(m).vals / other.prolong(m).vals, exps=exps)
        return self._new(self.vals / other)

    def __rtruediv__(self, other) -> "Piece":
        return self._new(other / self.vals, exps=(-self.exps[0], -self.exps[1]))

    def conj(self) -> "Piece":
        return self._new(jnp.conj(self.vals))

    def real(self) -> "Piece":
        return self._new(jnp.real(self.vals))

    def imag(self) -> "Piece":
        return self._new(jnp.imag(self.vals))

    # ------------------------------------------------------------------
    # Resampling
    # ------------------------------------------------------------------

    def prolong(self, m: int) -> "Piece":
        """Same polynomial on m points (truncated if m < n)."""
        if m == self.n:
            return self
        return self._new(coeffs_to_vals(_pad(self.coeffs, m)))

    def simplify(self, tol: float | None = None) -> "Piece":
        """Chop trailing coefficients below tol relative to the vertical scale."""
        tol = EPS if tol is None else tol
        c = self.coeffs
        thresh = tol * max(self.vscale, float(jnp.max(jnp.abs(c))))
        big = np.flatnonzero(np.asarray(jnp.abs(c) > thresh))
        m = int(big[-1]) + 1 if big.shape[0] else 1
        return self.prolong(m)

    def restrict(self, a: float, b: float) -> "Piece":
        """
        Piece on the subinterval [a, b].

        Exact for polynomials on a linear map; otherwise the weighted
        function is resampled at the same number of points.
        """
        lo, hi = self.domain
        if not (lo <= a < b <= hi):
            raise ValueError(f"[{a}, {b}] is not inside {self.domain}")
        if (a, b) == (lo, hi):
            return self
        exps = (self.exps[0] if a == lo else 0.0, self.exps[1] if b == hi else 0.0)
        return Piece.from_function(self, (a, b), self.n, exps=exps)

    # ------------------------------------------------------------------
    # Roots
    # ------------------------------------------------------------------

    def roots(self) -> Array:
        """Real roots of p inside the piece, ascending."""
        y = unit_roots(np.asarray(self.coeffs))
        if y.shape[0] == 0:
            return jnp.zeros(0)
        return _mapped_points(self.map, jnp.asarray(y), self.domain, exact_ends=False)


def _mapped_points(map: Map, y: Array, domain, exact_ends: bool = True) -> Array:
    x = map.forward(jnp.asarray(y))
    if exact_ends and x.shape[0] > 1:
        x = x.at[0].set(domain[0]).at[-1].set(domain[1])
    return x
