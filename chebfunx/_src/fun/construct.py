# ============================================================================
# Adaptive Construction
# ============================================================================
"""
Adaptive construction of piecewise Chebyshev representations.

A *sampler* maps an array of abscissae to ``(values, state)``. Plain
function handles are wrapped so that their state is None; the operator
solver supplies samplers whose state is the solution block of the last
linear solve, so the constructor can hand it back without any shared
mutable closure.

Growth:
-------
    Trial sizes n = 2^k + 1 (k ≥ 3) until the trailing Chebyshev
    coefficients fall below tol · vscale · (gradient factor), then the tail
    is chopped.

Splitting:
----------
    When a piece fails to resolve with ``splitdegree + 1`` points, the
    first unhappy interval is split at a detected edge (or bisected), and
    both children are re-grown, until every piece is happy or the total
    number of points exceeds ``maxlength``.
"""

import math
import warnings
from typing import Any, Callable

import equinox as eqx
import jax.numpy as jnp
import numpy as np
from loguru import logger

from ..chebyshev.grid import chebpts, vals_to_coeffs
from ..config import EPS, ChebfunPrefs
from ..errors import ConvergenceWarning
from ..utils import evaluate, horizontal_scale
from .edges import detect_edge
from .maps import make_map
from .piece import Piece, _mapped_points, weighted_samples

# Fixed off-grid points on [-1, 1] used by the sample test
_TEST_POINTS = np.asarray([-0.8763, -0.41107, 0.02371, 0.38659, 0.7549, 0.9631])


class Sampler(eqx.Module):
    """
    Function evaluator returning ``(values, state)``.

    Attributes:
    -----------
        fn : callable
            x ↦ (values, state).
        pointwise : bool
            Whether values at isolated points (breakpoints) may be requested.
            Solver samplers are not pointwise: every call is a full solve.
    """

    fn: Callable
    pointwise: bool = True

    def __call__(self, x):
        return self.fn(x)


def as_sampler(op) -> Sampler:
    """Wrap a plain handle ``x -> values`` as a sampler with no state."""
    if isinstance(op, Sampler):
        return op
    return Sampler(lambda x: (evaluate(op, x), None))


class Scales(eqx.Module):
    """Horizontal and vertical scales of a construction."""

    h: float
    v: float


class GrowResult(eqx.Module):
    piece: Piece
    happy: bool
    scales: Scales
    state: Any


class AutoResult(eqx.Module):
    pieces: tuple
    ends: tuple
    scales: Scales
    happy: bool
    state: Any


class Construction(eqx.Module):
    """
    Output of ``construct``.

    Attributes:
    -----------
        pieces : tuple[Piece]
        ends : tuple[float]
            Breakpoints, strictly increasing.
        imps : Array [1, len(ends)]
            Point values at the breakpoints.
        scales : Scales
        happy : bool
        state : Any
            Sampler state of the last evaluation.
    """

    pieces: tuple
    ends: tuple
    imps: Any
    scales: Scales
    happy: bool
    state: Any


# ============================================================================
# Happiness
# ============================================================================


def happiness(vals, vscale: float, hscale: float, tol: float, points=None):
    """
    Decide whether sample values resolve the underlying function.

    A trailing window of max(2, n // 8) coefficients must lie below

        ε = 10 · tol · max(1, ‖Δv/Δx‖ · hscale / V),   V = max(vscale, ‖v‖∞)

    relative to V.

    Parameters:
    -----------
    vals : Array [n]
        Values at second-kind points.
    vscale, hscale : float
        Vertical and horizontal scales.
    tol : float
        Relative tolerance.
    points : Array [n], optional
        Sample abscissae, used for the gradient factor when finite.

    Returns:
    --------
    happy : bool
    cutoff : int
        Number of coefficients to keep.
    """
    vals = jnp.asarray(vals)
    n = vals.shape[0]
    if n == 1:
        return True, 1
    vs = max(float(vscale), float(jnp.max(jnp.abs(vals))))
    if vs == 0.0:
        return True, 1
    ac = np.asarray(jnp.abs(vals_to_coeffs(vals))) / vs

    factor = 1.0
    if points is not None:
        x = np.asarray(points)
        if np.all(np.isfinite(x)):
            dv = np.abs(np.diff(np.asarray(vals)))
            dx = np.diff(x)
            grad = float(np.max(dv / dx)) * hscale / vs
            factor = max(1.0, grad)
    epss = 10.0 * tol * factor

    window = max(2, n // 8)
    if np.max(ac[-window:]) >= epss:
        return False, n
    big = np.flatnonzero(ac >= epss)
    cutoff = int(big[-1]) + 1 if big.shape[0] else 1
    return True, cutoff


def _sample_test(sampler, piece: Piece, tol: float) -> bool:
    """Compare the interpolant with the function at fixed off-grid points."""
    y = jnp.asarray(_TEST_POINTS)
    x = piece.map.forward(y)
    fx = jnp.asarray(sampler(x)[0])
    px = piece.eval_unit(y)
    ok = jnp.isfinite(fx) & jnp.isfinite(px)
    if not bool(jnp.any(ok)):
        return True
    err = float(jnp.max(jnp.where(ok, jnp.abs(fx - px), 0.0)))
    vs = max(piece.vscale, float(jnp.max(jnp.where(ok, jnp.abs(fx), 0.0))))
    return err <= math.sqrt(tol) * max(vs, EPS)


# ============================================================================
# Growing a single piece
# ============================================================================


def _schedule(minsamples: int, maxn: int) -> list[int]:
    sizes = []
    k = max(3, int(math.ceil(math.log2(max(minsamples - 1, 1)))))
    while 2**k + 1 < maxn:
        sizes.append(2**k + 1)
        k += 1
    sizes.append(maxn)
    return sizes


def grow_piece(
    sampler,
    domain,
    maxn: int,
    scales: Scales,
    prefs: ChebfunPrefs,
    exps=(0.0, 0.0),
    skip_ends: bool = False,
) -> GrowResult:
    """
    Grow one piece on ``domain`` until it is happy or ``maxn`` is reached.

    Returns:
    --------
    GrowResult
        The (chopped) piece, whether it converged, updated scales and the
        sampler state of the last evaluation.
    """
    sampler = as_sampler(sampler)
    a, b = float(domain[0]), float(domain[-1])
    map = make_map(prefs.map, a, b)
    skip_ends = skip_ends or prefs.extrapolate
    sizes = [prefs.n] if prefs.n is not None else _schedule(prefs.minsamples, maxn)

    piece, happy, state = None, False, None
    for n in sizes:
        y = chebpts(n)
        x = _mapped_points(map, y, (a, b))
        fx, state = sampler(x)
        vals = weighted_samples(fx, y, exps, skip_ends)
        piece = Piece(vals, (a, b), exps, map, scales.h)
        if prefs.n is not None:
            happy = True
            break
        happy, cutoff = happiness(vals, scales.v, scales.h, prefs.eps, x)
        if happy and prefs.sampletest and sampler.pointwise:
            happy = _sample_test(sampler, piece, prefs.eps)
        if happy:
            piece = piece.prolong(cutoff)
            break

    logger.debug(f"grow [{a:.6g}, {b:.6g}]: n={piece.n} happy={happy}")
    piece = Piece(piece.vals, (a, b), exps, map, scales.h, None, happy)
    return GrowResult(piece, happy, Scales(scales.h, max(scales.v, piece.vscale)), state)


# ============================================================================
# Smooth and split modes
# ============================================================================


def _split_point(sampler, a: float, b: float, scales: Scales, prefs: ChebfunPrefs) -> float:
    """Edge location (clamped) or midpoint, in the variable of the interval's map."""
    f = lambda x: sampler(x)[0]
    clamp = prefs.edge_clamp
    if math.isinf(a) or math.isinf(b):
        map = make_map(prefs.map, a, b)
        e = detect_edge(lambda y: f(map.forward(y)), -1.0, 1.0, 2.0, scales.v, der=None)
        htol = 1e-14 * 2.0
        if e is None:
            e = 0.0
        elif e + 1.0 <= htol:
            e = -1.0 + 2.0 * clamp
        elif 1.0 - e <= htol:
            e = 1.0 - 2.0 * clamp
        return float(map.forward(jnp.asarray(e)))

    htol = 1e-14 * scales.h
    edge = detect_edge(f, a, b, scales.h, scales.v)
    if edge is None:
        return 0.5 * (a + b)
    if edge - a <= htol:
        return a + clamp * (b - a)
    if b - edge <= htol:
        return b - clamp * (b - a)
    return edge


def auto(sampler, domain, scales: Scales, prefs: ChebfunPrefs, exps=(0.0, 0.0)) -> AutoResult:
    """
    Represent a sampler on ``domain`` in smooth or split mode.

    Parameters:
    -----------
    sampler : Sampler or callable
    domain : tuple
        Interval (a, b).
    scales : Scales
        Current global scales.
    prefs : ChebfunPrefs
    exps : tuple
        Exponents at the outer ends of the interval.

    Returns:
    --------
    AutoResult
    """
    sampler = as_sampler(sampler)
    a, b = float(domain[0]), float(domain[-1])

    if not prefs.splitting:
        maxn = prefs.maxdegree + 1
        res = grow_piece(sampler, (a, b), maxn, scales, prefs, exps)
        if not res.happy and prefs.n is None:
            warnings.warn(
                f"Function not resolved, using {maxn} pts. Have you tried splitting on?",
                ConvergenceWarning,
                stacklevel=3,
            )
        return AutoResult((res.piece,), (a, b), res.scales, res.happy, res.state)

    maxn = prefs.maxlength + 1
    nsplit = prefs.splitdegree + 1

    def child_exps(lo, hi):
        return (exps[0] if lo == a else 0.0, exps[1] if hi == b else 0.0)

    res = grow_piece(sampler, (a, b), nsplit, scales, prefs, exps, skip_ends=True)
    scales, state = res.scales, res.state
    pieces, ends, sad = [res.piece], [a, b], [not res.happy]

    while any(sad):
        i = sad.index(True)
        lo, hi = ends[i], ends[i + 1]
        edge = _split_point(sampler, lo, hi, scales, prefs)
        logger.debug(f"split [{lo:.6g}, {hi:.6g}] at {edge:.12g}")

        left = grow_piece(sampler, (lo, edge), nsplit, scales, prefs, child_exps(lo, edge), skip_ends=True)
        right = grow_piece(sampler, (edge, hi), nsplit, left.scales, prefs, child_exps(edge, hi), skip_ends=True)
        scales, state = right.scales, right.state
        pieces[i : i + 1] = [left.piece, right.piece]
        ends.insert(i + 1, edge)
        sad[i : i + 1] = [not left.happy, not right.happy]

        total = sum(p.n for p in pieces)
        if total > maxn:
            warnings.warn(
                f"Chebfun representation may not be accurate: using {total} points",
                ConvergenceWarning,
                stacklevel=3,
            )
            return AutoResult(tuple(pieces), tuple(ends), scales, False, state)

    return AutoResult(tuple(pieces), tuple(ends), scales, True, state)


# ============================================================================
# Global construction
# ============================================================================


def expand_exps(exps, nends: int) -> list[tuple[float, float]]:
    """
    Per-piece exponent pairs from an exponent specification.

    Accepted lengths: 1 (every end), 2 (outer ends), ``nends`` (one per
    breakpoint) or ``2 * (nends - 1)`` (a pair per piece).
    """
    npieces = nends - 1
    if exps is None:
        return [(0.0, 0.0)] * npieces
    e = [float(v) for v in np.atleast_1d(np.asarray(exps, dtype=float))]
    if len(e) == 1:
        return [(e[0], e[0])] * npieces
    if len(e) == 2:
        out = [(0.0, 0.0)] * npieces
        out[0] = (e[0], out[0][1])
        out[-1] = (out[-1][0], e[1])
        return out
    if len(e) == nends:
        return [(e[i], e[i + 1]) for i in range(npieces)]
    if len(e) == 2 * npieces:
        return [(e[2 * i], e[2 * i + 1]) for i in range(npieces)]
    raise ValueError(f"Cannot match {len(e)} exponents to {nends} breakpoints")


def _point_values(sampler, pieces, ends) -> jnp.ndarray:
    """Function value at each breakpoint, or the mean of one-sided values."""
    left = [p.endvalues()[0] for p in pieces]
    right = [p.endvalues()[1] for p in pieces]
    onesided = []
    for j in range(len(ends)):
        vals = ([right[j - 1]] if j > 0 else []) + ([left[j]] if j < len(pieces) else [])
        onesided.append(jnp.mean(jnp.stack(vals)))
    onesided = jnp.stack(onesided)
    if sampler is None or not sampler.pointwise:
        return onesided
    fx = jnp.asarray(sampler(jnp.asarray(ends, dtype=float))[0])
    if fx.shape != onesided.shape:
        fx = jnp.broadcast_to(fx, onesided.shape)
    return jnp.where(jnp.isfinite(fx), fx, onesided)


def construct(op, ends=(-1.0, 1.0), prefs: ChebfunPrefs | None = None) -> Construction:
    """
    Build pieces, breakpoints and point values for ``op`` over ``ends``.

    Parameters:
    -----------
    op : callable, Sampler, or sequence of them
        One handle for the whole domain or one per interval of ``ends``.
    ends : sequence of float
        Initial breakpoints (strictly increasing).
    prefs : ChebfunPrefs, optional

    Returns:
    --------
    Construction
    """
    prefs = ChebfunPrefs() if prefs is None else prefs
    ends = [float(e) for e in ends]
    if len(ends) < 2 or any(b <= a for a, b in zip(ends[:-1], ends[1:])):
        raise ValueError(f"Breakpoints must be strictly increasing, got {ends}")

    if isinstance(op, (list, tuple)):
        if len(op) != len(ends) - 1:
            raise ValueError("Need one handle per interval")
        samplers = [as_sampler(o) for o in op]
        global_sampler = None
    else:
        global_sampler = as_sampler(op)
        samplers = [global_sampler] * (len(ends) - 1)

    scales = Scales(horizontal_scale(ends), float(prefs.scale))
    piece_exps = expand_exps(prefs.exps, len(ends))

    pieces, new_ends, happy, state = [], [ends[0]], True, None
    for i, (a, b) in enumerate(zip(ends[:-1], ends[1:])):
        res = auto(samplers[i], (a, b), scales, prefs, piece_exps[i])
        pieces.extend(res.pieces)
        new_ends.extend(res.ends[1:])
        scales, state = res.scales, res.state
        happy = happy and res.happy

    pieces = tuple(Piece(p.vals, p.domain, p.exps, p.map, scales.h, None, p.happy) for p in pieces)
    imps = _point_values(global_sampler, pieces, new_ends)[None, :]
    return Construction(pieces, tuple(new_ends), imps, scales, happy, state)

