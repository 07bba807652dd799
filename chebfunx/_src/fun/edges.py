# ============================================================================
# Edge Detection
# ============================================================================
"""
Locate the most likely non-smooth point of a function inside an interval.

Finite differences of order 1..4 are sampled on equispaced grids; the
bracket around the largest difference of the order that grows fastest is
zoomed in on until the interval collapses, a first-derivative jump is
isolated by bisection, or the growth falls below a noise floor set by the
horizontal and vertical scales. Non-finite samples count as an infinite
derivative.
"""

import numpy as np
import jax.numpy as jnp
from loguru import logger

from ..config import EPS
from ..utils import evaluate

_TINY = np.finfo(float).tiny


def _sampler(f):
    def g(x):
        x = np.atleast_1d(np.asarray(x, dtype=float))
        return np.asarray(evaluate(f, jnp.asarray(x)))

    return g


def _unit_der(x):
    return np.ones_like(x)


def max_derivatives(f, a: float, b: float, nder: int = 4, N: int = 15, der=None):
    """
    Estimate the largest derivative magnitudes of orders 1..nder on [a, b].

    Parameters:
    -----------
    f : callable
        Vectorised numpy-compatible handle.
    a, b : float
        Interval.
    nder : int
        Highest derivative order.
    N : int
        Number of equispaced samples.
    der : callable, optional
        Derivative of a coordinate map applied to the abscissae.

    Returns:
    --------
    na, nb : ndarray [nder]
        Brackets around the largest difference of each order.
    maxd : ndarray [nder]
        Derivative estimates (inf when the grid spacing underflows or a
        sample is not finite).
    """
    der = _unit_der if der is None else der
    maxd = np.zeros(nder)
    na = np.full(nder, float(a))
    nb = np.full(nder, float(b))

    x = np.linspace(a, b, N)
    dx = (b - a) / (N - 1)
    dy = f(x)
    for j in range(nder):
        dy = np.diff(dy)
        x = 0.5 * (x[:-1] + x[1:])
        est = np.abs(dy / der(x))
        est = np.where(np.isfinite(est), est, np.inf)
        ind = int(np.argmax(est))
        maxd[j] = est[ind]
        if ind > 0:
            na[j] = x[ind - 1]
        if ind < x.shape[0] - 1:
            nb[j] = x[ind + 1]

    if dx**nder <= _TINY:
        maxd = maxd + np.inf
    else:
        with np.errstate(over="ignore"):
            maxd = maxd / dx ** np.arange(1, nder + 1)
    return na, nb, maxd


def find_jump(f, a: float, b: float, hscale: float, vscale: float, der=None):
    """
    Locate a jump in the function value by bisection.

    The first-derivative estimate must keep growing under bisection; once it
    stabilises twice the feature is not a jump and None is returned.
    """
    der = _unit_der if der is None else der
    ya, yb = f(a)[0], f(b)[0]

    def slope(yl, yr, left, right):
        with np.errstate(invalid="ignore", divide="ignore"):
            return abs(yr - yl) / ((right - left) * der(np.asarray([0.5 * (left + right)]))[0])

    maxd = slope(ya, yb, a, b)
    if np.isfinite(maxd) and maxd < 1e-5 * vscale / hscale:
        return None

    cont = 0
    e1 = 0.5 * (a + b)
    e0 = e1 + 1.0
    while (cont < 2 or not np.isfinite(maxd)) and e0 != e1:
        c = 0.5 * (a + b)
        yc = f(c)[0]
        dy1 = slope(ya, yc, a, c)
        dy2 = slope(yc, yb, c, b)
        dy1 = dy1 if np.isfinite(dy1) else np.inf
        dy2 = dy2 if np.isfinite(dy2) else np.inf
        maxd_old = maxd
        if dy1 > dy2:
            b, yb = c, yc
            maxd = dy1
        else:
            a, ya = c, yc
            maxd = dy2
        e0, e1 = e1, 0.5 * (a + b)
        if maxd < 1.5 * maxd_old:
            cont += 1

    if abs(e0 - e1) <= 2 * EPS * max(abs(e0), 1.0):
        yright = f(b + EPS * max(abs(b), 1.0))[0]
        if abs(yright - yb) > 100 * EPS * vscale:
            return float(b)
        return float(a)
    return None


def find_blowup(f, a: float, b: float, hscale: float, vscale: float):
    """
    Locate a pole-like blow-up in |f| by successive zooming.

    Returns None unless the largest value found exceeds 1e5 times the
    vertical scale.
    """
    fa = abs(f(a)[0])
    fb = abs(f(b)[0])
    for npts, width in ((50, 1e-7 * hscale), (10, 50 * EPS * hscale)):
        while b - a > width:
            x = np.linspace(a, b, npts)
            y = np.r_[fa, np.abs(f(x[1:-1])), fb]
            y = np.where(np.isnan(y), np.inf, y)
            ind = int(np.argmax(y))
            lo = max(ind - 1, 0)
            hi = min(ind + 1, npts - 1)
            if hi - lo < 2:
                lo, hi = (0, 2) if ind == 0 else (npts - 3, npts - 1)
            a, fa, b, fb = x[lo], y[lo], x[hi], y[hi]
    x = np.linspace(a, b, 3)
    y = np.r_[fa, np.abs(f(x[1:2])), fb]
    y = np.where(np.isnan(y), np.inf, y)
    ind = int(np.argmax(y))
    if y[ind] < 1e5 * vscale:
        return None
    return float(x[ind])


def detect_edge(f, a: float, b: float, hscale: float, vscale: float, der=None):
    """
    Most likely location of a non-smooth feature inside (a, b).

    Parameters:
    -----------
    f : callable
        Vectorised handle (may return NaN/Inf near singularities).
    a, b : float
        Finite interval.
    hscale, vscale : float
        Horizontal and vertical scales of the global construction.
    der : callable, optional
        Derivative of a coordinate map.

    Returns:
    --------
    float or None
        Edge location, or None when nothing rises above the noise floor.
    """
    f = _sampler(f)
    a, b = float(a), float(b)
    vscale = vscale if vscale > 0 else 1.0
    nder = 4
    if (b - a) ** nder < _TINY:
        return None

    na, nb, maxd = max_derivatives(f, a, b, nder, 50, der)
    ends = (na[nder - 1], nb[nder - 1])
    checkblowup = True

    while np.isfinite(maxd[nder - 1]) and ends[1] - ends[0] > EPS * hscale:
        maxd1 = maxd[:nder]
        na, nb, maxd = max_derivatives(f, ends[0], ends[1], nder, 15, der)
        k = np.arange(1, nder + 1)
        growing = (maxd[:nder] > (5.5 - k) * maxd1) & (maxd[:nder] > 10 * vscale / hscale**k)
        cands = np.flatnonzero(growing)
        if cands.shape[0] == 0:
            logger.debug(f"no edge in [{a:.6g}, {b:.6g}]")
            return None
        nder = int(cands[0]) + 1
        if nder == 1 and ends[1] - ends[0] < 1e-3 * hscale:
            edge = find_jump(f, ends[0], ends[1], hscale, vscale, der)
            logger.debug(f"jump search in [{ends[0]:.6g}, {ends[1]:.6g}] -> {edge}")
            return edge
        ends = (na[nder - 1], nb[nder - 1])

        if checkblowup and abs(f(0.5 * (ends[0] + ends[1]))[0]) > 100 * vscale:
            edge = find_blowup(f, ends[0], ends[1], hscale, vscale)
            if edge is None:
                checkblowup = False
            else:
                logger.debug(f"blow-up at {edge:.6g}")
                return edge

    edge = float(0.5 * (ends[0] + ends[1]))
    logger.debug(f"edge at {edge:.6g} in [{a:.6g}, {b:.6g}]")
    return edge
