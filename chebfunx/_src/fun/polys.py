# ============================================================================
# Classical Orthogonal Polynomials
# ============================================================================
"""
Chebfuns of Legendre polynomials on a bounded interval and Laguerre
polynomials on [0, ∞).

Laguerre representation:
------------------------
Under the map x = 15s (1+y)/(1-y) of [0, ∞),

    x^j = (15s)^j (1+y)^j (1-y)^(-j)

so L_n(x) = (1-y)^(-n) · p(y) with p a polynomial of degree n in y. The
piece stores p at n+1 points and carries the right exponent -n.
"""

import math

import jax.numpy as jnp
import numpy as np

from ..chebyshev.grid import chebpts, jacobi_vandermonde
from .chebfun import Chebfun
from .maps import unbounded_map
from .piece import Piece

_NORMALIZATIONS = ("unnorm", "sch", "norm")


def _each(n, build):
    if np.ndim(n) == 0:
        return build(_degree(n))
    return [build(_degree(k)) for k in n]


def _degree(n) -> int:
    k = int(n)
    if k != n or k < 0:
        raise ValueError(f"Polynomial degree must be a non-negative integer, got {n!r}")
    return k


def legpoly(n, domain=(-1.0, 1.0), normalize: str = "unnorm"):
    """
    Legendre polynomial P_n as a chebfun.

    Parameters:
    -----------
    n : int or sequence of int
        Degree(s).
    domain : tuple
        Bounded interval (a, b).
    normalize : str
        "unnorm" gives P_n(b) = 1 ("sch" coincides with it for order zero);
        "norm" gives unit L2 norm on the interval.

    Returns:
    --------
    Chebfun, or a list of chebfuns when ``n`` is a sequence.
    """
    if normalize not in _NORMALIZATIONS:
        raise ValueError(f"Unknown normalization {normalize!r}; expected one of {_NORMALIZATIONS}")
    a, b = float(domain[0]), float(domain[-1])
    if math.isinf(a) or math.isinf(b):
        raise ValueError(f"legpoly needs a bounded interval, got [{a}, {b}]")

    def build(k: int) -> Chebfun:
        y = np.asarray(chebpts(k + 1))
        vals = jacobi_vandermonde(y, k + 1, 0.0, 0.0)[:, k]
        if normalize == "norm":
            vals = vals * math.sqrt((2 * k + 1) / (b - a))
        return Chebfun.from_values(jnp.asarray(vals), (a, b))

    return _each(n, build)


def lagpoly(n, scale: float = 1.0):
    """
    Laguerre polynomial L_n on [0, ∞) as a chebfun.

        L_n(x) = Σ_j (-1)^j C(n, j) x^j / j!

    Parameters:
    -----------
    n : int or sequence of int
        Degree(s).
    scale : float
        Horizontal stretch of the unbounded map.

    Returns:
    --------
    Chebfun, or a list of chebfuns when ``n`` is a sequence.
    """
    m = unbounded_map(0.0, math.inf, scale)
    c = 15.0 * float(scale)

    def build(k: int) -> Chebfun:
        y = np.asarray(chebpts(k + 1))[:, None]
        j = np.arange(k + 1)[None, :]
        coef = np.array([(-1.0) ** i * math.comb(k, i) / math.factorial(i) for i in range(k + 1)])[None, :]
        vals = np.sum(coef * (c * (1.0 + y)) ** j * (1.0 - y) ** (k - j), axis=1)
        piece = Piece(jnp.asarray(vals), (0.0, math.inf), exps=(0.0, -float(k)), map=m)
        return Chebfun.from_pieces([piece])

    return _each(n, build)
