# ============================================================================
# Preferences
# ============================================================================
"""
Configuration records for function construction and operator solves.

Both records are frozen equinox modules; derive variants with ``replace``:

>>> prefs = ChebfunPrefs().replace(splitting=True)
"""

import dataclasses
from typing import Any

import equinox as eqx

EPS = 2.0**-52

# Construction defaults
DEFAULT_MAXDEGREE = 2**16
DEFAULT_MAXLENGTH = 6000
DEFAULT_SPLITDEGREE = 128
DEFAULT_MINSAMPLES = 9
DEFAULT_EDGE_CLAMP = 0.01

# Solver defaults
DEFAULT_SOLVER_MAXDEGREE = 1024
DEFAULT_FILTER_TOL = 1e-8
DEFAULT_MAXSTORAGE = 50 * 2**20


class ChebfunPrefs(eqx.Module):
    """
    Options recognised by the adaptive constructor.

    Attributes:
    -----------
        splitting : bool
            Enable recursive subdivision at detected edges.
        maxdegree : int
            Largest single-piece degree in smooth mode.
        maxlength : int
            Cap on the total number of samples across pieces in split mode.
        splitdegree : int
            Largest single-piece degree tried before splitting.
        eps : float
            Relative tolerance of the happiness test.
        map : Map, callable or None
            Coordinate map, or a factory ``(a, b) -> Map``. None means the
            linear map on bounded intervals and the rational map otherwise.
        exps : tuple or None
            Boundary exponents: one value, a pair for the outer ends, one per
            breakpoint, or a pair per piece.
        n : int or None
            Fixed number of points per piece (non-adaptive construction).
        minsamples : int
            First trial size of the growth schedule 2**k + 1.
        sampletest : bool
            Check the interpolant against the function at off-grid points.
        extrapolate : bool
            Never sample the function at the interval endpoints.
        scale : float
            Vertical scale hint used for relative tolerances.
        edge_clamp : float
            Fraction of an interval used to move splits away from its ends.
    """

    splitting: bool = False
    maxdegree: int = DEFAULT_MAXDEGREE
    maxlength: int = DEFAULT_MAXLENGTH
    splitdegree: int = DEFAULT_SPLITDEGREE
    eps: float = EPS
    map: Any = None
    exps: tuple | None = None
    n: int | None = None
    minsamples: int = DEFAULT_MINSAMPLES
    sampletest: bool = True
    extrapolate: bool = False
    scale: float = 0.0
    edge_clamp: float = DEFAULT_EDGE_CLAMP

    def replace(self, **changes) -> "ChebfunPrefs":
        return dataclasses.replace(self, **changes)


class SolverPrefs(eqx.Module):
    """
    Options recognised by the growing-matrix solver and Newton iteration.

    Attributes:
    -----------
        maxdegree : int
            Largest discretization size; exceeding it is a solve failure.
        filter_tol : float
            Relative threshold of the tail filter applied to each solution.
        rectangular : bool
            Project single equations onto first-kind points and append the
            boundary rows instead of replacing rows.
        storage : bool
            Use the factorization cache when one is supplied.
        maxstorage : int
            Byte budget of the default factorization cache.
        eps : float
            Relative tolerance handed to the constructor.
        newton_tol : float
            Relative size of the Newton correction at which iteration stops.
        newton_maxiter : int
            Maximum number of Newton steps.
        n : int or None
            Fixed discretization size (non-adaptive solve).
    """

    maxdegree: int = DEFAULT_SOLVER_MAXDEGREE
    filter_tol: float = DEFAULT_FILTER_TOL
    rectangular: bool = True
    storage: bool = True
    maxstorage: int = DEFAULT_MAXSTORAGE
    eps: float = EPS
    newton_tol: float = 1e-10
    newton_maxiter: int = 25
    n: int | None = None

    def replace(self, **changes) -> "SolverPrefs":
        return dataclasses.replace(self, **changes)

    def construction_prefs(self) -> ChebfunPrefs:
        """Constructor options used when the solve drives adaptation."""
        return ChebfunPrefs(
            splitting=False,
            maxdegree=2 * self.maxdegree,
            eps=self.eps,
            n=self.n,
            sampletest=False,
        )


def merge_prefs(prefs: ChebfunPrefs | None, **overrides) -> ChebfunPrefs:
    """Apply keyword overrides (ignoring None) on top of a preference record."""
    prefs = ChebfunPrefs() if prefs is None else prefs
    changes = {k: v for k, v in overrides.items() if v is not None}
    return prefs.replace(**changes) if changes else prefs
