# ============================================================================
# Growing-Matrix Solver
# ============================================================================
"""
Adaptive solution of linear operator equations A u = f.

Growing Matrix Method:
----------------------
The adaptive constructor is handed a sampler whose "values at n points"
are the solution of the discretized problem at size n:

    1. Discretize A at n second-kind points.
    2. Impose boundary conditions, either by projecting the equations onto
       n - #bc first-kind points and appending the boundary rows
       (rectangular), or by replacing rows of the square matrix.
    3. Factor (LU, optionally cached per operator id and size) and solve.
    4. Reshape into per-variable columns, tail-filter each, and sum.

Convergence of the solve is then judged by exactly the same happiness
test as any other construction. The sampler returns the solution block as
an explicit second value (``SolveState``), which the constructor hands
back with the final piece.

Trial sizes at or below the number of boundary conditions produce an
alternating vector, which is never happy, so the constructor moves on to
a larger size.
"""

import warnings

import equinox as eqx
import jax.numpy as jnp
import jax.scipy.linalg as jsl
import numpy as np
from jaxtyping import Array
from loguru import logger

from ..chebyshev.filters import tail_filter
from ..chebyshev.grid import barymat, chebpts, vals_to_coeffs
from ..config import SolverPrefs
from ..errors import BoundaryConditionWarning, IllPosedRequestError, SolverConvergenceError
from ..fun.chebfun import Chebfun
from ..fun.construct import Sampler, construct
from ..fun.piece import Piece
from ..utils import domain_check, evaluate

# Trial sizes used to pick an eigenvalue target automatically
_EIG_PROBE_SIZES = (33, 65)


class SolveState(eqx.Module):
    """
    Solution block of the last discrete solve.

    Attributes:
    -----------
        values : Array [n, m]
            Column j holds variable j at the n second-kind points.
    """

    values: Array

    @property
    def n(self) -> int:
        return int(self.values.shape[0])


class EigenState(eqx.Module):
    """
    Eigenpairs of the last discrete eigenproblem.

    Attributes:
    -----------
        vectors : Array [m * n, k]
            Eigenvectors, variable-major blocks of n values.
        eigenvalues : Array [k]
    """

    vectors: Array
    eigenvalues: Array


# ============================================================================
# Helpers
# ============================================================================


def _alternating(n: int) -> Array:
    return jnp.asarray((-1.0) ** np.arange(n))


def _check_size(n: int, prefs: SolverPrefs) -> None:
    if n > prefs.maxdegree + 1:
        raise SolverConvergenceError(
            f"Failed to converge with {prefs.maxdegree + 1} points"
        )
    if n == 1:
        raise IllPosedRequestError(
            "Solution requested at a lone point. Check for a bug in the operator definition."
        )


def _sample(f, x: Array) -> Array:
    """Right-hand side (chebfun, handle or constant) at x."""
    if isinstance(f, Chebfun) or callable(f):
        return evaluate(f, x)
    return jnp.full(x.shape, f, dtype=jnp.result_type(f, float))


def _scale_parts(scale):
    """Split a scale into a function added to the samples and a number."""
    if isinstance(scale, Chebfun):
        return scale, 0.0
    if callable(scale):
        return scale, 0.0
    return None, float(abs(scale))


def _factor(Amat: Array, op_id: int, n: int, prefs: SolverPrefs, cache):
    use = cache is not None and prefs.storage and n > 5
    if use:
        lu = cache.get(op_id, n)
        if lu is not None:
            return lu
    lu = jsl.lu_factor(Amat)
    if use:
        cache.put(op_id, n, lu)
    return lu


def _lu_solve(lu, rhs: Array) -> Array:
    if jnp.iscomplexobj(rhs) and not jnp.iscomplexobj(lu[0]):
        return _lu_solve(lu, jnp.real(rhs)) + 1j * _lu_solve(lu, jnp.imag(rhs))
    return jsl.lu_solve(lu, rhs.astype(lu[0].dtype))


def _column_chebfun(vals: Array, domain) -> Chebfun:
    return Chebfun(pieces=(Piece(vals, domain).simplify(),))


def _as_rhs(f, m: int) -> list:
    if isinstance(f, (list, tuple)):
        if len(f) != m:
            raise ValueError(f"Expected {m} right-hand sides, got {len(f)}")
        return list(f)
    return [f] * m


def _equation_orders(A) -> np.ndarray:
    return np.clip(np.asarray(A.difforder).max(axis=1), 0, None)


def check_bc_count(A) -> None:
    """Warn when the number of boundary conditions differs from the order."""
    expected = int(_equation_orders(A).sum())
    if A.numbc != expected:
        warnings.warn(
            f"Operator of order {expected} has {A.numbc} boundary condition(s); "
            "the solve may fail to converge",
            BoundaryConditionWarning,
            stacklevel=3,
        )


# ============================================================================
# Linear solve
# ============================================================================


def discrete_solve(A, fs: list, x: Array, prefs: SolverPrefs, cache=None) -> Array:
    """
    Solve the discretized problem at the points x (second kind, size n).

    Returns:
    --------
    V : Array [n, m]
        Unfiltered solution, one column per variable.
    """
    n = x.shape[0]
    m = A.blocksize[1]
    Amat, Bmat, c, rowidx = A.discretize(n)

    if prefs.rectangular and A.numbc > 0:
        if m == 1:
            x1 = chebpts(n - A.numbc, A.domain, kind=1)
            Amat = jnp.concatenate([barymat(x1, x) @ Amat, Bmat])
            rhs = jnp.concatenate([_sample(fs[0], x1), c.astype(jnp.result_type(c, float))])
        else:
            orders = _equation_orders(A)
            blocks, parts = [], []
            for j in range(m):
                P = barymat(chebpts(n - int(orders[j]), A.domain, kind=1), x)
                blocks.append(P @ Amat[j * n : (j + 1) * n])
                parts.append(P @ _sample(fs[j], x))
            Amat = jnp.concatenate(blocks + [Bmat])
            rhs = jnp.concatenate(parts + [c.astype(jnp.result_type(c, float))])
    else:
        rhs = jnp.concatenate([_sample(fj, x) for fj in fs])
        if len(rowidx):
            Amat = Amat.at[rowidx].set(Bmat)
            rhs = rhs.astype(jnp.result_type(rhs, c)).at[rowidx].set(c)

    if Amat.shape[0] == Amat.shape[1]:
        v = _lu_solve(_factor(Amat, A.id, n, prefs, cache), rhs)
    else:
        v = jnp.linalg.lstsq(Amat, rhs.astype(jnp.result_type(Amat, rhs)))[0]
    return v.reshape(m, n).T


def _solve_sampler(A, fs: list, prefs: SolverPrefs, cache, scale_fn) -> Sampler:
    m = A.blocksize[1]
    guard = A.numbc if m == 1 else int(np.asarray(A.difforder).max())

    def value(x):
        n = x.shape[0]
        _check_size(n, prefs)
        shift = 0.0 if scale_fn is None else evaluate(scale_fn, x)
        if n <= guard + 1:
            return shift + _alternating(n), None
        V = discrete_solve(A, fs, x, prefs, cache)
        V = jnp.stack([tail_filter(V[:, j], prefs.filter_tol) for j in range(m)], axis=1)
        logger.debug(f"solve n={n}: |v| = {float(jnp.max(jnp.abs(V))):.3e}")
        return shift + jnp.sum(V, axis=1), SolveState(V)

    return Sampler(value, pointwise=False)


def solve_linear(A, f, prefs: SolverPrefs | None = None, cache=None):
    """
    Solve A u = f adaptively.

    Parameters:
    -----------
    A : LinearOperator
        Operator with boundary conditions (single interval domain).
    f : Chebfun, callable, scalar, or list of these (systems)
        Right-hand side.
    prefs : SolverPrefs, optional
    cache : FactorizationCache, optional
        Store for LU factorizations, keyed by (A.id, n).

    Returns:
    --------
    Chebfun for a single variable, list of Chebfun for systems.

    Raises:
    -------
    SolverConvergenceError
        Trial size exceeded ``prefs.maxdegree + 1``.
    IllPosedRequestError
        The constructor asked for a single point.
    """
    prefs = SolverPrefs() if prefs is None else prefs
    rows, m = A.blocksize
    if rows != m:
        raise ValueError(f"Block size must be square, got {A.blocksize}")
    check_bc_count(A)
    fs = _as_rhs(f, m)

    scale_fn, vscale = _scale_parts(A.scale)
    cprefs = prefs.construction_prefs().replace(scale=vscale)
    sampler = _solve_sampler(A, fs, prefs, cache, scale_fn)
    logger.info(f"solving operator {A.id} on {A.domain} ({m} variable(s), {A.numbc} bc)")
    res = construct(sampler, A.domain, cprefs)
    if res.state is None:
        raise SolverConvergenceError("No discrete solution was computed")
    logger.info(f"operator {A.id}: converged with n={res.state.n}")

    if m == 1:
        u = Chebfun(pieces=res.pieces, ends=res.ends, imps=res.imps, happy=res.happy)
        if scale_fn is not None:
            u = u - (scale_fn if isinstance(scale_fn, Chebfun) else Chebfun(scale_fn, A.domain))
        return u
    return [_column_chebfun(res.state.values[:, j], A.domain) for j in range(m)]


# ============================================================================
# Operator application
# ============================================================================


def apply_linear(A, u, prefs: SolverPrefs | None = None):
    """
    Apply A to a chebfun (or list of chebfuns) by growing matrix products.

    Boundary conditions are ignored. Each product is tail-filtered like a
    solve. For block operators, the rows are combined with fixed random
    weights to drive adaptation.
    """
    prefs = SolverPrefs() if prefs is None else prefs
    rows, m = A.blocksize
    us = list(u) if isinstance(u, (list, tuple)) else [u]
    if len(us) != m:
        raise ValueError(f"Operator has {m} column block(s), got {len(us)} function(s)")
    domain_check(A.domain, *[w.domain for w in us])
    weights = jnp.asarray(np.random.default_rng(0).standard_normal(rows)) if rows > 1 else jnp.ones(1)

    def value(x):
        n = x.shape[0]
        _check_size(n, prefs)
        U = jnp.concatenate([w(x) for w in us])
        G = (A.matrix(n) @ U).reshape(rows, n).T
        G = jnp.stack([tail_filter(G[:, j], prefs.filter_tol) for j in range(rows)], axis=1)
        return G @ weights.astype(G.dtype), SolveState(G)

    res = construct(Sampler(value, pointwise=False), A.domain, prefs.construction_prefs())
    if rows == 1:
        return Chebfun(pieces=res.pieces, ends=res.ends, imps=res.imps, happy=res.happy)
    return [_column_chebfun(res.state.values[:, j], A.domain) for j in range(rows)]


# ============================================================================
# Eigenvalues
# ============================================================================


def _nearest(lam: np.ndarray, sigma, k: int) -> np.ndarray:
    """Indices of the k eigenvalues preferred by sigma."""
    if isinstance(sigma, str):
        key = sigma.upper()
        if key == "LR":
            idx = np.argsort(-lam.real, kind="stable")
        elif key == "SR":
            idx = np.argsort(lam.real, kind="stable")
        elif key == "LM":
            idx = np.argsort(-np.abs(lam), kind="stable")
        else:
            raise ValueError(f"Unknown eigenvalue selector: {sigma!r}")
    elif np.isinf(sigma):
        idx = np.argsort(-np.abs(lam), kind="stable")
    else:
        idx = np.argsort(np.abs(lam - sigma), kind="stable")
    return idx[: min(k, idx.shape[0])]


def _bc_eig(A, n: int, k: int, sigma):
    """
    Eigenpairs of the discretization with boundary rows eliminated.

    The boundary rows express the eliminated values in terms of the others,

        u_e = R u_i,    R = -B_e⁻¹ B_i

    leaving the reduced matrix L_ii + L_ie R.
    """
    L, Bmat, _, rowidx = A.discretize(n)
    L = np.array(L)
    L[np.asarray(rowidx)] = np.asarray(Bmat)
    elim = np.zeros(L.shape[0], dtype=bool)
    elim[np.asarray(rowidx, dtype=int)] = True
    R = -np.linalg.solve(L[np.ix_(elim, elim)], L[np.ix_(elim, ~elim)])
    Lr = L[np.ix_(~elim, ~elim)] + L[np.ix_(~elim, elim)] @ R
    lam, W = np.linalg.eig(Lr)
    idx = _nearest(lam, sigma, k)
    V = np.zeros((L.shape[0], idx.shape[0]), dtype=W.dtype)
    V[~elim] = W[:, idx]
    V[elim] = R @ V[~elim]
    return V, lam[idx]


def _auto_sigma(A):
    """Target the eigenvalue whose mode is least oscillatory and converged."""
    m = A.blocksize[0]
    n1, n2 = _EIG_PROBE_SIZES
    V1, lam1 = _bc_eig(A, n1, n1 * m, 0.0)
    _, lam2 = _bc_eig(A, n2, n2 * m, 0.0)
    delta = np.min(np.abs(lam1[None, :] - lam2[:, None]), axis=0)
    bigdel = delta > 1e-12 * np.max(np.abs(lam1))
    if np.all(bigdel):
        return lam1[int(np.argmin(delta))]
    lam1 = lam1[~bigdel]
    modes = V1[:, ~bigdel].reshape(m, n1, -1)
    C = np.abs(
        np.asarray(
            [[vals_to_coeffs(jnp.asarray(modes[i, :, j])) for j in range(modes.shape[2])] for i in range(m)]
        )
    ).transpose(0, 2, 1)
    mx = C.max(axis=(0, 1))
    score = C.sum(axis=(0, 1)) / np.where(mx > 0, mx, 1.0)
    return lam1[int(np.argmin(score))]


def eigs(A, k: int = 6, sigma=None, prefs: SolverPrefs | None = None):
    """
    Selected eigenvalues and eigenfunctions of an operator with boundary
    conditions.

    Dense eigenproblems of growing size are solved; the sum of the selected
    eigenvectors drives the adaptive constructor.

    Parameters:
    -----------
    A : LinearOperator
        Square operator with boundary conditions.
    k : int
        Number of eigenpairs.
    sigma : float, complex, "LR", "SR", "LM", or None
        Target: nearest to a number, largest/smallest real part, largest
        magnitude. None picks the least oscillatory converged mode.
    prefs : SolverPrefs, optional

    Returns:
    --------
    lam : Array [k]
    V : list
        Normalized eigenfunctions (a list of per-variable lists for systems).
    """
    prefs = SolverPrefs() if prefs is None else prefs
    rows, m = A.blocksize
    if rows != m:
        raise ValueError(f"Block size must be square, got {A.blocksize}")
    if sigma is None:
        sigma = _auto_sigma(A)
        logger.debug(f"eigs: automatic target {sigma}")

    def value(x):
        n = x.shape[0]
        if n > prefs.maxdegree + 1:
            raise SolverConvergenceError(
                "Eigenfunctions not converging. Check sigma, or ask for fewer modes."
            )
        if n == 1:
            raise IllPosedRequestError("Eigenfunctions requested at a lone point")
        if n - A.numbc < k:
            return _alternating(n), None
        V, lam = _bc_eig(A, n, k, sigma)
        v = np.real_if_close(V.reshape(m, n, -1).sum(axis=(0, 2)))
        return tail_filter(jnp.asarray(v), prefs.filter_tol), EigenState(jnp.asarray(V), jnp.asarray(lam))

    res = construct(Sampler(value, pointwise=False), A.domain, prefs.construction_prefs())
    if res.state is None:
        raise SolverConvergenceError("No eigenproblem was solved")
    V = np.asarray(res.state.vectors)
    n = V.shape[0] // m
    lam = np.real_if_close(np.asarray(res.state.eigenvalues))
    funcs = []
    for j in range(V.shape[1]):
        mode = []
        for i in range(m):
            col = np.real_if_close(V[i * n : (i + 1) * n, j])
            f = _column_chebfun(jnp.asarray(col), A.domain)
            nrm = float(f.norm())
            mode.append(f / nrm if nrm > 0 else f)
        funcs.append(mode[0] if m == 1 else mode)
    return jnp.asarray(lam), funcs
