"""
Chebyshev Grid Module
=====================

Points, transforms and matrices for polynomial interpolation on an interval.

Key Concepts:
-------------
    • Second-kind points (extrema, include endpoints), ascending order:
          xⱼ = -cos(πj/(n-1)),  j = 0, ..., n-1
    • First-kind points (roots, exclude endpoints):
          xⱼ = -cos(π(2j+1)/(2n)),  j = 0, ..., n-1
    • Chebyshev expansion: p(x) = Σ cₖ Tₖ(x), coefficients in ascending degree
    • Barycentric interpolation through node values (Berrut & Trefethen 2004)

All matrix builders are numpy helpers returning jnp arrays; they are called
once per discretization size.

References:
-----------
[1] Trefethen, L. N. (2000). Spectral Methods in MATLAB. SIAM.
[2] Mason, J. C. & Handscomb, D. C. (2002). Chebyshev Polynomials. CRC.
[3] Berrut, J.-P. & Trefethen, L. N. (2004). Barycentric Lagrange
    Interpolation. SIAM Review 46(3).
"""

import jax.numpy as jnp
import numpy as np
import numpy.polynomial.chebyshev as npcheb
from jaxtyping import Array, Float

# ============================================================================
# Points and weights
# ============================================================================


def _unit_points(n: int, kind: int = 2) -> np.ndarray:
    """Chebyshev points on [-1, 1] in ascending order (exactly symmetric)."""
    if n == 0:
        return np.zeros(0)
    if kind == 2:
        if n == 1:
            return np.zeros(1)
        m = n - 1
        return np.sin(np.pi * np.arange(-m, m + 1, 2) / (2 * m))
    m = n - 1
    return np.sin(np.pi * np.arange(-m, m + 1, 2) / (2 * n))


def chebpts(n: int, domain=(-1.0, 1.0), kind: int = 2) -> Float[Array, "n"]:
    """
    Chebyshev points of the first or second kind on a finite interval.

    Parameters:
    -----------
    n : int
        Number of points.
    domain : tuple
        Interval (a, b).
    kind : int
        1 for roots, 2 for extrema (default).

    Returns:
    --------
    x : Array [n]
        Ascending points; for kind=2 the endpoints are exactly a and b.
    """
    a, b = float(domain[0]), float(domain[-1])
    y = _unit_points(n, kind)
    x = 0.5 * (b - a) * y + 0.5 * (a + b)
    if kind == 2 and n > 1:
        x[0], x[-1] = a, b
    return jnp.asarray(x)


def bary_weights(n: int, kind: int = 2) -> Float[Array, "n"]:
    """
    Barycentric weights for Chebyshev points.

    Second kind:  wⱼ = (-1)ʲ, halved at both ends.
    First kind:   wⱼ = (-1)ʲ sin(π(2j+1)/(2n)).
    """
    if n == 1:
        return jnp.ones(1)
    j = np.arange(n)
    if kind == 2:
        w = (-1.0) ** j
        w[0] *= 0.5
        w[-1] *= 0.5
    else:
        w = (-1.0) ** j * np.sin(np.pi * (2 * j + 1) / (2 * n))
    return jnp.asarray(w)


# ============================================================================
# Transforms (FFT-based DCT-I between values and coefficients)
# ============================================================================


def vals_to_coeffs(vals: Array) -> Array:
    """
    Chebyshev coefficients from values at second-kind points.

    The values are reversed onto the descending nodes cos(πj/N), extended
    symmetrically to length 2N and transformed:

        c₀ = (1/N) Σ'' uⱼ,   cₖ = (2/N) Σ'' uⱼ cos(πjk/N),   c_N = (1/N) Σ'' uⱼ(-1)ʲ

    Parameters:
    -----------
    vals : Array [n]
        Values at ascending second-kind points.

    Returns:
    --------
    coeffs : Array [n]
        Coefficients in ascending degree. Real input gives real output.
    """
    vals = jnp.asarray(vals)
    n = vals.shape[0]
    if n <= 1:
        return vals
    u = vals[::-1]
    ext = jnp.concatenate([u, u[-2:0:-1]])
    c = jnp.fft.ifft(ext)[:n]
    c = c.at[1 : n - 1].multiply(2.0)
    if not jnp.iscomplexobj(vals):
        c = c.real
    return c


def coeffs_to_vals(coeffs: Array) -> Array:
    """
    Values at second-kind points from Chebyshev coefficients.

    Inverse of `vals_to_coeffs`: halve the interior coefficients, extend
    symmetrically and apply the FFT.
    """
    coeffs = jnp.asarray(coeffs)
    n = coeffs.shape[0]
    if n <= 1:
        return coeffs
    b = coeffs.at[1 : n - 1].multiply(0.5)
    ext = jnp.concatenate([b, b[-2:0:-1]])
    u = jnp.fft.fft(ext)[:n]
    if not jnp.iscomplexobj(coeffs):
        u = u.real
    return u[::-1]


# ============================================================================
# Barycentric interpolation
# ============================================================================


def bary(x: Array, vals: Array, pts: Array | None = None, weights: Array | None = None) -> Array:
    """
    Evaluate the polynomial interpolant through (pts, vals) at x.

        p(x) = Σⱼ (wⱼ fⱼ / (x - xⱼ)) / Σⱼ (wⱼ / (x - xⱼ))

    Exact at the nodes. Defaults to second-kind points on [-1, 1].

    Parameters:
    -----------
    x : Array
        Evaluation points (any shape).
    vals : Array [n]
        Values at the nodes.
    pts, weights : Array [n], optional
        Nodes and barycentric weights.

    Returns:
    --------
    Array with the shape of x.
    """
    x = jnp.asarray(x)
    vals = jnp.asarray(vals)
    n = vals.shape[0]
    if n == 1:
        return jnp.full(x.shape, vals[0], dtype=vals.dtype)
    if pts is None:
        pts = chebpts(n)
    if weights is None:
        weights = bary_weights(n)
    xf = x.reshape(-1)
    diff = xf[:, None] - pts[None, :]
    exact = diff == 0
    diff = jnp.where(exact, 1.0, diff)
    c = weights[None, :] / diff
    out = (c @ vals) / jnp.sum(c, axis=1)
    hit = jnp.any(exact, axis=1)
    out = jnp.where(hit, vals[jnp.argmax(exact, axis=1)], out)
    return out.reshape(x.shape)


def barymat(y: Array, x: Array, w: Array | None = None) -> Array:
    """
    Interpolation matrix from nodes x to points y.

    Row i holds the barycentric basis at yᵢ, so that barymat(y, x) @ f(x)
    interpolates f at y. Rows at coincident points are unit vectors.

    Parameters:
    -----------
    y : Array [m]
        Target points.
    x : Array [n]
        Nodes.
    w : Array [n], optional
        Barycentric weights (second-kind weights by default).

    Returns:
    --------
    P : Array [m, n]
    """
    y = jnp.asarray(y)
    x = jnp.asarray(x)
    n = x.shape[0]
    if w is None:
        w = bary_weights(n)
    if n == 1:
        return jnp.ones((y.shape[0], 1))
    diff = y[:, None] - x[None, :]
    exact = diff == 0
    diff = jnp.where(exact, 1.0, diff)
    P = w[None, :] / diff
    P = P / jnp.sum(P, axis=1, keepdims=True)
    hit = jnp.any(exact, axis=1, keepdims=True)
    return jnp.where(hit, exact.astype(P.dtype), P)


# ============================================================================
# Coefficient recurrences
# ============================================================================


def diff_coeffs(c: Array) -> Array:
    """
    Coefficients of the derivative of Σ cₖ Tₖ on [-1, 1].

        bₖ = 2 Σ_{j>k, j-k odd} j cⱼ   (k ≥ 1),   b₀ = Σ_{j odd} j cⱼ

    Evaluated with reverse cumulative sums over each parity class.
    Returns n-1 coefficients (one zero coefficient for n = 1).
    """
    c = jnp.asarray(c)
    n = c.shape[0]
    if n <= 1:
        return jnp.zeros(1, dtype=c.dtype)
    j = jnp.arange(n)
    w = 2.0 * j * c
    even = jnp.where(j % 2 == 0, w, 0.0)
    odd = jnp.where(j % 2 == 1, w, 0.0)
    s_even = jnp.cumsum(even[::-1])[::-1]
    s_odd = jnp.cumsum(odd[::-1])[::-1]
    k1 = jnp.arange(1, n)
    b = jnp.where(k1 % 2 == 0, s_even[1:], s_odd[1:])
    return b.at[0].multiply(0.5)


def cumsum_coeffs(c: Array) -> Array:
    """
    Coefficients of the indefinite integral of Σ cₖ Tₖ vanishing at x = -1.

        C₁ = c₀ - c₂/2,   Cₖ = (cₖ₋₁ - cₖ₊₁)/(2k)  (k ≥ 2),
        C₀ = Σ_{k≥1} (-1)^{k+1} Cₖ

    with cₙ = cₙ₊₁ = 0. Returns n+1 coefficients.
    """
    c = jnp.asarray(c)
    n = c.shape[0]
    cp = jnp.concatenate([c, jnp.zeros(2, dtype=c.dtype)])
    k = jnp.arange(1, n + 1)
    C = (cp[k - 1] - cp[k + 1]) / (2.0 * k)
    C = C.at[0].set(cp[0] - 0.5 * cp[2])
    sign = jnp.where(k % 2 == 1, 1.0, -1.0)
    C0 = jnp.sum(sign * C)
    return jnp.concatenate([C0[None], C])


def clenshaw_curtis(c: Array) -> Array:
    """Integral over [-1, 1] of Σ cₖ Tₖ: Σ_{k even} 2cₖ/(1-k²)."""
    c = jnp.asarray(c)
    k = jnp.arange(c.shape[0])
    even = k % 2 == 0
    w = jnp.where(even, 2.0 / (1.0 - jnp.where(even, k, 0) ** 2), 0.0)
    return jnp.sum(w * c)


def chebval(x: Array, c: Array) -> Array:
    """Evaluate Σ cₖ Tₖ(x) by the Clenshaw recurrence."""
    x = jnp.asarray(x)
    c = jnp.asarray(c)
    b1 = jnp.zeros(x.shape, dtype=jnp.result_type(x, c))
    b2 = jnp.zeros_like(b1)
    for ck in c[:0:-1]:
        b1, b2 = 2.0 * x * b1 - b2 + ck, b1
    return x * b1 - b2 + c[0]


# ============================================================================
# Matrices
# ============================================================================


def _cheb_diff_matrix_asc(n: int) -> np.ndarray:
    """
    Chebyshev differentiation matrix on ascending second-kind points of [-1, 1].

    Standard formula (Trefethen 2000, Ch. 6) on the descending nodes,

        D_{ij} = (cᵢ/cⱼ) (-1)^{i+j} / (xᵢ - xⱼ)   i ≠ j
        D_{jj} = -Σ_{k≠j} D_{jk}                   (row-sum = 0)

    with cᵢ = 2 at both ends, then reindexed to ascending order.
    """
    if n <= 1:
        return np.zeros((1, 1))
    N = n - 1
    x = _unit_points(n)[::-1]  # descending: x[0]=1, x[N]=-1

    c = np.ones(N + 1)
    c[0] = 2.0
    c[N] = 2.0

    ii = np.arange(N + 1)
    dX = x[:, None] - x[None, :]
    sign = (-1.0) ** (ii[:, None] + ii[None, :])

    with np.errstate(divide="ignore", invalid="ignore"):
        D = (c[:, None] / c[None, :]) * sign / dX

    np.fill_diagonal(D, 0.0)
    D -= np.diag(D.sum(axis=1))
    return D[::-1, ::-1].copy()


def diffmat(n: int, domain=(-1.0, 1.0), order: int = 1) -> Float[Array, "n n"]:
    """
    Differentiation matrix of the given order on n second-kind points.

    Chain rule for the linear map: D_phys = (2/(b-a)) D_ref.
    """
    a, b = float(domain[0]), float(domain[-1])
    if order == 0:
        return jnp.eye(n)
    D = _cheb_diff_matrix_asc(n) * (2.0 / (b - a))
    return jnp.asarray(np.linalg.matrix_power(D, order))


def _coeff_matrix(n: int) -> np.ndarray:
    """Matrix taking second-kind values to Chebyshev coefficients."""
    if n == 1:
        return np.eye(1)
    E = np.eye(n)[::-1]
    M = np.real(np.fft.ifft(np.vstack([E, E[-2:0:-1]]), axis=0))[:n]
    M[1 : n - 1] *= 2.0
    return M


def cumsummat(n: int, domain=(-1.0, 1.0)) -> Float[Array, "n n"]:
    """
    Indefinite integration matrix on n second-kind points.

    (Q @ u)ᵢ ≈ ∫ₐ^{xᵢ} u(t) dt, exact for polynomials of degree < n
    (the degree-n term of the integral is dropped on the n-point grid).
    """
    a, b = float(domain[0]), float(domain[-1])
    if n == 1:
        return jnp.asarray([[0.0]])
    M = _coeff_matrix(n)
    K = np.column_stack([npcheb.chebint(col, lbnd=-1) for col in np.eye(n)])
    T = npcheb.chebvander(_unit_points(n), n)
    Q = T[:, :n] @ K[:n] @ M
    return jnp.asarray(Q * 0.5 * (b - a))


def quadwts(n: int, domain=(-1.0, 1.0)) -> Float[Array, "n"]:
    """Clenshaw–Curtis quadrature weights on n second-kind points."""
    a, b = float(domain[0]), float(domain[-1])
    if n == 1:
        return jnp.asarray([b - a])
    k = np.arange(n)
    moments = np.where(k % 2 == 0, 2.0 / (1.0 - np.where(k % 2 == 0, k, 0) ** 2), 0.0)
    return jnp.asarray(moments @ _coeff_matrix(n) * 0.5 * (b - a))


def jacobi_vandermonde(x, n: int, a: float, b: float) -> np.ndarray:
    """
    Values of Jacobi polynomials P₀^{(a,b)}, ..., P_{n-1}^{(a,b)} at x.

    Three-term recurrence with P₀ = 1, P₁ = ((a+1) + (a+b+2)(x-1)/2).
    """
    x = np.asarray(x, dtype=float)
    P = np.zeros((x.shape[0], n))
    P[:, 0] = 1.0
    if n == 1:
        return P
    apb = a + b
    P[:, 1] = 0.5 * (2 * (a + 1) + (apb + 2) * (x - 1))
    for k in range(2, n):
        k2 = 2 * k
        k2apb = k2 + apb
        q1 = k2 * (k + apb) * (k2apb - 2)
        q2 = (k2apb - 1) * (a * a - b * b)
        q3 = (k2apb - 2) * (k2apb - 1) * k2apb
        q4 = 2 * (k + a - 1) * (k + b - 1) * k2apb
        P[:, k] = ((q2 + q3 * x) * P[:, k - 1] - q4 * P[:, k - 2]) / q1
    return P
