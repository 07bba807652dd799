"""
Chebyshev points, transforms and matrices on an interval.

Functions exported:
    chebpts, bary_weights
    vals_to_coeffs, coeffs_to_vals, bary, barymat, chebval
    diffmat, cumsummat, quadwts, diff_coeffs, cumsum_coeffs, clenshaw_curtis
    jacobi_vandermonde
    tail_filter
"""

from .filters import tail_filter
from .grid import (
    bary,
    bary_weights,
    barymat,
    chebpts,
    chebval,
    clenshaw_curtis,
    coeffs_to_vals,
    cumsum_coeffs,
    cumsummat,
    diff_coeffs,
    diffmat,
    jacobi_vandermonde,
    quadwts,
    vals_to_coeffs,
)

__all__ = [
    "bary",
    "bary_weights",
    "barymat",
    "chebpts",
    "chebval",
    "clenshaw_curtis",
    "coeffs_to_vals",
    "cumsum_coeffs",
    "cumsummat",
    "diff_coeffs",
    "diffmat",
    "jacobi_vandermonde",
    "quadwts",
    "tail_filter",
    "vals_to_coeffs",
]
