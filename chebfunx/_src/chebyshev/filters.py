# ============================================================================
# Chebyshev Coefficient Filters
# ============================================================================

import jax.numpy as jnp
from jaxtyping import Array

from .grid import coeffs_to_vals, vals_to_coeffs


def tail_filter(values: Array, tol: float = 1e-8) -> Array:
    """
    Suppress roundoff noise in the Chebyshev tail of a sampled solution.

    Mathematical Formulation:
    -------------------------
    With coefficients a_k of the interpolant through ``values`` and the
    vertical scale V = max |values|, a coefficient is zeroed when

        |a_{k-1}| / V < tol,   |a_k| / V < tol,   |a_{k+1}| / V < tol

    i.e. only isolated-small runs are removed; resolved content, however
    small, that sits next to a significant coefficient is kept.

    Parameters:
    -----------
    values : Array [N]
        Values at second-kind Chebyshev points.
    tol : float
        Relative threshold. Default 1e-8.

    Returns:
    --------
    Array [N]
        Filtered values. Vectors shorter than 3 are returned unchanged.
    """
    values = jnp.asarray(values)
    n = values.shape[0]
    if n < 3:
        return values
    vscale = jnp.max(jnp.abs(values))
    if vscale == 0:
        return values
    a = vals_to_coeffs(values)
    small = jnp.abs(a) / vscale < tol
    padded = jnp.concatenate([jnp.ones(1, dtype=bool), small, jnp.ones(1, dtype=bool)])
    kill = small & padded[:-2] & padded[2:]
    return coeffs_to_vals(jnp.where(kill, 0.0, a))
