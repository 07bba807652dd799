import jax
from loguru import logger

jax.config.update("jax_enable_x64", True)

from chebfunx._src.chebyshev import (  # noqa: E402
    bary,
    barymat,
    chebpts,
    coeffs_to_vals,
    cumsummat,
    diffmat,
    quadwts,
    tail_filter,
    vals_to_coeffs,
)
from chebfunx._src.config import ChebfunPrefs, SolverPrefs  # noqa: E402
from chebfunx._src.errors import (  # noqa: E402
    BoundaryConditionWarning,
    ChebfunError,
    ConvergenceWarning,
    DomainMismatchError,
    IllPosedRequestError,
    SolverConvergenceError,
    UnboundedBlowupError,
    UnsupportedExponentError,
    UnsupportedRepresentationError,
)
from chebfunx._src.fun import (  # noqa: E402
    Chebfun,
    Map,
    Piece,
    construct,
    detect_edge,
    lagpoly,
    legpoly,
    linear_map,
    unbounded_map,
)
from chebfunx._src.operators import (  # noqa: E402
    BCKind,
    BoundaryCondition,
    Collocation,
    FactorizationCache,
    LinearOperator,
    Operator,
    OperatorMatrix,
    SolveState,
    cumsum_operator,
    diag_operator,
    diff_operator,
    dirichlet,
    eigs,
    functional,
    identity_operator,
    neumann,
    periodic,
    solve_linear,
    zeros_operator,
)

logger.disable("chebfunx")

__all__ = [
    # Chebyshev helpers
    "bary",
    "barymat",
    "chebpts",
    "coeffs_to_vals",
    "cumsummat",
    "diffmat",
    "quadwts",
    "tail_filter",
    "vals_to_coeffs",
    # Functions
    "Chebfun",
    "ChebfunPrefs",
    "Map",
    "Piece",
    "construct",
    "detect_edge",
    "lagpoly",
    "legpoly",
    "linear_map",
    "unbounded_map",
    # Operators
    "BCKind",
    "BoundaryCondition",
    "Collocation",
    "FactorizationCache",
    "LinearOperator",
    "Operator",
    "OperatorMatrix",
    "SolveState",
    "SolverPrefs",
    "cumsum_operator",
    "diag_operator",
    "diff_operator",
    "dirichlet",
    "eigs",
    "functional",
    "identity_operator",
    "neumann",
    "periodic",
    "solve_linear",
    "zeros_operator",
    # Errors and warnings
    "BoundaryConditionWarning",
    "ChebfunError",
    "ConvergenceWarning",
    "DomainMismatchError",
    "IllPosedRequestError",
    "SolverConvergenceError",
    "UnboundedBlowupError",
    "UnsupportedExponentError",
    "UnsupportedRepresentationError",
]
