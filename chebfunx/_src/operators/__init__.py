"""
Linear and nonlinear operators on an interval, solved with growing matrices.

Classes exported:
    OperatorMatrix, BCKind, BoundaryCondition, LinearOperator
    FactorizationCache, SolveState, Collocation, Operator

Functions exported:
    diff_operator, identity_operator, zeros_operator, diag_operator, cumsum_operator
    dirichlet, neumann, periodic, functional, as_bcs
    solve_linear, apply_linear, eigs
"""

from .bcs import BCKind, BoundaryCondition, Side, as_bcs, dirichlet, functional, neumann, periodic
from .cache import FactorizationCache
from .chebop import Operator
from .collocation import Collocation
from .linop import (
    LinearOperator,
    cumsum_operator,
    diag_operator,
    diff_operator,
    identity_operator,
    zeros_operator,
)
from .solver import EigenState, SolveState, apply_linear, eigs, solve_linear
from .varmat import OperatorMatrix

__all__ = [
    "BCKind",
    "BoundaryCondition",
    "Collocation",
    "EigenState",
    "FactorizationCache",
    "LinearOperator",
    "Operator",
    "OperatorMatrix",
    "Side",
    "SolveState",
    "apply_linear",
    "as_bcs",
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
]
