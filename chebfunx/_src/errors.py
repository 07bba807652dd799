# ============================================================================
# Errors and Warnings
# ============================================================================
"""
Failure taxonomy shared by the representation layer and the operator solver.

Structural failures raise and abort the current construction or solve:

    IllPosedRequestError            a lone evaluation point reached the solver
    DomainMismatchError             operands live on incompatible intervals
    UnsupportedRepresentationError  the representation cannot express a result
        UnboundedBlowupError        integrand does not decay at an infinite end
        UnsupportedExponentError    singular integration outside supported range
    SolverConvergenceError          growing-matrix or Newton loop did not converge

Numerical conditions are warnings and never unwind the call stack:

    ConvergenceWarning              degree or length cap reached while adapting
    BoundaryConditionWarning        number of conditions differs from the order
"""


class ChebfunError(Exception):
    """Base class for all structural chebfunx failures."""


class IllPosedRequestError(ChebfunError):
    """A solution was requested at a single point."""


class DomainMismatchError(ChebfunError, ValueError):
    """Operands are defined on intervals that do not agree."""


class UnsupportedRepresentationError(ChebfunError):
    """The requested result has no representation as a weighted piece."""


class UnboundedBlowupError(UnsupportedRepresentationError):
    """Integration of a function that does not vanish at an infinite endpoint."""


class UnsupportedExponentError(UnsupportedRepresentationError):
    """Singular integration with an unsupported combination of exponents."""


class SolverConvergenceError(ChebfunError):
    """The operator solver failed to converge."""


class ConvergenceWarning(UserWarning):
    """Adaptive construction stopped at a cap without resolving the function."""


class BoundaryConditionWarning(UserWarning):
    """Number of boundary conditions does not match the differential order."""
