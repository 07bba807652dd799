import enum
import itertools
import math
import numbers

import jax.numpy as jnp
from jaxtyping import Array

from .config import EPS
from .errors import DomainMismatchError

_ids = itertools.count(1)


def new_id() -> int:
    """Return a fresh identity token (used to key cached factorizations)."""
    return next(_ids)


def as_array(values) -> Array:
    """Convert function output to a 1D jnp array, keeping complex dtype."""
    out = jnp.asarray(values)
    if not (jnp.issubdtype(out.dtype, jnp.floating) or jnp.issubdtype(out.dtype, jnp.complexfloating)):
        out = out.astype(float)
    return out


def evaluate(f, x: Array) -> Array:
    """Evaluate a vectorised handle, broadcasting scalar-valued results."""
    out = as_array(f(x))
    if out.shape != x.shape:
        out = jnp.broadcast_to(out, x.shape)
    return out


def horizontal_scale(ends) -> float:
    """Horizontal scale of a domain, with a finite stand-in for unbounded ends."""
    ends = [float(e) for e in ends]
    hs = max(abs(ends[0]), abs(ends[-1]))
    if math.isinf(hs):
        finite = [abs(e) for e in ends if not math.isinf(e)]
        hs = max(finite) + 1.0 if finite else 2.0
    return hs


def domain_check(*domains, tol: float = 10 * EPS) -> tuple[float, float]:
    """
    Return the common interval of several ``(a, b)`` domains.

    Endpoints are compared with a little floating-point forgiveness relative
    to the horizontal scale.

    Raises:
    -------
    DomainMismatchError
        If the endpoints disagree beyond the tolerance.
    """
    lefts = [float(d[0]) for d in domains]
    rights = [float(d[-1]) for d in domains]
    hs = max(horizontal_scale((a, b)) for a, b in zip(lefts, rights))
    dl = 0.0 if min(lefts) == max(lefts) else max(lefts) - min(lefts)
    dr = 0.0 if min(rights) == max(rights) else max(rights) - min(rights)
    if dl > tol * hs or dr > tol * hs:
        raise DomainMismatchError(
            f"Function domains do not match: {list(zip(lefts, rights))}"
        )
    return min(lefts), max(rights)


class OperandKind(enum.Enum):
    """Tag of an arithmetic operand."""

    SCALAR = "scalar"
    CHEBFUN = "chebfun"
    OPERATOR = "operator"
    FIELD = "field"


def operand_kind(x) -> OperandKind:
    """
    Classify an operand for arithmetic dispatch.

    Chebfuns, operators and collocation fields carry an ``operand_kind``
    class attribute; numbers and 0-d arrays are scalars.

    Raises:
    -------
    TypeError
        For anything else.
    """
    kind = getattr(type(x), "operand_kind", None)
    if isinstance(kind, OperandKind):
        return kind
    if isinstance(x, numbers.Number) or (hasattr(x, "shape") and x.shape == ()):
        return OperandKind.SCALAR
    raise TypeError(f"Unsupported operand type: {type(x).__name__}")
