# ============================================================================
# Factorization Cache
# ============================================================================
"""
Explicit store of LU factorizations keyed by (operator id, size).

The cache is passed to the solver by the caller; nothing is shared
implicitly between solves. Eviction is coarse: when the stored bytes
exceed ``maxbytes`` after an insertion, every entry is dropped.
"""

import jax
from loguru import logger

from ..config import DEFAULT_MAXSTORAGE


def _nbytes(value) -> int:
    return sum(int(leaf.nbytes) for leaf in jax.tree_util.tree_leaves(value) if hasattr(leaf, "nbytes"))


class FactorizationCache:
    """
    Mutable cache of factorizations.

    >>> cache = FactorizationCache(maxbytes=2**20)
    >>> u = A.solve(f, cache=cache)     # factors at each trial size
    >>> u = A.solve(g, cache=cache)     # reuses them

    Attributes:
    -----------
        maxbytes : int
            Footprint above which the whole cache is cleared.
    """

    def __init__(self, maxbytes: int = DEFAULT_MAXSTORAGE):
        self.maxbytes = int(maxbytes)
        self._store = {}
        self._sizes = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key) -> bool:
        return key in self._store

    @property
    def nbytes(self) -> int:
        return sum(self._sizes.values())

    def get(self, op_id: int, n: int):
        """Stored factorization, or None."""
        value = self._store.get((op_id, n))
        if value is None:
            self.misses += 1
        else:
            self.hits += 1
        return value

    def put(self, op_id: int, n: int, value) -> None:
        key = (op_id, n)
        self._store[key] = value
        self._sizes[key] = _nbytes(value)
        if self.nbytes > self.maxbytes:
            logger.debug(f"factorization cache over budget ({self.nbytes} > {self.maxbytes} bytes), clearing")
            self.clear()

    def invalidate(self, op_id: int) -> None:
        """Drop every entry of one operator."""
        for key in [k for k in self._store if k[0] == op_id]:
            del self._store[key]
            del self._sizes[key]

    def clear(self) -> None:
        self._store.clear()
        self._sizes.clear()
