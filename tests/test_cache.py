"""
Tests for the explicit factorization cache.
"""

import jax.numpy as jnp

from chebfunx import FactorizationCache, diff_operator


def test_cache_get_put_counts():
    cache = FactorizationCache()
    assert cache.get(1, 9) is None
    cache.put(1, 9, jnp.eye(9))
    assert (1, 9) in cache
    assert jnp.array_equal(cache.get(1, 9), jnp.eye(9))
    assert cache.hits == 1
    assert cache.misses == 1
    assert cache.nbytes == jnp.eye(9).nbytes


def test_cache_clears_when_over_budget():
    cache = FactorizationCache(maxbytes=100)
    cache.put(1, 9, jnp.zeros((9, 9)))
    assert len(cache) == 0
    assert cache.nbytes == 0


def test_cache_invalidate_one_operator():
    cache = FactorizationCache()
    cache.put(1, 9, jnp.eye(9))
    cache.put(1, 17, jnp.eye(17))
    cache.put(2, 9, jnp.eye(9))
    cache.invalidate(1)
    assert len(cache) == 1
    assert (2, 9) in cache


def test_cache_clear():
    cache = FactorizationCache()
    cache.put(3, 9, (jnp.eye(9), jnp.arange(9)))
    cache.clear()
    assert len(cache) == 0


def test_solves_reuse_factorizations(cache):
    """A second solve with the same operator hits the cache at every size."""
    A = diff_operator((0.0, 1.0), 2).with_lbc(0.0).with_rbc(1.0)
    A.solve(1.0, cache=cache)
    assert cache.hits == 0
    assert len(cache) > 0
    A.solve(lambda x: jnp.sin(x), cache=cache)
    assert cache.hits > 0


def test_new_conditions_new_entries(cache):
    """Changing the conditions issues a new id, so old entries are not reused."""
    A = diff_operator((0.0, 1.0), 2).with_lbc(0.0).with_rbc(1.0)
    A.solve(1.0, cache=cache)
    B = A.with_rbc(2.0)
    assert B.id != A.id
    B.solve(1.0, cache=cache)
    assert cache.hits == 0
