import jax
import pytest


def pytest_sessionstart(session):
    """Enable JAX 64-bit mode at the start of the pytest session."""
    jax.config.update("jax_enable_x64", True)


@pytest.fixture
def cache():
    """A fresh factorization cache with the default byte budget."""
    from chebfunx import FactorizationCache

    return FactorizationCache()


@pytest.fixture
def unit_interval():
    return (0.0, 1.0)
