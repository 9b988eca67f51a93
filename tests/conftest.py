import pytest

from django_async_ssr.util.logger import setup_logging


@pytest.fixture(autouse=True)
def _trace_logging():
    """Make sure the TRACE level exists, so that trace calls are exercised in all tests."""
    setup_logging()
    yield
