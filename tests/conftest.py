# tests/conftest.py
import pytest

from fluxdispatch.core import log
from fluxdispatch.core import metrics


@pytest.fixture(scope="session", autouse=True)
def _bootstrap_logging():
    # reads LOG_LEVEL / LOG_JSON / .env if available
    log.setup()
    yield


@pytest.fixture(autouse=True)
def _fresh_metrics():
    metrics.reset()
    yield
    metrics.stop_exporter()


@pytest.fixture
def dispatcher():
    from fluxdispatch.core.dispatcher import Dispatcher
    return Dispatcher(name="test.dispatcher")
