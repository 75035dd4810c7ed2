import pytest

from qaforum.observability import get_metrics


@pytest.fixture(autouse=True)
def reset_metrics():
    """Metrics are process-global; start every test from zero."""
    get_metrics().reset()
    yield
    get_metrics().reset()
