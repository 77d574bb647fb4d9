import pytest
import structlog


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Keep CLI-configured loggers (bound to CliRunner's temporary stderr) from leaking across tests."""
    yield
    structlog.reset_defaults()
