"""Root conftest: BINGO_* test environment and per-test structlog context."""

from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# host and router events both end up as stdlib records, so caplog sees them
structlog.stdlib.recreate_defaults()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """lobby_id/connection_id bound by one test must not leak into the next."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
