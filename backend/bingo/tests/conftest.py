import pytest

from bingo.host.coordinator import HostCoordinator
from bingo.tests.helpers.coordinator import build_coordinator


@pytest.fixture
def coordinator() -> HostCoordinator:
    return build_coordinator()
