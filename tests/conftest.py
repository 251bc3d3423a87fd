import pytest

from database.connection import DatabaseManager
from database.stores import PortfolioStore, ScanStore
from factories import FakeClock
from utils.rate_limiter import RequestThrottle


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def throttle():
    return RequestThrottle(max_requests=1000, window_seconds=60.0, min_interval_seconds=0.0)


@pytest.fixture
def db():
    manager = DatabaseManager("sqlite://")
    manager.create_tables()
    return manager


@pytest.fixture
def scan_store(db):
    return ScanStore(db)


@pytest.fixture
def portfolio_store(db):
    return PortfolioStore(db)
