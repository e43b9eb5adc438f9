"""
Shared test fixtures for the wholesale portal.

Every fixture builds fresh state from the JSON files bundled with the
package, with a clock pinned to FIXED_NOW so expiry windows and price list
effective dates are deterministic.
"""
import dataclasses
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from wholesale_portal.api.dependencies import SESSION_COOKIE, session_cookie_for
from wholesale_portal.api.main import app
from wholesale_portal.api.state import get_state, PortalState
from wholesale_portal.config.settings import Settings
from wholesale_portal.engine.models import PriceList, PriceRule, VolumeBreak
from wholesale_portal.engine.pricing_engine import PricingEngine

DATA_DIR = Path(__file__).resolve().parent.parent / 'src' / 'wholesale_portal' / 'data'
FIXED_NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)

    def set(self, now: datetime):
        self.now = now


@pytest.fixture
def settings():
    """Settings over the bundled data, ignoring PORTAL_* overrides."""
    return Settings(
        data_dir=DATA_DIR,
        price_lists_file=DATA_DIR / 'price_lists.json',
        products_file=DATA_DIR / 'products.json',
        companies_file=DATA_DIR / 'companies.json',
        users_file=DATA_DIR / 'users.json',
        quotes_file=DATA_DIR / 'quotes.json',
    )


@pytest.fixture
def volume_overrides_tier_settings(settings):
    return dataclasses.replace(settings, discount_precedence='volume_overrides_tier')


@pytest.fixture
def engine(settings):
    return PricingEngine(settings)


@pytest.fixture
def sample_price_list():
    """Bronze base tier with a single 50+ unit break at 40% off."""
    return PriceList(
        id='pl-test',
        name='Test Contract',
        company_id='company-test',
        base_tier='tier-1',
        rules=[PriceRule(product_id='prod-x', volume_breaks=[VolumeBreak(min_qty=50, discount=0.40)])],
    )


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def state(settings, clock):
    return PortalState(settings, clock=clock)


@pytest.fixture
def quote_service(state):
    return state.quote_service


@pytest.fixture
def client(state):
    """TestClient bound to the per-test state."""
    app.dependency_overrides[get_state] = lambda: state
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Switch the client's session cookie to the given user."""
    def _login(user_id: str) -> TestClient:
        client.cookies.clear()
        client.cookies.set(SESSION_COOKIE, session_cookie_for(user_id))
        return client
    return _login
