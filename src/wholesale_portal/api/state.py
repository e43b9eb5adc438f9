"""
Application state shared by the API routers.

Everything mutable (quotes, orders, catalog overrides) hangs off one
PortalState. Routers receive it through the `get_state` dependency, which
tests override with a state built on their own settings and clock.
"""
from datetime import datetime
from typing import Callable, Optional

from loguru import logger

from ..catalog.catalog import ProductCatalog
from ..catalog.overrides import InMemoryKeyValueStore, KeyValueStore
from ..clock import utcnow
from ..config.settings import get_settings, Settings
from ..engine.price_lists import PriceListStore
from ..engine.pricing_engine import PricingEngine
from ..quotes.repository import OrderRepository, QuoteRepository
from ..quotes.service import QuoteService


class PortalState:
    """Engine, stores and services for one running application."""

    def __init__(self, settings: Optional[Settings] = None,
                 clock: Callable[[], datetime] = utcnow,
                 store: Optional[KeyValueStore] = None,
                 load_seed_quotes: bool = True):
        self.settings = settings or get_settings()
        self.clock = clock
        self.started_at = clock()

        self.engine = PricingEngine(self.settings)
        self.price_lists = PriceListStore.load(self.settings.price_lists_file)
        self.catalog = ProductCatalog.load(
            self.settings.products_file,
            self.settings.companies_file,
            self.settings.users_file,
            store=store if store is not None else InMemoryKeyValueStore(),
        )

        self.quotes = QuoteRepository()
        self.orders = OrderRepository()
        self.quote_service = QuoteService(
            self.quotes,
            self.orders,
            self.engine,
            self.price_lists,
            self.catalog,
            settings=self.settings,
            clock=clock,
        )
        if load_seed_quotes:
            self.quotes.load_seed(self.settings.quotes_file, self.quote_service.calculate_quote_pricing)

        logger.info("Portal state ready (data dir {})", self.settings.data_dir)


_state: Optional[PortalState] = None


def get_state() -> PortalState:
    """FastAPI dependency returning the process-wide state, built on first use."""
    global _state
    if _state is None:
        _state = PortalState()
    return _state
