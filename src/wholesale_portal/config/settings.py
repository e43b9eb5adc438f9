"""
Centralized settings and path configuration for the wholesale portal.
"""
import copy
import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional


def get_data_dir() -> Path:
    """Get the directory holding the mock JSON data files."""
    override = os.environ.get('PORTAL_DATA_DIR')
    if override:
        return Path(override).resolve()
    # Bundled with the package
    return Path(__file__).resolve().parent.parent / 'data'


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('true', '1', 'yes', 'on')


# Tier → discount off MSRP and tier-specific minimum order value
DEFAULT_TIERS = {
    'tier-1': {'label': 'Bronze', 'discount': 0.30, 'min_order_value': 500.0},
    'tier-2': {'label': 'Silver', 'discount': 0.40, 'min_order_value': 2500.0},
    'tier-3': {'label': 'Gold', 'discount': 0.50, 'min_order_value': 5000.0},
}

# Order type → minimum order value and prebook deposit
DEFAULT_ORDER_TYPES = {
    'at-once': {'label': 'At Once', 'min_order_value': 500.0},
    'prebook': {'label': 'Prebook', 'min_order_value': 1000.0, 'deposit_percent': 30.0},
    'closeout': {'label': 'Closeout', 'min_order_value': 250.0, 'final_sale': True},
}

DISCOUNT_PRECEDENCE_POLICIES = ('best_for_customer', 'volume_overrides_tier')


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Data files
    data_dir: Path
    price_lists_file: Path
    products_file: Path
    companies_file: Path
    users_file: Path
    quotes_file: Path

    # Pricing
    tiers: dict = field(default_factory=lambda: copy.deepcopy(DEFAULT_TIERS))
    order_types: dict = field(default_factory=lambda: copy.deepcopy(DEFAULT_ORDER_TYPES))
    default_pricing_tier: str = 'tier-1'
    discount_precedence: str = 'best_for_customer'
    min_unit_price: float = 0.01

    # Quotes
    quote_validity_days: int = 30
    expiring_lookahead_days: int = 3
    allow_accept_from_draft: bool = False
    tax_rate: float = 9.0  # percent
    free_shipping_threshold: float = 500.0
    flat_shipping: float = 50.0
    currency: str = 'USD'

    # Cron trigger for the expiry sweep
    cron_secret: Optional[str] = None

    def __post_init__(self):
        if self.discount_precedence not in DISCOUNT_PRECEDENCE_POLICIES:
            raise ValueError(
                f"Unknown discount precedence '{self.discount_precedence}'. "
                f"Expected one of {', '.join(DISCOUNT_PRECEDENCE_POLICIES)}."
            )

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> 'Settings':
        """Load settings from the data directory and PORTAL_* environment variables."""
        root = data_dir or get_data_dir()

        return cls(
            data_dir=root,
            price_lists_file=root / 'price_lists.json',
            products_file=root / 'products.json',
            companies_file=root / 'companies.json',
            users_file=root / 'users.json',
            quotes_file=root / 'quotes.json',
            default_pricing_tier=os.environ.get('PORTAL_DEFAULT_TIER', 'tier-1'),
            discount_precedence=os.environ.get('PORTAL_DISCOUNT_PRECEDENCE', 'best_for_customer'),
            allow_accept_from_draft=_env_bool('PORTAL_ALLOW_ACCEPT_FROM_DRAFT', False),
            quote_validity_days=int(os.environ.get('PORTAL_QUOTE_VALIDITY_DAYS', 30)),
            cron_secret=os.environ.get('PORTAL_CRON_SECRET') or None,
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
