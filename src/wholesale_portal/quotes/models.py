"""
Data models for quotes and the orders they convert into.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..clock import parse_datetime


QUOTE_STATUSES = (
    'draft', 'sent', 'viewed', 'revised', 'accepted',
    'rejected', 'expired', 'cancelled', 'converted',
)
QUOTE_TYPES = ('rfq', 'proactive', 'renewal')
PAYMENT_TERMS = ('net-30', 'net-60', 'due-on-receipt', 'custom')
SHIPPING_TERMS = ('fob-origin', 'fob-destination', 'cif', 'custom')


@dataclass
class QuoteItem:
    """A priced quote line. unit_price and total come from the pricing engine."""
    id: str
    product_id: str
    product_name: str
    sku: str
    quantity: int
    unit_price: float
    original_price: float
    discount: float  # percent off original_price
    total: float
    discount_type: str = 'percentage'
    notes: Optional[str] = None
    variant: Optional[dict[str, str]] = None
    applied_rules: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> 'QuoteItem':
        return cls(
            id=data['id'],
            product_id=data['productId'],
            product_name=data.get('productName', ''),
            sku=data.get('sku', ''),
            quantity=int(data['quantity']),
            unit_price=float(data['unitPrice']),
            original_price=float(data['originalPrice']),
            discount=float(data.get('discount', 0)),
            total=float(data['total']),
            discount_type=data.get('discountType', 'percentage'),
            notes=data.get('notes'),
            variant=data.get('variant'),
        )


@dataclass
class QuotePricing:
    """Quote money. `total` is always the sum of item totals."""
    subtotal: float
    discount: float
    discount_percentage: float
    total: float
    tax_rate: float
    tax: float
    shipping: float
    grand_total: float
    currency: str = 'USD'


@dataclass
class QuoteTerms:
    valid_until: datetime
    payment_terms: str = 'net-30'
    shipping_terms: str = 'fob-destination'
    payment_terms_custom: Optional[str] = None
    shipping_terms_custom: Optional[str] = None
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'QuoteTerms':
        return cls(
            valid_until=parse_datetime(data['validUntil']),
            payment_terms=data.get('paymentTerms', 'net-30'),
            shipping_terms=data.get('shippingTerms', 'fob-destination'),
            payment_terms_custom=data.get('paymentTermsCustom'),
            shipping_terms_custom=data.get('shippingTermsCustom'),
            delivery_date=parse_datetime(data.get('deliveryDate')),
            notes=data.get('notes'),
            internal_notes=data.get('internalNotes'),
        )


@dataclass
class QuoteVersion:
    """Snapshot of a quote's items and pricing before a revision."""
    version_number: int
    created_at: datetime
    created_by: str
    changes: list[str]
    pricing: QuotePricing
    items: list[QuoteItem]


@dataclass
class QuoteEvent:
    """Timeline entry appended on every status-affecting mutation."""
    id: str
    timestamp: datetime
    type: str
    user_id: str
    details: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


@dataclass
class Quote:
    id: str
    number: str  # QUOTE-2025-001
    company_id: str
    company_name: str
    created_by: str
    status: str
    type: str
    items: list[QuoteItem]
    pricing: QuotePricing
    terms: QuoteTerms
    created_at: datetime
    updated_at: datetime
    contact_id: Optional[str] = None
    assigned_to: Optional[str] = None
    order_type: Optional[str] = None
    versions: list[QuoteVersion] = field(default_factory=list)
    current_version: int = 1
    timeline: list[QuoteEvent] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    reference_number: Optional[str] = None
    converted_order_id: Optional[str] = None

    def last_event(self, event_type: str) -> Optional[QuoteEvent]:
        for event in reversed(self.timeline):
            if event.type == event_type:
                return event
        return None


@dataclass
class QuoteRequestItem:
    product_id: str
    quantity: int
    variant: Optional[dict[str, str]] = None
    notes: Optional[str] = None


@dataclass
class QuoteRequest:
    """Input for creating a quote."""
    company_id: str
    items: list[QuoteRequestItem]
    type: str = 'proactive'
    contact_id: Optional[str] = None
    order_type: Optional[str] = None
    notes: Optional[str] = None
    requested_delivery_date: Optional[datetime] = None
    reference_number: Optional[str] = None
    tags: list[str] = field(default_factory=list)


@dataclass
class QuoteRevision:
    """Changes proposed in a revision. Items are re-priced from scratch."""
    items: Optional[list[QuoteRequestItem]] = None
    terms: Optional[dict[str, Any]] = None
    notes: Optional[str] = None


@dataclass
class QuoteFilter:
    status: Optional[list[str]] = None
    type: Optional[list[str]] = None
    company_id: Optional[str] = None
    assigned_to: Optional[str] = None
    created_by: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    search: Optional[str] = None


@dataclass
class QuoteSummary:
    total_quotes: int
    draft_quotes: int
    sent_quotes: int
    accepted_quotes: int
    rejected_quotes: int
    expired_quotes: int
    converted_quotes: int
    total_value: float
    accepted_value: float
    conversion_rate: float  # percent
    average_quote_value: float
    average_time_to_close: float  # days


@dataclass
class QuoteTemplateItem:
    product_id: str
    quantity: int


@dataclass
class QuoteTemplate:
    id: str
    name: str
    items: list[QuoteTemplateItem]
    terms: dict[str, Any]
    created_by: str
    created_at: datetime
    updated_at: datetime
    description: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    usage_count: int = 0


@dataclass
class Order:
    """Order produced by converting an accepted quote."""
    id: str
    number: str  # ORD-2025-00001
    quote_id: str
    company_id: str
    items: list[QuoteItem]
    pricing: QuotePricing
    created_by: str
    created_at: datetime
    order_type: Optional[str] = None
    status: str = 'pending'
    reference_number: Optional[str] = None
