"""
In-memory repositories for quotes, templates and orders.

One instance per application state; nothing is module-global, so each test
builds its own. Concurrent writers are not serialized: last write wins.
"""
import json
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from ..clock import parse_datetime
from ..exceptions import NotFoundError
from .models import (
    Order,
    Quote,
    QuoteEvent,
    QuoteItem,
    QuotePricing,
    QuoteTemplate,
    QuoteTemplateItem,
    QuoteTerms,
)


class QuoteRepository:
    """Quote and template storage."""

    def __init__(self):
        self._quotes: dict[str, Quote] = {}
        self._templates: dict[str, QuoteTemplate] = {}

    def add(self, quote: Quote) -> Quote:
        self._quotes[quote.id] = quote
        return quote

    def save(self, quote: Quote) -> Quote:
        if quote.id not in self._quotes:
            raise NotFoundError(f"Quote {quote.id} not found")
        self._quotes[quote.id] = quote
        return quote

    def get(self, quote_id: str) -> Optional[Quote]:
        return self._quotes.get(quote_id)

    def all(self) -> list[Quote]:
        return list(self._quotes.values())

    def count(self) -> int:
        return len(self._quotes)

    def next_quote_number(self, year: int) -> str:
        prefix = f"QUOTE-{year}-"
        taken = {q.number for q in self._quotes.values()}
        seq = sum(1 for n in taken if n.startswith(prefix)) + 1
        while f"{prefix}{seq:03d}" in taken:
            seq += 1
        return f"{prefix}{seq:03d}"

    def add_template(self, template: QuoteTemplate) -> QuoteTemplate:
        self._templates[template.id] = template
        return template

    def get_template(self, template_id: str) -> Optional[QuoteTemplate]:
        return self._templates.get(template_id)

    def list_templates(self) -> list[QuoteTemplate]:
        return list(self._templates.values())

    def load_seed(self, path: Path, pricing_fn: Callable[[list[QuoteItem]], QuotePricing]) -> int:
        """
        Load seed quotes and templates from JSON.

        Pricing is recomputed from the items with `pricing_fn` so seeded
        totals cannot drift from their items.
        """
        if not path.exists():
            logger.warning("Quote seed file {} not found, starting empty", path)
            return 0

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        for raw in data.get('quotes', []):
            items = [QuoteItem.from_dict(i) for i in raw.get('items', [])]
            quote = Quote(
                id=raw['id'],
                number=raw['number'],
                company_id=raw['companyId'],
                company_name=raw.get('companyName', ''),
                created_by=raw['createdBy'],
                status=raw.get('status', 'draft'),
                type=raw.get('type', 'proactive'),
                items=items,
                pricing=pricing_fn(items),
                terms=QuoteTerms.from_dict(raw['terms']),
                created_at=parse_datetime(raw['createdAt']),
                updated_at=parse_datetime(raw.get('updatedAt') or raw['createdAt']),
                contact_id=raw.get('contactId'),
                assigned_to=raw.get('assignedTo'),
                order_type=raw.get('orderType'),
                current_version=int(raw.get('currentVersion', 1)),
                timeline=[
                    QuoteEvent(
                        id=e['id'],
                        timestamp=parse_datetime(e['timestamp']),
                        type=e['type'],
                        user_id=e['userId'],
                        details=e.get('details'),
                        metadata=e.get('metadata'),
                    )
                    for e in raw.get('timeline', [])
                ],
                tags=list(raw.get('tags') or []),
                reference_number=raw.get('referenceNumber'),
                converted_order_id=raw.get('convertedOrderId'),
            )
            self.add(quote)

        for raw in data.get('templates', []):
            terms = raw.get('terms') or {}
            self.add_template(QuoteTemplate(
                id=raw['id'],
                name=raw['name'],
                description=raw.get('description'),
                items=[
                    QuoteTemplateItem(product_id=i['productId'], quantity=int(i['quantity']))
                    for i in raw.get('items', [])
                ],
                terms={
                    'payment_terms': terms.get('paymentTerms'),
                    'shipping_terms': terms.get('shippingTerms'),
                    'notes': terms.get('notes'),
                },
                tags=list(raw.get('tags') or []),
                created_by=raw['createdBy'],
                created_at=parse_datetime(raw['createdAt']),
                updated_at=parse_datetime(raw.get('updatedAt') or raw['createdAt']),
                usage_count=int(raw.get('usageCount', 0)),
            ))

        logger.info(
            "Loaded {} seed quotes and {} templates from {}",
            len(self._quotes), len(self._templates), path,
        )
        return len(self._quotes)


class OrderRepository:
    """Orders created by quote conversion."""

    def __init__(self):
        self._orders: dict[str, Order] = {}

    def add(self, order: Order) -> Order:
        self._orders[order.id] = order
        return order

    def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    def all(self) -> list[Order]:
        return list(self._orders.values())

    def next_order_number(self, year: int) -> str:
        prefix = f"ORD-{year}-"
        seq = sum(1 for o in self._orders.values() if o.number.startswith(prefix)) + 1
        return f"{prefix}{seq:05d}"
