"""
Quote Service - Quote lifecycle on top of the pricing engine.

Every quote item is priced by the PricingEngine against the company's
resolved price list, and QuotePricing.total is always the sum of the item
totals. Status changes are validated against the transition table in
lifecycle.py and each one appends a QuoteEvent to the timeline.

The service does not check roles; the API layer does that before calling in.
"""
import copy
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import uuid4

from loguru import logger

from ..catalog.catalog import ProductCatalog
from ..clock import parse_datetime, utcnow
from ..config.settings import get_settings, Settings
from ..engine.models import ORDER_TYPES, BulkPricingLine, BulkPricingRequest
from ..engine.price_lists import PriceListStore
from ..engine.pricing_engine import PricingEngine
from ..exceptions import InvalidTransitionError, NotFoundError, ValidationError
from .lifecycle import EXPIRABLE_STATUSES, check_transition
from .models import (
    PAYMENT_TERMS,
    QUOTE_STATUSES,
    QUOTE_TYPES,
    SHIPPING_TERMS,
    Order,
    Quote,
    QuoteEvent,
    QuoteFilter,
    QuoteItem,
    QuotePricing,
    QuoteRequest,
    QuoteRequestItem,
    QuoteRevision,
    QuoteSummary,
    QuoteTemplate,
    QuoteTemplateItem,
    QuoteTerms,
    QuoteVersion,
)
from .repository import OrderRepository, QuoteRepository


REVISABLE_STATUSES = frozenset({'draft', 'sent', 'viewed', 'revised'})
EDITABLE_TERMS = (
    'valid_until', 'payment_terms', 'payment_terms_custom', 'shipping_terms',
    'shipping_terms_custom', 'delivery_date', 'notes', 'internal_notes',
)


def _round(amount: float) -> float:
    return round(amount + 0.0, 2)


class QuoteService:
    """Create, price, revise, transition, expire and convert quotes."""

    def __init__(
        self,
        repository: QuoteRepository,
        orders: OrderRepository,
        engine: PricingEngine,
        price_lists: PriceListStore,
        catalog: ProductCatalog,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.orders = orders
        self.engine = engine
        self.price_lists = price_lists
        self.catalog = catalog
        self.settings = settings or get_settings()
        self.clock = clock

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def calculate_quote_pricing(self, items: list[QuoteItem]) -> QuotePricing:
        """Roll item totals up into quote-level money."""
        subtotal = _round(sum(item.original_price * item.quantity for item in items))
        total = _round(sum(item.total for item in items))
        discount = _round(subtotal - total)
        tax_rate = self.settings.tax_rate
        tax = _round(total * tax_rate / 100.0)
        if not items or total > self.settings.free_shipping_threshold:
            shipping = 0.0
        else:
            shipping = self.settings.flat_shipping

        return QuotePricing(
            subtotal=subtotal,
            discount=discount,
            discount_percentage=_round(discount / subtotal * 100) if subtotal > 0 else 0.0,
            total=total,
            tax_rate=tax_rate,
            tax=tax,
            shipping=shipping,
            grand_total=_round(total + tax + shipping),
            currency=self.settings.currency,
        )

    def price_items(self, company_id: str, request_items: list[QuoteRequestItem],
                    order_type: Optional[str] = None) -> list[QuoteItem]:
        """Price request lines for a company through the pricing engine."""
        if not request_items:
            raise ValidationError("A quote needs at least one item")

        products = {}
        for line in request_items:
            if line.quantity is None or int(line.quantity) < 1:
                raise ValidationError(f"Quantity for product {line.product_id} must be at least 1")
            if not self.catalog.has_product(line.product_id):
                raise ValidationError(f"Product {line.product_id} not found")
            products[line.product_id] = self.catalog.get_product(line.product_id)

        now = self.clock()
        company = self.catalog.get_company(company_id)
        price_list = self.price_lists.resolve_for_company(company_id, at=now)
        if price_list is None:
            logger.warning("No price list for company {}, using tier pricing", company_id)

        bulk = self.engine.calculate_bulk(
            BulkPricingRequest(
                company_id=company_id,
                items=[BulkPricingLine(product_id=l.product_id, quantity=int(l.quantity)) for l in request_items],
                order_type=order_type,
                pricing_tier=company.pricing_tier if company else self.settings.default_pricing_tier,
            ),
            msrps={pid: p.msrp for pid, p in products.items()},
            price_list=price_list,
            at=now,
        )

        items = []
        for index, (line, calc) in enumerate(zip(request_items, bulk.calculations), start=1):
            product = products[line.product_id]
            items.append(QuoteItem(
                id=f"item-{index}",
                product_id=product.id,
                product_name=product.name,
                sku=product.sku,
                quantity=calc.quantity,
                unit_price=calc.unit_price,
                original_price=calc.msrp,
                discount=calc.savings_percent,
                total=calc.total_price,
                notes=line.notes,
                variant=line.variant,
                applied_rules=list(calc.applied_rules),
            ))
        return items

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_quote(self, quote_id: str) -> Quote:
        quote = self.repository.get(quote_id)
        if quote is None:
            raise NotFoundError(f"Quote {quote_id} not found")
        return quote

    def get_quotes(self, quote_filter: Optional[QuoteFilter] = None) -> list[Quote]:
        """List quotes matching the filter, newest first."""
        quotes = self.repository.all()
        f = quote_filter
        if f:
            if f.status:
                quotes = [q for q in quotes if q.status in f.status]
            if f.type:
                quotes = [q for q in quotes if q.type in f.type]
            if f.company_id:
                quotes = [q for q in quotes if q.company_id == f.company_id]
            if f.assigned_to:
                quotes = [q for q in quotes if q.assigned_to == f.assigned_to]
            if f.created_by:
                quotes = [q for q in quotes if q.created_by == f.created_by]
            if f.date_from:
                quotes = [q for q in quotes if q.created_at >= f.date_from]
            if f.date_to:
                quotes = [q for q in quotes if q.created_at <= f.date_to]
            if f.min_value is not None:
                quotes = [q for q in quotes if q.pricing.total >= f.min_value]
            if f.max_value is not None:
                quotes = [q for q in quotes if q.pricing.total <= f.max_value]
            if f.search:
                needle = f.search.lower()
                quotes = [
                    q for q in quotes
                    if needle in q.number.lower()
                    or needle in q.company_name.lower()
                    or any(needle in item.product_name.lower() for item in q.items)
                ]
        return sorted(quotes, key=lambda q: q.created_at, reverse=True)

    def get_quote_summary(self, quote_filter: Optional[QuoteFilter] = None) -> QuoteSummary:
        """Dashboard counts and values. Converted quotes count as accepted."""
        quotes = self.get_quotes(quote_filter)

        def count(*statuses):
            return sum(1 for q in quotes if q.status in statuses)

        won = [q for q in quotes if q.status in ('accepted', 'converted')]
        total_value = _round(sum(q.pricing.total for q in quotes))

        close_days = []
        for quote in won:
            accepted = quote.last_event('accepted')
            if accepted:
                close_days.append((accepted.timestamp - quote.created_at).days)

        return QuoteSummary(
            total_quotes=len(quotes),
            draft_quotes=count('draft'),
            sent_quotes=count('sent', 'viewed'),
            accepted_quotes=len(won),
            rejected_quotes=count('rejected'),
            expired_quotes=count('expired'),
            converted_quotes=count('converted'),
            total_value=total_value,
            accepted_value=_round(sum(q.pricing.total for q in won)),
            conversion_rate=_round(len(won) / len(quotes) * 100) if quotes else 0.0,
            average_quote_value=_round(total_value / len(quotes)) if quotes else 0.0,
            average_time_to_close=_round(sum(close_days) / len(close_days)) if close_days else 0.0,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_quote(self, request: QuoteRequest, user_id: str) -> Quote:
        """Create a draft quote with engine-priced items."""
        if not request.company_id:
            raise ValidationError("company_id is required")
        if request.type not in QUOTE_TYPES:
            raise ValidationError(f"Unknown quote type '{request.type}'")
        if request.order_type is not None and request.order_type not in ORDER_TYPES:
            raise ValidationError(f"Unknown order type '{request.order_type}'")

        items = self.price_items(request.company_id, request.items, request.order_type)
        now = self.clock()
        company = self.catalog.get_company(request.company_id)
        creator = self.catalog.get_user(user_id)

        quote = Quote(
            id=f"quote-{uuid4().hex[:12]}",
            number=self.repository.next_quote_number(now.year),
            company_id=request.company_id,
            company_name=company.name if company else 'Unknown Company',
            created_by=user_id,
            status='draft',
            type=request.type,
            items=items,
            pricing=self.calculate_quote_pricing(items),
            terms=QuoteTerms(
                valid_until=now + timedelta(days=self.settings.quote_validity_days),
                delivery_date=request.requested_delivery_date,
                notes=request.notes,
            ),
            created_at=now,
            updated_at=now,
            contact_id=request.contact_id,
            assigned_to=user_id if creator and creator.role == 'sales_rep' else None,
            order_type=request.order_type,
            tags=list(request.tags),
            reference_number=request.reference_number,
        )
        self.repository.add(quote)
        logger.info(
            "Quote {} created for company {} by {} ({} items, total ${:.2f})",
            quote.number, quote.company_id, user_id, len(items), quote.pricing.total,
        )
        return quote

    def _append_event(self, quote: Quote, event_type: str, user_id: str, details: Optional[str] = None,
                      metadata: Optional[dict] = None) -> QuoteEvent:
        event = QuoteEvent(
            id=f"event-{uuid4().hex[:12]}",
            timestamp=self.clock(),
            type=event_type,
            user_id=user_id,
            details=details,
            metadata=metadata,
        )
        quote.timeline.append(event)
        return event

    def update_quote_status(self, quote_id: str, new_status: str, actor_id: str,
                            details: Optional[str] = None) -> Quote:
        """
        Move a quote to a new status.

        Raises:
            NotFoundError: quote does not exist
            InvalidTransitionError: the transition table forbids the change
        """
        quote = self.get_quote(quote_id)
        if new_status not in QUOTE_STATUSES:
            raise ValidationError(f"Unknown quote status '{new_status}'")
        if new_status == 'converted':
            raise ValidationError("Use the convert operation to turn a quote into an order")

        check_transition(quote.status, new_status, self.settings.allow_accept_from_draft)

        now = self.clock()
        previous = quote.status
        quote.status = new_status
        quote.updated_at = now
        if new_status == 'expired' and quote.terms.valid_until > now:
            quote.terms.valid_until = now

        self._append_event(quote, new_status, actor_id, details)
        self.repository.save(quote)
        logger.info("Quote {} {} → {} by {}", quote.number, previous, new_status, actor_id)
        return quote

    def mark_viewed(self, quote_id: str, actor_id: str) -> Quote:
        """Record a retailer opening a sent quote. Other statuses are left alone."""
        quote = self.get_quote(quote_id)
        if quote.status != 'sent':
            return quote
        return self.update_quote_status(quote_id, 'viewed', actor_id, 'Customer viewed the quote')

    def add_quote_revision(self, quote_id: str, revision: QuoteRevision, actor_id: str) -> Quote:
        """
        Revise a quote's items and/or terms.

        The current items and pricing are snapshotted into `versions` first.
        Sent and viewed quotes move to `revised`; drafts stay drafts.
        """
        quote = self.get_quote(quote_id)
        if quote.status not in REVISABLE_STATUSES:
            raise InvalidTransitionError(quote.status, 'revised', "quote can no longer be revised")

        changes = []
        if revision.items is not None:
            changes.append('Updated line items')
        if revision.terms:
            changes.append('Modified terms')
        if revision.notes is not None:
            changes.append('Updated notes')
        if not changes:
            raise ValidationError("Revision contains no changes")

        new_items = None
        if revision.items is not None:
            new_items = self.price_items(quote.company_id, revision.items, quote.order_type)
        new_terms = self._merge_terms(quote.terms, revision.terms or {})

        now = self.clock()
        quote.versions.append(QuoteVersion(
            version_number=quote.current_version,
            created_at=now,
            created_by=actor_id,
            changes=changes,
            pricing=copy.deepcopy(quote.pricing),
            items=copy.deepcopy(quote.items),
        ))

        if new_items is not None:
            quote.items = new_items
            quote.pricing = self.calculate_quote_pricing(new_items)
        quote.terms = new_terms
        if revision.notes is not None:
            quote.terms.notes = revision.notes

        quote.current_version += 1
        if quote.status in ('sent', 'viewed'):
            quote.status = 'revised'
        quote.updated_at = now

        self._append_event(
            quote, 'revised', actor_id,
            f"Revision {quote.current_version}: {', '.join(changes)}",
        )
        self.repository.save(quote)
        logger.info("Quote {} revised to version {} by {}", quote.number, quote.current_version, actor_id)
        return quote

    def _merge_terms(self, terms: QuoteTerms, changes: dict) -> QuoteTerms:
        unknown = [k for k in changes if k not in EDITABLE_TERMS]
        if unknown:
            raise ValidationError(f"Unknown terms fields: {', '.join(sorted(unknown))}")

        merged = copy.deepcopy(terms)
        for key, value in changes.items():
            if key in ('valid_until', 'delivery_date'):
                value = parse_datetime(value)
                if key == 'valid_until' and value is None:
                    raise ValidationError("valid_until cannot be cleared")
            elif key == 'payment_terms' and value not in PAYMENT_TERMS:
                raise ValidationError(f"Unknown payment terms '{value}'")
            elif key == 'shipping_terms' and value not in SHIPPING_TERMS:
                raise ValidationError(f"Unknown shipping terms '{value}'")
            setattr(merged, key, value)
        return merged

    def convert_quote_to_order(self, quote_id: str, actor_id: str = 'system') -> Order:
        """
        Turn an accepted quote into an order.

        The order copies the quote's items and pricing. The order is stored
        before the quote is marked converted; both live in process memory.
        """
        quote = self.get_quote(quote_id)
        if quote.status != 'accepted':
            raise InvalidTransitionError(
                quote.status, 'converted', "only accepted quotes can be converted to orders"
            )

        now = self.clock()
        order = Order(
            id=f"order-{uuid4().hex[:12]}",
            number=self.orders.next_order_number(now.year),
            quote_id=quote.id,
            company_id=quote.company_id,
            items=copy.deepcopy(quote.items),
            pricing=copy.deepcopy(quote.pricing),
            created_by=actor_id,
            created_at=now,
            order_type=quote.order_type,
            reference_number=quote.reference_number,
        )
        self.orders.add(order)

        quote.converted_order_id = order.id
        quote.status = 'converted'
        quote.updated_at = now
        self._append_event(
            quote, 'converted', actor_id,
            f"Converted to order {order.number}",
            metadata={'order_id': order.id, 'order_number': order.number},
        )
        self.repository.save(quote)
        logger.info("Quote {} converted to order {}", quote.number, order.number)
        return order

    def expire_quotes(self) -> int:
        """
        Expire sent/viewed quotes past their valid-until time.

        A single synchronous pass; running it again right away expires nothing.
        """
        now = self.clock()
        due = [
            q for q in self.repository.all()
            if q.status in EXPIRABLE_STATUSES and q.terms.valid_until < now
        ]
        for quote in due:
            self.update_quote_status(quote.id, 'expired', 'system', 'Quote expired')

        logger.info("Expiry sweep: {} quotes expired", len(due))
        return len(due)

    def check_expiring_quotes(self, within_days: Optional[int] = None) -> list[Quote]:
        """Sent/viewed quotes expiring within the lookahead window, soonest first."""
        now = self.clock()
        days = self.settings.expiring_lookahead_days if within_days is None else within_days
        horizon = now + timedelta(days=days)
        expiring = [
            q for q in self.repository.all()
            if q.status in EXPIRABLE_STATUSES and now < q.terms.valid_until <= horizon
        ]
        return sorted(expiring, key=lambda q: q.terms.valid_until)

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def get_templates(self) -> list[QuoteTemplate]:
        return self.repository.list_templates()

    def get_template(self, template_id: str) -> QuoteTemplate:
        template = self.repository.get_template(template_id)
        if template is None:
            raise NotFoundError(f"Template {template_id} not found")
        return template

    def save_template(self, name: str, description: str, quote_id: str, user_id: str) -> QuoteTemplate:
        """Save a quote's items and terms as a reusable template."""
        if not name:
            raise ValidationError("Template name is required")
        quote = self.get_quote(quote_id)
        now = self.clock()

        template = QuoteTemplate(
            id=f"template-{uuid4().hex[:12]}",
            name=name,
            description=description or None,
            items=[QuoteTemplateItem(product_id=i.product_id, quantity=i.quantity) for i in quote.items],
            terms={
                'payment_terms': quote.terms.payment_terms,
                'shipping_terms': quote.terms.shipping_terms,
                'notes': quote.terms.notes,
            },
            tags=list(quote.tags),
            created_by=user_id,
            created_at=now,
            updated_at=now,
        )
        self.repository.add_template(template)
        logger.info("Template '{}' saved from quote {}", name, quote.number)
        return template

    def create_quote_from_template(self, template_id: str, company_id: str, user_id: str,
                                   quote_type: str = 'proactive') -> Quote:
        template = self.get_template(template_id)
        quote = self.create_quote(
            QuoteRequest(
                company_id=company_id,
                type=quote_type,
                items=[QuoteRequestItem(product_id=i.product_id, quantity=i.quantity) for i in template.items],
                notes=template.terms.get('notes'),
                tags=list(template.tags),
            ),
            user_id,
        )
        for key in ('payment_terms', 'shipping_terms'):
            if template.terms.get(key):
                setattr(quote.terms, key, template.terms[key])
        template.usage_count += 1
        template.updated_at = self.clock()
        return quote
