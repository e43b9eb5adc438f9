"""
Data models for the pricing engine.

Uses dataclasses for structured, type-safe data representation.
Price list records are read from camelCase JSON via the from_dict constructors.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..clock import parse_datetime


ORDER_TYPES = ('at-once', 'prebook', 'closeout')
BREAKDOWN_TYPES = ('base', 'tier', 'volume', 'global', 'clearance', 'override')


def _window_contains(start: Optional[datetime], end: Optional[datetime], at: datetime) -> bool:
    if start and at < start:
        return False
    if end and at > end:
        return False
    return True


@dataclass
class VolumeBreak:
    """Quantity threshold at which a steeper discount applies."""
    min_qty: int
    discount: float  # fraction, 0.40 = 40% off MSRP
    max_qty: Optional[int] = None

    def matches(self, quantity: int) -> bool:
        if quantity < self.min_qty:
            return False
        if self.max_qty is not None and quantity > self.max_qty:
            return False
        return True

    @classmethod
    def from_dict(cls, data: dict) -> 'VolumeBreak':
        return cls(
            min_qty=int(data['minQty']),
            discount=float(data['discount']),
            max_qty=int(data['maxQty']) if data.get('maxQty') is not None else None,
        )


@dataclass
class PriceRule:
    """Product-specific pricing rule within a price list."""
    product_id: str
    volume_breaks: list[VolumeBreak] = field(default_factory=list)
    fixed_price: Optional[float] = None
    notes: Optional[str] = None
    effective_from: Optional[datetime] = None
    effective_to: Optional[datetime] = None

    def is_effective(self, at: datetime) -> bool:
        return _window_contains(self.effective_from, self.effective_to, at)

    def find_volume_break(self, quantity: int) -> Optional[VolumeBreak]:
        """Highest qualifying threshold wins; breaks are not cumulative."""
        for vb in sorted(self.volume_breaks, key=lambda b: b.min_qty, reverse=True):
            if vb.matches(quantity):
                return vb
        return None

    @classmethod
    def from_dict(cls, data: dict) -> 'PriceRule':
        fixed = data.get('fixedPrice')
        return cls(
            product_id=str(data['productId']),
            volume_breaks=[VolumeBreak.from_dict(vb) for vb in data.get('volumeBreaks') or []],
            fixed_price=float(fixed) if fixed is not None else None,
            notes=data.get('notes'),
            effective_from=parse_datetime(data.get('effectiveFrom')),
            effective_to=parse_datetime(data.get('effectiveTo')),
        )


@dataclass
class GlobalVolumeBreak:
    """Order-value threshold that adds a discount to every line."""
    min_order_value: float
    additional_discount: float

    @classmethod
    def from_dict(cls, data: dict) -> 'GlobalVolumeBreak':
        return cls(
            min_order_value=float(data['minOrderValue']),
            additional_discount=float(data['additionalDiscount']),
        )


@dataclass
class ClearanceRules:
    """Extra discounting for closeout orders."""
    additional_discount: float
    min_order_qty: int = 1
    apply_to_closeout_only: bool = True
    max_discount_percent: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'ClearanceRules':
        cap = data.get('maxDiscountPercent')
        return cls(
            additional_discount=float(data['additionalDiscount']),
            min_order_qty=int(data.get('minOrderQty') or 1),
            apply_to_closeout_only=bool(data.get('applyToCloseoutOnly', True)),
            max_discount_percent=float(cap) if cap is not None else None,
        )


@dataclass
class PriceList:
    """A named bundle of per-product pricing rules."""
    id: str
    name: str
    company_id: Optional[str] = None
    base_tier: Optional[str] = None
    rules: list[PriceRule] = field(default_factory=list)
    global_volume_breaks: list[GlobalVolumeBreak] = field(default_factory=list)
    clearance_rules: Optional[ClearanceRules] = None
    description: Optional[str] = None
    currency: str = 'USD'
    effective_from: Optional[datetime] = None
    effective_to: Optional[datetime] = None

    def is_effective(self, at: datetime) -> bool:
        return _window_contains(self.effective_from, self.effective_to, at)

    def get_rule(self, product_id: str, at: Optional[datetime] = None) -> Optional[PriceRule]:
        """First rule for the product that is effective at `at`."""
        for rule in self.rules:
            if rule.product_id != str(product_id):
                continue
            if at is not None and not rule.is_effective(at):
                continue
            return rule
        return None

    @classmethod
    def from_dict(cls, data: dict) -> 'PriceList':
        clearance = data.get('clearanceRules')
        return cls(
            id=str(data['id']),
            name=data.get('name', data['id']),
            company_id=data.get('companyId'),
            base_tier=data.get('baseTier'),
            rules=[PriceRule.from_dict(r) for r in data.get('rules') or []],
            global_volume_breaks=[
                GlobalVolumeBreak.from_dict(g) for g in data.get('globalVolumeBreaks') or []
            ],
            clearance_rules=ClearanceRules.from_dict(clearance) if clearance else None,
            description=data.get('description'),
            currency=data.get('currency') or 'USD',
            effective_from=parse_datetime(data.get('effectiveFrom')),
            effective_to=parse_datetime(data.get('effectiveTo')),
        )


@dataclass
class PriceListAssignment:
    """Assignment of a price list to a company. Lower priority number wins."""
    company_id: str
    price_list_id: str
    priority: int = 1
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'PriceListAssignment':
        return cls(
            company_id=str(data['companyId']),
            price_list_id=str(data['priceListId']),
            priority=int(data.get('priority', 1)),
            assigned_by=data.get('assignedBy'),
            assigned_at=parse_datetime(data.get('assignedAt')),
            notes=data.get('notes'),
        )


@dataclass
class PriceCalculationInput:
    """A single-product pricing request."""
    product_id: str
    msrp: float
    quantity: int
    company_id: str
    order_type: Optional[str] = None  # "at-once", "prebook", "closeout"
    order_total: Optional[float] = None
    pricing_tier: Optional[str] = None  # company tier when no price list sets one


@dataclass
class PriceBreakdownItem:
    """One discount layer. `amount` is the running unit price after the layer."""
    type: str
    description: str
    amount: float
    discount: Optional[float] = None
    rule_id: Optional[str] = None


@dataclass
class PriceCalculation:
    """Complete result of a pricing calculation."""
    product_id: str
    quantity: int
    msrp: float
    list_price: float
    tier_discount: float = 0.0
    volume_discount: float = 0.0
    global_discount: float = 0.0
    clearance_discount: float = 0.0
    fixed_price_override: bool = False
    final_price: float = 0.0
    unit_price: float = 0.0
    total_price: float = 0.0
    savings: float = 0.0
    savings_percent: float = 0.0
    applied_rules: list[str] = field(default_factory=list)
    price_list_id: Optional[str] = None
    breakdown: list[PriceBreakdownItem] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_breakdown(self, type: str, description: str, amount: float,
                      discount: float = None, rule_id: str = None):
        """Add a layer to the breakdown for this calculation."""
        self.breakdown.append(PriceBreakdownItem(
            type=type, description=description, amount=amount,
            discount=discount, rule_id=rule_id,
        ))

    def add_warning(self, warning: str):
        self.warnings.append(warning)

    @property
    def applied_discounts(self) -> list[str]:
        """Breakdown layer types other than the base price, in order."""
        return [item.type for item in self.breakdown if item.type != 'base']

    def get_breakdown_text(self) -> str:
        """Get human-readable breakdown as formatted text."""
        lines = []
        for item in self.breakdown:
            if item.discount:
                lines.append(f"→ {item.description} ({item.discount * 100:.0f}% off) = ${item.amount:.2f}")
            else:
                lines.append(f"→ {item.description} = ${item.amount:.2f}")
        return "\n".join(lines)


@dataclass
class BulkPricingLine:
    product_id: str
    quantity: int


@dataclass
class BulkPricingRequest:
    """Price several products for one company in a single call."""
    company_id: str
    items: list[BulkPricingLine]
    order_type: Optional[str] = None
    pricing_tier: Optional[str] = None


@dataclass
class BulkPricingResponse:
    company_id: str
    calculations: list[PriceCalculation]
    order_subtotal: float
    total_discount: float
    order_total: float
    average_discount: float  # percent
    price_list_id: Optional[str] = None
