"""
Pricing Engine - Customer-specific unit pricing with an itemised breakdown.

Layers, in application order:
1. Base: MSRP is the list price
2. Fixed price: a price-list rule with a fixed price wins outright and
   bypasses every percentage discount
3. Tier or volume: the company tier discount, or the highest qualifying
   volume break, chosen by the configured precedence policy
4. Clearance: extra discount for closeout orders, capped when configured
5. Global: order-value break applied on top of the per-unit price

Pure functions of their inputs; price lists are loaded elsewhere.
"""
from datetime import datetime
from typing import Optional

from ..config.settings import get_settings, Settings, DEFAULT_TIERS, DEFAULT_ORDER_TYPES
from ..exceptions import ValidationError
from .models import (
    BulkPricingRequest,
    BulkPricingResponse,
    GlobalVolumeBreak,
    PriceCalculation,
    PriceCalculationInput,
    PriceList,
    VolumeBreak,
)


TIER_ALIASES = {'bronze': 'tier-1', 'silver': 'tier-2', 'gold': 'tier-3'}


def normalize_tier(tier: Optional[str]) -> Optional[str]:
    """Map "Bronze"/"silver"/"GOLD" to tier-1/2/3; other values pass through."""
    if tier is None:
        return None
    key = str(tier).strip().lower()
    return TIER_ALIASES.get(key, key)


def _round(amount: float) -> float:
    return round(amount + 0.0, 2)


def apply_tier_discount(price: float, tier: str, tiers: dict = None) -> float:
    """Price after the tier discount. Unknown tiers leave the price unchanged."""
    config = (tiers or DEFAULT_TIERS).get(normalize_tier(tier))
    if not config:
        return price
    return _round(price * (1 - config['discount']))


def apply_volume_discount(price: float, quantity: int, volume_breaks: list[VolumeBreak]) -> float:
    """Price after the highest volume break the quantity qualifies for."""
    for vb in sorted(volume_breaks, key=lambda b: b.min_qty, reverse=True):
        if vb.matches(quantity):
            return _round(price * (1 - vb.discount))
    return price


def apply_global_discount(price: float, discount: float) -> float:
    """Price after a fractional order-level discount."""
    return _round(price * (1 - discount))


def apply_clearance_discount(price: float, discount_percent: float) -> float:
    """Price after a clearance discount given in percent."""
    return _round(price * (1 - discount_percent / 100.0))


def find_global_break(breaks: list[GlobalVolumeBreak], order_total: float) -> Optional[GlobalVolumeBreak]:
    """Highest order-value threshold the total qualifies for."""
    for gb in sorted(breaks, key=lambda b: b.min_order_value, reverse=True):
        if order_total >= gb.min_order_value:
            return gb
    return None


def calculate_prebook_deposit(total_price: float, deposit_percent: float = 30.0) -> dict:
    """Deposit due now and the balance due on shipment for a prebook order."""
    deposit = _round(total_price * deposit_percent / 100.0)
    return {
        'deposit_amount': deposit,
        'remaining_balance': _round(total_price - deposit),
    }


def validate_minimum_order_value(order_total: float, order_type: str, tier: str = None,
                                 settings: Optional[Settings] = None) -> dict:
    """
    Check an order total against the order-type and tier minimums.

    The effective minimum is the larger of the two.
    """
    order_types = settings.order_types if settings else DEFAULT_ORDER_TYPES
    tiers = settings.tiers if settings else DEFAULT_TIERS

    minimum = order_types.get(order_type, {}).get('min_order_value', 0.0)
    tier_config = tiers.get(normalize_tier(tier)) if tier else None
    if tier_config and tier_config['min_order_value'] > minimum:
        minimum = tier_config['min_order_value']

    is_valid = order_total >= minimum
    return {
        'is_valid': is_valid,
        'minimum_required': None if is_valid else minimum,
        'shortfall': None if is_valid else _round(minimum - order_total),
    }


class PricingEngine:
    """
    Core pricing engine.

    Precedence between the tier discount and a matching volume break is a
    setting (`discount_precedence`):
    - best_for_customer (default): the larger discount applies, so the unit
      price never rises as quantity grows
    - volume_overrides_tier: a matching break replaces the tier discount even
      when the tier discount is larger
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def get_tier_config(self, tier: Optional[str]) -> Optional[dict]:
        if not tier:
            return None
        return self.settings.tiers.get(normalize_tier(tier))

    def calculate(self, request: PriceCalculationInput, price_list: Optional[PriceList] = None,
                  at: Optional[datetime] = None) -> PriceCalculation:
        """
        Calculate the unit and extended price for one product.

        Args:
            request: Product, MSRP, quantity and order context
            price_list: The company's resolved price list, if any
            at: Time used to check rule effective windows (defaults to now)

        Returns:
            PriceCalculation with breakdown and warnings
        """
        if request.msrp is None or request.msrp < 0:
            raise ValidationError(f"Invalid MSRP for product {request.product_id}: {request.msrp}")

        msrp = float(request.msrp)
        quantity = int(request.quantity or 0)

        calc = PriceCalculation(
            product_id=str(request.product_id),
            quantity=quantity,
            msrp=msrp,
            list_price=msrp,
            price_list_id=price_list.id if price_list else None,
        )
        if quantity < 1:
            calc.add_warning(f"Quantity {request.quantity} is not positive, priced as 1")
            calc.quantity = quantity = 1

        calc.add_breakdown('base', "List price (MSRP)", _round(msrp))

        # Tier: the price list's base tier takes precedence over the company's own tier
        tier = None
        if price_list and price_list.base_tier:
            tier = price_list.base_tier
        elif request.pricing_tier:
            tier = request.pricing_tier
        tier_config = self.get_tier_config(tier)
        if tier and not tier_config:
            calc.add_warning(f"Unknown pricing tier '{tier}', no tier discount applied")
        tier_discount = tier_config['discount'] if tier_config else 0.0

        rule = None
        if price_list:
            rule = price_list.get_rule(calc.product_id, at=at)

        if rule and rule.fixed_price is not None:
            price = float(rule.fixed_price)
            calc.fixed_price_override = True
            calc.applied_rules.append(f"{price_list.id}:fixed:{calc.product_id}")
            calc.add_breakdown(
                'override', "Fixed contract price", _round(price),
                rule_id=f"{price_list.id}:{calc.product_id}",
            )
        else:
            price = self._apply_tier_or_volume(calc, msrp, tier, tier_config, tier_discount, rule, price_list)
            if price_list:
                price = self._apply_clearance(calc, msrp, price, request.order_type, price_list)
                price = self._apply_global(calc, price, request.order_total, price_list)

        floor = min(self.settings.min_unit_price, msrp)
        if price < floor:
            calc.add_warning(f"Unit price ${price:.2f} below minimum, raised to ${floor:.2f}")
            price = floor
            calc.add_breakdown('override', "Minimum unit price", _round(price))

        calc.unit_price = _round(price)
        calc.final_price = calc.unit_price
        calc.total_price = _round(calc.unit_price * quantity)
        calc.savings = _round(msrp - calc.unit_price)
        calc.savings_percent = _round(calc.savings / msrp * 100) if msrp > 0 else 0.0
        return calc

    def _apply_tier_or_volume(self, calc: PriceCalculation, msrp: float, tier: Optional[str],
                              tier_config: Optional[dict], tier_discount: float, rule,
                              price_list: Optional[PriceList]) -> float:
        volume_break = rule.find_volume_break(calc.quantity) if rule else None

        use_volume = False
        if volume_break is not None:
            if self.settings.discount_precedence == 'best_for_customer':
                use_volume = volume_break.discount > tier_discount
            else:
                use_volume = True

        if use_volume:
            price = msrp * (1 - volume_break.discount)
            calc.volume_discount = volume_break.discount
            rule_id = f"{price_list.id}:volume:{calc.product_id}:{volume_break.min_qty}"
            calc.applied_rules.append(rule_id)
            calc.add_breakdown(
                'volume', f"Volume break ({volume_break.min_qty}+ units)", _round(price),
                discount=volume_break.discount, rule_id=rule_id,
            )
            return price

        if tier_discount > 0:
            price = msrp * (1 - tier_discount)
            calc.tier_discount = tier_discount
            calc.applied_rules.append(f"tier:{normalize_tier(tier)}")
            calc.add_breakdown(
                'tier', f"{tier_config['label']} tier discount", _round(price),
                discount=tier_discount,
            )
            return price

        return msrp

    def _apply_clearance(self, calc: PriceCalculation, msrp: float, price: float,
                         order_type: Optional[str], price_list: PriceList) -> float:
        clearance = price_list.clearance_rules
        if not clearance:
            return price
        if clearance.apply_to_closeout_only and order_type != 'closeout':
            return price
        if calc.quantity < clearance.min_order_qty:
            calc.add_warning(
                f"Clearance discount requires at least {clearance.min_order_qty} units"
            )
            return price

        new_price = price * (1 - clearance.additional_discount)
        if clearance.max_discount_percent is not None:
            cap_price = msrp * (1 - clearance.max_discount_percent / 100.0)
            # Never raise a price that is already past the cap
            new_price = max(new_price, min(price, cap_price))

        if new_price >= price:
            return price

        calc.clearance_discount = 1 - new_price / price if price else 0.0
        rule_id = f"{price_list.id}:clearance"
        calc.applied_rules.append(rule_id)
        calc.add_breakdown(
            'clearance', "Closeout clearance discount", _round(new_price),
            discount=round(calc.clearance_discount, 4), rule_id=rule_id,
        )
        return new_price

    def _apply_global(self, calc: PriceCalculation, price: float, order_total: Optional[float],
                      price_list: PriceList) -> float:
        if not price_list.global_volume_breaks or order_total is None:
            return price

        global_break = find_global_break(price_list.global_volume_breaks, order_total)
        if global_break is None:
            return price

        new_price = price * (1 - global_break.additional_discount)
        calc.global_discount = global_break.additional_discount
        rule_id = f"{price_list.id}:global:{global_break.min_order_value:g}"
        calc.applied_rules.append(rule_id)
        calc.add_breakdown(
            'global', f"Order value over ${global_break.min_order_value:,.2f}", _round(new_price),
            discount=global_break.additional_discount, rule_id=rule_id,
        )
        return new_price

    def calculate_bulk(self, request: BulkPricingRequest, msrps: dict[str, float],
                       price_list: Optional[PriceList] = None,
                       at: Optional[datetime] = None) -> BulkPricingResponse:
        """
        Price several lines for one company.

        The order total used for global breaks is the sum of the line totals
        before any global discount.
        """
        missing = [line.product_id for line in request.items if line.product_id not in msrps]
        if missing:
            raise ValidationError(f"No MSRP for products: {', '.join(missing)}")

        def price_lines(order_total: Optional[float]) -> list[PriceCalculation]:
            return [
                self.calculate(
                    PriceCalculationInput(
                        product_id=line.product_id,
                        msrp=msrps[line.product_id],
                        quantity=line.quantity,
                        company_id=request.company_id,
                        order_type=request.order_type,
                        order_total=order_total,
                        pricing_tier=request.pricing_tier,
                    ),
                    price_list,
                    at=at,
                )
                for line in request.items
            ]

        calculations = price_lines(None)
        if price_list and price_list.global_volume_breaks:
            pre_global_total = sum(c.total_price for c in calculations)
            calculations = price_lines(pre_global_total)

        subtotal = _round(sum(c.msrp * c.quantity for c in calculations))
        order_total = _round(sum(c.total_price for c in calculations))
        total_discount = _round(subtotal - order_total)

        return BulkPricingResponse(
            company_id=request.company_id,
            calculations=calculations,
            order_subtotal=subtotal,
            total_discount=total_discount,
            order_total=order_total,
            average_discount=_round(total_discount / subtotal * 100) if subtotal > 0 else 0.0,
            price_list_id=price_list.id if price_list else None,
        )
