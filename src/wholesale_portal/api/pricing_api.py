"""
Pricing API - FastAPI router for price calculation.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, Field

from ..catalog.models import User
from ..engine.models import BulkPricingLine, BulkPricingRequest, PriceCalculationInput, PriceList
from ..engine.pricing_engine import calculate_prebook_deposit, validate_minimum_order_value
from ..exceptions import ForbiddenError, ValidationError
from .dependencies import get_current_user
from .state import get_state, PortalState

router = APIRouter(prefix="/api/pricing", tags=["pricing"])


class CalculateRequest(BaseModel):
    """Request model for a single-product calculation."""
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias='productId')
    msrp: float
    quantity: int
    order_type: Optional[str] = Field(None, alias='orderType')
    order_total: Optional[float] = Field(None, alias='orderTotal')
    company_id: Optional[str] = Field(None, alias='companyId')


class BulkLine(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias='productId')
    quantity: int


class BulkRequest(BaseModel):
    """Request model for pricing several catalog products at once."""
    model_config = ConfigDict(populate_by_name=True)

    items: list[BulkLine]
    order_type: Optional[str] = Field(None, alias='orderType')
    company_id: Optional[str] = Field(None, alias='companyId')


def _pricing_company(user: User, requested: Optional[str]) -> Optional[str]:
    if user.role == 'retailer':
        if requested and requested != user.company_id:
            raise ForbiddenError("Retailers can only price for their own company")
        return user.company_id
    return requested or user.company_id


def _company_tier(state: PortalState, company_id: Optional[str]) -> str:
    company = state.catalog.get_company(company_id) if company_id else None
    if company and company.pricing_tier:
        return company.pricing_tier
    return state.settings.default_pricing_tier


def _check_price_inputs(product_id: Optional[str], msrp: Optional[float], quantity: Optional[int]):
    """Reject what the engine would otherwise clamp or price at zero."""
    if not product_id or msrp is None or quantity is None:
        raise ValidationError("productId, msrp and quantity are required")
    if msrp <= 0:
        raise ValidationError("msrp must be greater than 0")
    if quantity < 1:
        raise ValidationError("quantity must be at least 1")


def _price_list_summary(price_list: Optional[PriceList]) -> Optional[dict]:
    if price_list is None:
        return None
    return {'id': price_list.id, 'name': price_list.name, 'base_tier': price_list.base_tier}


@router.post("/calculate")
async def calculate_price(body: CalculateRequest,
                          user: User = Depends(get_current_user),
                          state: PortalState = Depends(get_state)):
    """Price one product for the caller's company."""
    _check_price_inputs(body.product_id, body.msrp, body.quantity)
    company_id = _pricing_company(user, body.company_id)
    now = state.clock()
    price_list = state.price_lists.resolve_for_company(company_id, at=now) if company_id else None
    tier = _company_tier(state, company_id)

    calculation = state.engine.calculate(
        PriceCalculationInput(
            product_id=body.product_id,
            msrp=body.msrp,
            quantity=body.quantity,
            company_id=company_id,
            order_type=body.order_type,
            order_total=body.order_total,
            pricing_tier=tier,
        ),
        price_list,
        at=now,
    )
    return {
        'calculation': jsonable_encoder(calculation),
        'price_list': _price_list_summary(price_list),
        'user_context': {'company_id': company_id, 'pricing_tier': tier, 'role': user.role},
    }


@router.get("/calculate")
async def get_price_breakdown(product_id: Optional[str] = Query(None, alias='productId'),
                              msrp: Optional[float] = Query(None),
                              quantity: Optional[int] = Query(None),
                              user: User = Depends(get_current_user),
                              state: PortalState = Depends(get_state)):
    """Price breakdown text plus the product's volume breaks."""
    _check_price_inputs(product_id, msrp, quantity)

    company_id = _pricing_company(user, None)
    now = state.clock()
    price_list = state.price_lists.resolve_for_company(company_id, at=now) if company_id else None
    calculation = state.engine.calculate(
        PriceCalculationInput(
            product_id=product_id,
            msrp=msrp,
            quantity=quantity,
            company_id=company_id,
            pricing_tier=_company_tier(state, company_id),
        ),
        price_list,
        at=now,
    )

    rule = price_list.get_rule(product_id, at=now) if price_list else None
    return {
        'breakdown': calculation.get_breakdown_text(),
        'calculation': jsonable_encoder(calculation),
        'volume_breaks': jsonable_encoder(rule.volume_breaks if rule else []),
        'price_list': _price_list_summary(price_list),
    }


@router.post("/bulk")
async def calculate_bulk(body: BulkRequest,
                         user: User = Depends(get_current_user),
                         state: PortalState = Depends(get_state)):
    """Price catalog products for a company, with order minimum checks."""
    if not body.items:
        raise ValidationError("At least one item is required")

    company_id = _pricing_company(user, body.company_id)
    msrps = {}
    for line in body.items:
        if line.quantity < 1:
            raise ValidationError(f"Quantity for product {line.product_id} must be at least 1")
        if not state.catalog.has_product(line.product_id):
            raise ValidationError(f"Product {line.product_id} not found")
        msrps[line.product_id] = state.catalog.get_product(line.product_id).msrp

    now = state.clock()
    price_list = state.price_lists.resolve_for_company(company_id, at=now) if company_id else None
    tier = _company_tier(state, company_id)
    result = state.engine.calculate_bulk(
        BulkPricingRequest(
            company_id=company_id,
            items=[BulkPricingLine(product_id=l.product_id, quantity=l.quantity) for l in body.items],
            order_type=body.order_type,
            pricing_tier=tier,
        ),
        msrps,
        price_list=price_list,
        at=now,
    )

    response = jsonable_encoder(result)
    if body.order_type:
        response['minimum_order'] = validate_minimum_order_value(
            result.order_total, body.order_type, tier, settings=state.settings,
        )
        deposit_percent = state.settings.order_types.get(body.order_type, {}).get('deposit_percent')
        if deposit_percent:
            response['deposit'] = calculate_prebook_deposit(result.order_total, deposit_percent)
    return response
