"""
Products API - Catalog listing and admin overrides.
"""
from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, Field

from ..catalog.models import User
from ..catalog.overrides import TagOperation, VariantOperation
from ..engine.models import PriceCalculationInput
from ..exceptions import ValidationError
from .dependencies import get_current_user, require_admin
from .state import get_state, PortalState

router = APIRouter(prefix="/api/products", tags=["products"])

# Request keys that differ from the product field names
FIELD_ALIASES = {'orderTypes': 'order_types'}


class TagOperationIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias='productId')
    add: list[str] = []
    remove: list[str] = []
    replace: list[str] = []


class TagBulkRequest(BaseModel):
    operations: list[TagOperationIn]


class ProductBulkEdit(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_ids: list[str] = Field(alias='productIds')
    updates: dict[str, Any]


class VariantEdit(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias='productId')
    updates: dict[str, dict[str, Any]] = {}
    add: list[dict[str, Any]] = []
    remove: list[str] = []


def _require_known(state: PortalState, product_ids: list[str]):
    unknown = [pid for pid in product_ids if not state.catalog.has_product(pid)]
    if unknown:
        raise ValidationError(f"Unknown products: {', '.join(unknown)}")


@router.get("")
async def list_products(search: Optional[str] = None,
                        category: Optional[str] = None,
                        tag: Optional[str] = None,
                        user: User = Depends(get_current_user),
                        state: PortalState = Depends(get_state)):
    """List products; for users with a company, include their unit price."""
    products = state.catalog.list_products(search=search, category=category, tag=tag)
    result = jsonable_encoder(products)

    if user.company_id:
        now = state.clock()
        price_list = state.price_lists.resolve_for_company(user.company_id, at=now)
        company = state.catalog.get_company(user.company_id)
        tier = company.pricing_tier if company and company.pricing_tier else state.settings.default_pricing_tier
        for product, data in zip(products, result):
            calc = state.engine.calculate(
                PriceCalculationInput(
                    product_id=product.id,
                    msrp=product.msrp,
                    quantity=1,
                    company_id=user.company_id,
                    pricing_tier=tier,
                ),
                price_list,
                at=now,
            )
            data['your_price'] = calc.unit_price
            data['rule_applied'] = bool(calc.applied_rules) and price_list is not None

    return {'products': result, 'total': len(result)}


@router.get("/{product_id}")
async def get_product(product_id: str,
                      user: User = Depends(get_current_user),
                      state: PortalState = Depends(get_state)):
    return {'product': jsonable_encoder(state.catalog.get_product(product_id))}


@router.post("/tags")
async def bulk_update_tags(body: TagBulkRequest,
                           user: User = Depends(require_admin),
                           state: PortalState = Depends(get_state)):
    """Add, remove or replace tags on many products."""
    _require_known(state, [op.product_id for op in body.operations])
    return state.catalog.tag_overrides.bulk_update([
        TagOperation(product_id=op.product_id, add=op.add, remove=op.remove, replace=op.replace)
        for op in body.operations
    ])


@router.post("/bulk")
async def bulk_edit_products(body: ProductBulkEdit,
                             user: User = Depends(require_admin),
                             state: PortalState = Depends(get_state)):
    """Apply the same field changes to many products."""
    if not body.product_ids:
        raise ValidationError("productIds is required")
    _require_known(state, body.product_ids)
    updates = {FIELD_ALIASES.get(k, k): v for k, v in body.updates.items()}
    return state.catalog.product_overrides.bulk_edit(body.product_ids, updates)


@router.post("/variants")
async def update_variants(body: VariantEdit,
                          user: User = Depends(require_admin),
                          state: PortalState = Depends(get_state)):
    """Update, add or remove a product's variants."""
    _require_known(state, [body.product_id])
    return state.catalog.product_overrides.update_variants(VariantOperation(
        product_id=body.product_id,
        updates=body.updates,
        add=body.add,
        remove=body.remove,
    ))
