"""
Quotes API - FastAPI router for the quote lifecycle.

Role rules enforced here (the service itself does not check roles):
- Retailers see and act on their own company's quotes only; opening a sent
  quote marks it viewed; PATCH is limited to accept / reject /
  request-revision
- Sales reps see and change only quotes assigned to or created by them,
  and never convert
- The printable document follows the same view rules as GET
- Only drafts can be deleted (cancelled), by their creator or an admin
"""
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from ..catalog.models import User
from ..clock import parse_datetime
from ..exceptions import AuthenticationError, ForbiddenError, ValidationError
from ..quotes.lifecycle import (
    RETAILER_ACTIONS,
    can_convert,
    can_transition,
    can_view,
    resolve_action,
)
from ..quotes.document import document_filename, render_quote_document
from ..quotes.models import QuoteFilter, QuoteRequest, QuoteRequestItem, QuoteRevision
from .dependencies import get_current_user, require_admin, require_staff, resolve_company_id
from .state import get_state, PortalState

router = APIRouter(prefix="/api/quotes", tags=["quotes"])


# Pydantic models for API

class QuoteItemIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias='productId')
    quantity: int
    variant: Optional[dict[str, str]] = None
    notes: Optional[str] = None


class QuoteCreate(BaseModel):
    """Request model for creating a quote."""
    model_config = ConfigDict(populate_by_name=True)

    company_id: Optional[str] = Field(None, alias='companyId')
    items: list[QuoteItemIn]
    type: Optional[str] = None
    order_type: Optional[str] = Field(None, alias='orderType')
    notes: Optional[str] = None
    requested_delivery_date: Optional[str] = Field(None, alias='requestedDeliveryDate')
    reference_number: Optional[str] = Field(None, alias='referenceNumber')
    tags: list[str] = []
    send_immediately: bool = Field(False, alias='sendImmediately')


class RevisionIn(BaseModel):
    items: Optional[list[QuoteItemIn]] = None
    terms: Optional[dict[str, Any]] = None
    notes: Optional[str] = None


class QuoteUpdate(BaseModel):
    """PATCH body: exactly one of status, action or revision."""
    status: Optional[str] = None
    action: Optional[str] = None
    reason: Optional[str] = None
    details: Optional[str] = None
    revision: Optional[RevisionIn] = None


class TemplateCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    description: Optional[str] = None
    quote_id: Optional[str] = Field(None, alias='quoteId')


class TemplateUse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    company_id: str = Field(alias='companyId')
    type: str = 'proactive'


def _request_items(items: list[QuoteItemIn]) -> list[QuoteRequestItem]:
    return [
        QuoteRequestItem(product_id=i.product_id, quantity=i.quantity, variant=i.variant, notes=i.notes)
        for i in items
    ]


def _role_filter(user: User, quote_filter: QuoteFilter) -> QuoteFilter:
    if user.role == 'retailer':
        quote_filter.company_id = user.company_id
    elif user.role == 'sales_rep':
        quote_filter.assigned_to = user.id
    return quote_filter


def _visible_quote(state: PortalState, quote_id: str, user: User):
    quote = state.quote_service.get_quote(quote_id)
    if not can_view(user, quote):
        raise ForbiddenError("You do not have access to this quote")
    return quote


# Endpoints

@router.get("")
async def list_quotes(status: Optional[str] = None,
                      type: Optional[str] = None,
                      company_id: Optional[str] = Query(None, alias='companyId'),
                      search: Optional[str] = None,
                      date_from: Optional[str] = Query(None, alias='dateFrom'),
                      date_to: Optional[str] = Query(None, alias='dateTo'),
                      min_value: Optional[float] = Query(None, alias='minValue'),
                      max_value: Optional[float] = Query(None, alias='maxValue'),
                      user: User = Depends(get_current_user),
                      state: PortalState = Depends(get_state)):
    """List quotes visible to the caller, newest first, with a summary."""
    quote_filter = _role_filter(user, QuoteFilter(
        status=status.split(',') if status else None,
        type=type.split(',') if type else None,
        company_id=company_id,
        search=search,
        date_from=parse_datetime(date_from),
        date_to=parse_datetime(date_to),
        min_value=min_value,
        max_value=max_value,
    ))
    quotes = state.quote_service.get_quotes(quote_filter)
    return {
        'quotes': jsonable_encoder(quotes),
        'summary': jsonable_encoder(state.quote_service.get_quote_summary(quote_filter)),
    }


@router.post("", status_code=201)
async def create_quote(body: QuoteCreate,
                       user: User = Depends(get_current_user),
                       state: PortalState = Depends(get_state)):
    """Create a quote. Retailer requests become RFQs for their own company."""
    company_id = resolve_company_id(user, body.company_id)
    if user.role == 'retailer':
        quote_type, contact_id = 'rfq', user.id
    else:
        quote_type, contact_id = body.type or 'proactive', None

    service = state.quote_service
    quote = service.create_quote(
        QuoteRequest(
            company_id=company_id,
            items=_request_items(body.items),
            type=quote_type,
            contact_id=contact_id,
            order_type=body.order_type,
            notes=body.notes,
            requested_delivery_date=parse_datetime(body.requested_delivery_date),
            reference_number=body.reference_number,
            tags=body.tags,
        ),
        user.id,
    )
    if body.send_immediately and user.role != 'retailer':
        quote = service.update_quote_status(quote.id, 'sent', user.id, 'Quote sent to customer')
    return {'quote': jsonable_encoder(quote)}


@router.get("/expiring")
async def list_expiring_quotes(days: Optional[int] = None,
                               user: User = Depends(get_current_user),
                               state: PortalState = Depends(get_state)):
    """Sent or viewed quotes that expire within the lookahead window."""
    quotes = [
        q for q in state.quote_service.check_expiring_quotes(days)
        if can_view(user, q)
    ]
    return {'quotes': jsonable_encoder(quotes), 'count': len(quotes)}


@router.post("/expiring")
async def run_expiry(user: User = Depends(require_admin),
                     state: PortalState = Depends(get_state)):
    """Expire overdue quotes now."""
    expired = state.quote_service.expire_quotes()
    logger.info("Expiry sweep triggered by {}", user.id)
    return {'expired': expired}


@router.post("/check-expiration")
async def check_expiration(x_cron_secret: Optional[str] = Header(None),
                           state: PortalState = Depends(get_state)):
    """Cron trigger: expire overdue quotes and report the ones about to expire."""
    secret = state.settings.cron_secret
    if secret and x_cron_secret != secret:
        raise AuthenticationError("Invalid cron secret")

    service = state.quote_service
    expired = service.expire_quotes()
    expiring = service.check_expiring_quotes()
    return {
        'success': True,
        'expired': expired,
        'expiring_soon': len(expiring),
        'expiring': [{'id': q.id, 'number': q.number, 'valid_until': q.terms.valid_until} for q in expiring],
        'message': f"Expired {expired} quotes, {len(expiring)} expiring soon",
    }


@router.get("/templates")
async def list_templates(user: User = Depends(require_staff),
                         state: PortalState = Depends(get_state)):
    return {'templates': jsonable_encoder(state.quote_service.get_templates())}


@router.post("/templates", status_code=201)
async def save_template(body: TemplateCreate,
                        user: User = Depends(require_staff),
                        state: PortalState = Depends(get_state)):
    """Save a quote as a reusable template."""
    if not body.name or not body.quote_id:
        raise ValidationError("name and quoteId are required")
    _visible_quote(state, body.quote_id, user)
    template = state.quote_service.save_template(body.name, body.description, body.quote_id, user.id)
    return {'template': jsonable_encoder(template)}


@router.post("/templates/{template_id}/quotes", status_code=201)
async def create_from_template(template_id: str, body: TemplateUse,
                               user: User = Depends(require_staff),
                               state: PortalState = Depends(get_state)):
    """Start a new draft quote from a template."""
    quote = state.quote_service.create_quote_from_template(template_id, body.company_id, user.id, body.type)
    return {'quote': jsonable_encoder(quote)}


@router.get("/{quote_id}")
async def get_quote(quote_id: str,
                    user: User = Depends(get_current_user),
                    state: PortalState = Depends(get_state)):
    """Get a quote. A retailer opening a sent quote marks it viewed."""
    quote = _visible_quote(state, quote_id, user)
    if user.role == 'retailer' and quote.status == 'sent':
        quote = state.quote_service.mark_viewed(quote_id, user.id)
    return {'quote': jsonable_encoder(quote)}


@router.get("/{quote_id}/document", response_class=HTMLResponse)
async def download_quote_document(quote_id: str,
                                  user: User = Depends(get_current_user),
                                  state: PortalState = Depends(get_state)):
    """Printable HTML copy of a quote, served as a file download."""
    quote = _visible_quote(state, quote_id, user)
    contact = state.catalog.get_user(quote.contact_id) if quote.contact_id else None
    html = render_quote_document(quote, contact, generated_at=state.clock())
    return HTMLResponse(
        content=html,
        headers={'Content-Disposition': f'attachment; filename="{document_filename(quote)}"'},
    )


@router.patch("/{quote_id}")
async def update_quote(quote_id: str, body: QuoteUpdate,
                       user: User = Depends(get_current_user),
                       state: PortalState = Depends(get_state)):
    """Change a quote's status, apply an action, or revise it."""
    service = state.quote_service
    quote = _visible_quote(state, quote_id, user)

    if body.revision is not None:
        if user.role == 'retailer':
            raise ForbiddenError("Retailers request revisions with the request-revision action")
        quote = service.add_quote_revision(
            quote_id,
            QuoteRevision(
                items=_request_items(body.revision.items) if body.revision.items is not None else None,
                terms=body.revision.terms,
                notes=body.revision.notes,
            ),
            user.id,
        )
        return {'quote': jsonable_encoder(quote)}

    if body.action:
        if user.role == 'retailer' and body.action not in RETAILER_ACTIONS:
            raise ForbiddenError(f"Retailers cannot '{body.action}' a quote")
        try:
            new_status, details = resolve_action(body.action, body.reason)
        except KeyError:
            raise ValidationError(f"Unknown action '{body.action}'")
    elif body.status:
        if user.role == 'retailer':
            raise ForbiddenError("Retailers change quotes through actions")
        new_status, details = body.status, body.details
    else:
        raise ValidationError("One of status, action or revision is required")

    if not can_transition(user, quote, new_status):
        raise ForbiddenError(f"Your role cannot move a quote to '{new_status}'")
    quote = service.update_quote_status(quote_id, new_status, user.id, details)
    return {'quote': jsonable_encoder(quote)}


@router.delete("/{quote_id}")
async def delete_quote(quote_id: str,
                       user: User = Depends(get_current_user),
                       state: PortalState = Depends(get_state)):
    """Cancel a draft quote."""
    quote = _visible_quote(state, quote_id, user)
    if quote.status != 'draft':
        raise ValidationError("Only draft quotes can be deleted")
    if user.role != 'admin' and quote.created_by != user.id:
        raise ForbiddenError("Only the creator or an admin can delete a quote")

    quote = state.quote_service.update_quote_status(quote_id, 'cancelled', user.id, 'Quote cancelled')
    return {'success': True, 'quote': jsonable_encoder(quote)}


@router.post("/{quote_id}/convert")
async def convert_quote(quote_id: str,
                        user: User = Depends(get_current_user),
                        state: PortalState = Depends(get_state)):
    """Convert an accepted quote into an order."""
    quote = state.quote_service.get_quote(quote_id)
    if not can_convert(user, quote):
        raise ForbiddenError("You cannot convert this quote")

    order = state.quote_service.convert_quote_to_order(quote_id, user.id)
    return {
        'order': jsonable_encoder(order),
        'quote': jsonable_encoder(state.quote_service.get_quote(quote_id)),
    }
