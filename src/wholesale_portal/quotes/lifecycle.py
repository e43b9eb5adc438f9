"""
Quote Lifecycle - Transition table and role permissions.

    draft ──send──▶ sent ──view──▶ viewed
      │               │              │
      │               └──────┬───────┘
      │                      ▼
      │        accepted / rejected / revised / expired
      │            │                      │
      ▼            ▼                      ▼
  cancelled    converted            sent (re-send)

The lifecycle service validates state changes against TRANSITIONS.
Role checks (TRANSITION_ROLES, can_*) are applied by the API layer.
"""
from typing import Optional

from ..catalog.models import User
from ..exceptions import InvalidTransitionError
from .models import Quote


TERMINAL_STATUSES = frozenset({'rejected', 'expired', 'cancelled', 'converted'})
EXPIRABLE_STATUSES = frozenset({'sent', 'viewed'})

TRANSITIONS: dict[str, frozenset] = {
    'draft': frozenset({'sent', 'cancelled'}),
    'sent': frozenset({'viewed', 'accepted', 'rejected', 'revised', 'expired'}),
    'viewed': frozenset({'accepted', 'rejected', 'revised', 'expired'}),
    'revised': frozenset({'sent'}),
    'accepted': frozenset({'converted'}),
    'rejected': frozenset(),
    'expired': frozenset(),
    'cancelled': frozenset(),
    'converted': frozenset(),
}

# Target status → roles that may request it. "system" covers the expiry
# sweep and conversion jobs.
TRANSITION_ROLES: dict[str, frozenset] = {
    'sent': frozenset({'sales_rep', 'admin'}),
    'viewed': frozenset({'retailer'}),
    'accepted': frozenset({'retailer', 'admin'}),
    'rejected': frozenset({'retailer', 'admin'}),
    'revised': frozenset({'retailer', 'sales_rep', 'admin'}),
    'cancelled': frozenset({'sales_rep', 'admin'}),
    'converted': frozenset({'retailer', 'admin', 'system'}),
    'expired': frozenset({'admin', 'system'}),
}

# PATCH {"action": ...} → (status, default details)
ACTIONS = {
    'accept': ('accepted', 'Customer accepted the quote'),
    'reject': ('rejected', 'Customer rejected the quote'),
    'send': ('sent', 'Quote sent to customer'),
    'request-revision': ('revised', 'Customer requested revisions'),
}
RETAILER_ACTIONS = frozenset({'accept', 'reject', 'request-revision'})


def check_transition(current: str, requested: str, allow_accept_from_draft: bool = False):
    """Raise InvalidTransitionError unless current → requested is allowed."""
    if requested not in TRANSITIONS:
        raise InvalidTransitionError(current, requested, "unknown status")
    if current == 'draft' and requested == 'accepted' and allow_accept_from_draft:
        return
    if requested not in TRANSITIONS.get(current, frozenset()):
        if current in TERMINAL_STATUSES:
            raise InvalidTransitionError(current, requested, f"'{current}' is terminal")
        raise InvalidTransitionError(current, requested)


def is_transition_allowed(current: str, requested: str, allow_accept_from_draft: bool = False) -> bool:
    try:
        check_transition(current, requested, allow_accept_from_draft)
    except InvalidTransitionError:
        return False
    return True


def can_transition(user: User, quote: Quote, requested: str) -> bool:
    """Role and ownership check for a status change requested by a user."""
    if user.role not in TRANSITION_ROLES.get(requested, frozenset()):
        return False
    if requested == 'cancelled':
        return user.role == 'admin' or quote.created_by == user.id
    return can_view(user, quote)


def can_view(user: User, quote: Quote) -> bool:
    """Retailers see their company's quotes; reps see quotes they own."""
    if user.role == 'admin':
        return True
    if user.role == 'retailer':
        return quote.company_id == user.company_id
    return quote.assigned_to == user.id or quote.created_by == user.id


def can_convert(user: User, quote: Quote) -> bool:
    """Only the buying company or an admin converts a quote into an order."""
    if user.role == 'sales_rep':
        return False
    return can_view(user, quote)


def resolve_action(action: str, reason: Optional[str] = None) -> tuple[str, str]:
    """Map a PATCH action to (status, details)."""
    if action not in ACTIONS:
        raise KeyError(action)
    status, details = ACTIONS[action]
    return status, reason or details
