"""
Shared FastAPI dependencies: the session user and role guards.

The session is a trusted stub: a `session` cookie of the form
`session_<userId>` naming a user in users.json.
"""
from fastapi import Depends, Request

from ..catalog.models import User
from ..exceptions import AuthenticationError, ForbiddenError, ValidationError
from .state import get_state, PortalState


SESSION_COOKIE = 'session'
SESSION_PREFIX = 'session_'


def session_cookie_for(user_id: str) -> str:
    return f"{SESSION_PREFIX}{user_id}"


def get_current_user(request: Request, state: PortalState = Depends(get_state)) -> User:
    """Resolve the session cookie to a user, or 401."""
    token = request.cookies.get(SESSION_COOKIE)
    if not token or not token.startswith(SESSION_PREFIX):
        raise AuthenticationError("Unauthorized")
    user = state.catalog.get_user(token[len(SESSION_PREFIX):])
    if user is None:
        raise AuthenticationError("Unauthorized")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != 'admin':
        raise ForbiddenError("Admin access required")
    return user


def require_staff(user: User = Depends(get_current_user)) -> User:
    """Sales reps and admins."""
    if user.role not in ('sales_rep', 'admin'):
        raise ForbiddenError("Sales rep or admin access required")
    return user


def resolve_company_id(user: User, requested: str = None) -> str:
    """
    The company a request acts for.

    Retailers always act for their own company; staff must name one.
    """
    if user.role == 'retailer':
        if requested and requested != user.company_id:
            raise ForbiddenError("Retailers can only act for their own company")
        return user.company_id
    if not requested:
        raise ValidationError("companyId is required")
    return requested
