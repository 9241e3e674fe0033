"""
Authentication utilities for extracting the caller from Cognito tokens.

Identity is issued upstream; the engine only compares ids for equality.
"""
from typing import Optional

from .errors import Unauthenticated


def _claims(event: dict) -> dict:
    try:
        return event['requestContext']['authorizer']['claims'] or {}
    except (KeyError, TypeError):
        return {}


def get_user_sub(event: dict) -> Optional[str]:
    """
    Extract user sub (unique ID) from Cognito authorizer claims.

    Args:
        event: API Gateway Lambda proxy event

    Returns:
        User sub string or None if not authenticated
    """
    return _claims(event).get('sub')


def get_user_name(event: dict) -> Optional[str]:
    """Display name for timeline entries: name, then username, then email."""
    claims = _claims(event)
    return claims.get('name') or claims.get('cognito:username') or claims.get('email')


def require_user_sub(event: dict) -> str:
    """Caller id, or Unauthenticated when the request carries no identity."""
    user_sub = get_user_sub(event)
    if not user_sub:
        raise Unauthenticated()
    return user_sub
