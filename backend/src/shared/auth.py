"""
Caller identity from the API Gateway Cognito authorizer.
"""
from typing import Optional


def get_claims(event: dict) -> dict:
    """
    Authorizer claims for REST APIs (authorizer.claims) or HTTP APIs
    (authorizer.jwt.claims). Empty dict when the request is anonymous.
    """
    authorizer = ((event or {}).get('requestContext') or {}).get('authorizer') or {}
    if 'claims' in authorizer:
        return authorizer['claims'] or {}
    return (authorizer.get('jwt') or {}).get('claims') or {}


def get_user_sub(event: dict) -> Optional[str]:
    """Cognito sub of the signed-in user, or None if not authenticated."""
    return get_claims(event).get('sub') or None
