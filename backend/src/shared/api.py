"""
Shared plumbing for the offer API handlers.
"""
from typing import Optional
from .coordinator import OfferCoordinator
from .messaging import send_acceptance_message
from .models import EngagementKind, OfferResult, Rejection
from .utils import format_response, get_path_param

STATUS_BY_REASON = {
    Rejection.UNAUTHENTICATED: 401,
    Rejection.NOT_REQUESTER: 403,
    Rejection.NOT_FOUND: 404,
    Rejection.ALREADY_ACTIVE: 409,
    Rejection.TAKEN_BY_OTHER: 409,
    Rejection.WINDOW_EXPIRED: 409,
    Rejection.NO_LONGER_ELIGIBLE: 409,
    Rejection.NOT_OFFERED: 409,
}

MESSAGES = {
    Rejection.UNAUTHENTICATED: 'Not signed in.',
    Rejection.NOT_REQUESTER: 'Only the requester can do this.',
    Rejection.NOT_FOUND: 'Not found.',
    Rejection.ALREADY_ACTIVE: 'Finish your active task first, or this one is already active.',
    Rejection.TAKEN_BY_OTHER: 'This was already accepted by another runner.',
    Rejection.WINDOW_EXPIRED: 'The 30-second cancellation window has ended.',
    Rejection.NO_LONGER_ELIGIBLE: 'This is no longer eligible for that action.',
    Rejection.NOT_OFFERED: 'There is no open offer for this.',
}


def get_kind(event: dict) -> Optional[str]:
    """Engagement kind from the {kind} path parameter, or None if invalid."""
    kind = get_path_param(event, 'kind')
    if kind in EngagementKind.ALL:
        return kind
    return None


def build_coordinator(kind: str) -> OfferCoordinator:
    return OfferCoordinator(kind, notifier=send_acceptance_message)


def result_response(result: OfferResult) -> dict:
    """Map a coordinator result to an API Gateway response."""
    body = result.to_dict()
    if result.ok:
        return format_response(200, body)
    body['message'] = MESSAGES.get(result.reason, 'Request could not be completed.')
    return format_response(STATUS_BY_REASON.get(result.reason, 409), body)


def bad_request(message: str) -> dict:
    return format_response(400, {'message': message})


def unavailable() -> dict:
    """Transient failure: the client may retry."""
    return format_response(503, {'message': 'Service temporarily unavailable, please retry.', 'retryable': True})


def internal_error() -> dict:
    return format_response(500, {'message': 'Internal Server Error'})
