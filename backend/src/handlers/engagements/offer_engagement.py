"""
Offer Engagement Handler.
POST /caller/{kind}/{engagementId}/offer
Body: { "rankedRunnerIds": ["...", "..."] }

Stores the ranked runner queue and notifies the first runner, who then has
the notification window to accept before the offer moves on.
"""
from shared.api import bad_request, build_coordinator, get_kind, internal_error, result_response, unavailable
from shared.auth import get_user_sub
from shared.errors import StoreUnavailable
from shared.logging import logger, log_event
from shared.models import OfferResult, Rejection
from shared.utils import get_path_param, parse_body


def handler(event, context):
    log_event(event)

    kind = get_kind(event)
    engagement_id = get_path_param(event, 'engagementId')
    if not kind or not engagement_id:
        return bad_request('Missing or invalid kind / engagementId')

    ranked_runner_ids = parse_body(event).get('rankedRunnerIds')
    if not isinstance(ranked_runner_ids, list) or not all(isinstance(r, str) for r in ranked_runner_ids):
        return bad_request('rankedRunnerIds must be a list of runner ids')

    caller_id = get_user_sub(event)
    if not caller_id:
        return result_response(OfferResult.rejected(Rejection.UNAUTHENTICATED))

    try:
        result = build_coordinator(kind).offer(engagement_id, ranked_runner_ids, requester_id=caller_id)
        return result_response(result)

    except StoreUnavailable as e:
        logger.warning(f"Transient failure offering {kind} {engagement_id}: {e}")
        return unavailable()
    except Exception as e:
        logger.error(f"Error offering {kind} {engagement_id}: {e}")
        return internal_error()
