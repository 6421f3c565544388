"""
Decline Offer Handler.
POST /runner/{kind}/{engagementId}/decline
"""
from shared.api import bad_request, build_coordinator, get_kind, internal_error, result_response, unavailable
from shared.auth import get_user_sub
from shared.errors import StoreUnavailable
from shared.logging import logger, log_event
from shared.utils import get_path_param


def handler(event, context):
    log_event(event)

    kind = get_kind(event)
    engagement_id = get_path_param(event, 'engagementId')
    if not kind or not engagement_id:
        return bad_request('Missing or invalid kind / engagementId')

    try:
        result = build_coordinator(kind).decline(engagement_id, get_user_sub(event))
        return result_response(result)

    except StoreUnavailable as e:
        logger.warning(f"Transient failure declining {kind} {engagement_id}: {e}")
        return unavailable()
    except Exception as e:
        logger.error(f"Error declining {kind} {engagement_id}: {e}")
        return internal_error()
