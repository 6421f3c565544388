"""
Cancel Engagement Handler.
POST /caller/{kind}/{engagementId}/cancel

The requester may cancel a still-pending engagement within 30 seconds of
creating it. The window is measured against the server-recorded createdAt.
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
        result = build_coordinator(kind).attempt_cancel(engagement_id, get_user_sub(event))
        return result_response(result)

    except StoreUnavailable as e:
        logger.warning(f"Transient failure cancelling {kind} {engagement_id}: {e}")
        return unavailable()
    except Exception as e:
        logger.error(f"Error cancelling {kind} {engagement_id}: {e}")
        return internal_error()
