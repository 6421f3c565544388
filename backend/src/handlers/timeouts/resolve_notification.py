"""
Resolve Notification Handler.
POST /runner/{kind}/{engagementId}/timeout

Called by the runner app when its countdown reaches notifiedExpiresAt. The
response is 200 whether this call resolved the offer or it was already
resolved elsewhere; `success` tells which.
"""
from shared.api import bad_request, build_coordinator, get_kind, internal_error, result_response, unavailable
from shared.auth import get_user_sub
from shared.errors import ProcedureError
from shared.logging import logger, log_event
from shared.models import Rejection
from shared.utils import format_response, get_path_param


def handler(event, context):
    log_event(event)

    kind = get_kind(event)
    engagement_id = get_path_param(event, 'engagementId')
    if not kind or not engagement_id:
        return bad_request('Missing or invalid kind / engagementId')

    try:
        result = build_coordinator(kind).resolve_expired_notification(engagement_id, get_user_sub(event))
        if result.reason == Rejection.UNAUTHENTICATED:
            return result_response(result)
        return format_response(200, result.to_dict())

    except ProcedureError as e:
        logger.warning(f"Timeout procedure unavailable for {kind} {engagement_id}: {e}")
        return unavailable()
    except Exception as e:
        logger.error(f"Error resolving timeout for {kind} {engagement_id}: {e}")
        return internal_error()
