"""
Accept Engagement Handler.
POST /runner/{kind}/{engagementId}/accept

Assigns a pending commission or errand to the calling runner. Exactly one of
several racing runners wins; the others get 409.
"""
from shared.api import bad_request, build_coordinator, get_kind, internal_error, result_response, unavailable
from shared.auth import get_user_sub
from shared.errors import ProcedureError, StoreUnavailable
from shared.logging import logger, log_event
from shared.utils import get_path_param


def handler(event, context):
    log_event(event)

    kind = get_kind(event)
    engagement_id = get_path_param(event, 'engagementId')
    if not kind or not engagement_id:
        return bad_request('Missing or invalid kind / engagementId')

    try:
        result = build_coordinator(kind).attempt_accept(engagement_id, get_user_sub(event))
        return result_response(result)

    except (StoreUnavailable, ProcedureError) as e:
        logger.warning(f"Transient failure accepting {kind} {engagement_id}: {e}")
        return unavailable()
    except Exception as e:
        logger.error(f"Error accepting {kind} {engagement_id}: {e}")
        return internal_error()
