"""
Create Engagement Handler.
POST /caller/{kind}
Body: { "title": "...", "description": "...", ... }

Posts a pending commission or errand. createdAt is the server's clock, so the
cancellation window cannot be stretched by a skewed client.
"""
from shared.api import bad_request, build_coordinator, get_kind, internal_error, result_response, unavailable
from shared.auth import get_user_sub
from shared.errors import StoreUnavailable
from shared.logging import logger, log_event
from shared.utils import format_response, parse_body

# Attributes the caller may not set on creation
RESERVED_FIELDS = {
    'engagementId', 'kind', 'callerId', 'status', 'runnerId', 'createdAt', 'acceptedAt',
    'invoiceStatus', 'notifiedRunnerId', 'notifiedAt', 'notifiedExpiresAt',
    'rankedRunnerIds', 'currentQueueIndex', 'timeoutRunnerIds', 'declinedRunnerIds',
}


def handler(event, context):
    log_event(event)

    kind = get_kind(event)
    if not kind:
        return bad_request('Missing or invalid kind')

    body = parse_body(event)
    title = (body.get('title') or '').strip()
    if not title:
        return bad_request('title is required')

    fields = {k: v for k, v in body.items() if k not in RESERVED_FIELDS and k != 'title'}

    try:
        result = build_coordinator(kind).create(get_user_sub(event), title, fields)
        if not result.ok:
            return result_response(result)
        return format_response(201, result.to_dict())

    except StoreUnavailable as e:
        logger.warning(f"Transient failure creating {kind}: {e}")
        return unavailable()
    except Exception as e:
        logger.error(f"Error creating {kind}: {e}")
        return internal_error()
