"""
Offer Timeout Procedure.
Invoked directly (RequestResponse) as handle_commission_timeout / handle_errand_timeout.
Payload: { "engagementId": "...", "runnerId": "..." }

Idempotent: runner clients and the sweep may call it for the same offer at
the same time. Unexpected errors are raised so the caller sees a
FunctionError and can retry.
"""
from shared.engagement_store import EngagementStore
from shared.logging import logger
from shared.models import EngagementKind
from shared.timeouts import handle_timeout


def _run(kind: str, event: dict) -> dict:
    engagement_id = event.get('engagementId')
    runner_id = event.get('runnerId')
    if not engagement_id or not runner_id:
        return {'success': False, 'reason': 'invalid_request'}

    result = handle_timeout(EngagementStore(kind), str(engagement_id), runner_id)
    logger.info(f"{kind} timeout {engagement_id}/{runner_id}: {result}")
    return result


def commission_handler(event, context):
    return _run(EngagementKind.COMMISSION, event)


def errand_handler(event, context):
    return _run(EngagementKind.ERRAND, event)
