"""
Sweep Expired Notifications Handler.
Triggered by EventBridge scheduler every minute.

Backstop for runner clients whose countdown never fired (app closed, device
asleep): resolves every offer whose notifiedExpiresAt has passed, for both
commissions and errands.
"""
from shared.engagement_store import EngagementStore
from shared.errors import StoreUnavailable
from shared.logging import logger
from shared.models import EngagementKind
from shared.timeouts import sweep_expired


def handler(event, context):
    logger.info("Running offer expiry sweep...")

    summary = {}
    for kind in EngagementKind.ALL:
        try:
            summary[kind] = sweep_expired(EngagementStore(kind))
        except StoreUnavailable as e:
            logger.error(f"Could not sweep {kind} offers: {e}")
            summary[kind] = {'error': str(e)}

    logger.info(f"Offer expiry sweep finished: {summary}")
    return summary
