"""
Authoritative offer timeout procedure.

Runs server-side (Lambda) for both the runner's client timer and the
scheduled sweep. Each resolution is one guarded write on the engagement
row, so concurrent callers for the same offer serialize in DynamoDB and
at most one of them observes success. Everyone else gets a normal
"already resolved" result, never an exception.
"""
from typing import Any, Dict, List, Optional
from .config import config
from .dynamo import Guard
from .logging import logger
from .models import EngagementStatus, TimeoutAction, TimeoutReason
from .sqs import send_message
from .utils import now_ms, to_int


def open_offer_updates(runner_id: str, now: int) -> Dict[str, Any]:
    """Fields that offer an engagement to `runner_id` until the notification deadline."""
    return {
        'notifiedRunnerId': runner_id,
        'notifiedAt': now,
        'notifiedExpiresAt': now + config.NOTIFICATION_WINDOW_SECONDS * 1000,
    }


def cleared_offer_updates() -> Dict[str, Any]:
    return {
        'notifiedRunnerId': None,
        'notifiedAt': None,
        'notifiedExpiresAt': None,
    }


def advance_offer(item: Dict[str, Any], lapsed_runner_id: str, now: int, ledger: str):
    """
    Move the ranked queue past `lapsed_runner_id`.

    Runners that already timed out or declined are never offered again.
    The lapsed runner is appended to the `ledger` attribute (timeoutRunnerIds
    or declinedRunnerIds) once.

    Returns:
        (updates, action, next_runner_id)
    """
    ranked = list(item.get('rankedRunnerIds') or [])
    recorded = list(item.get(ledger) or [])
    if lapsed_runner_id not in recorded:
        recorded.append(lapsed_runner_id)

    skip = set(item.get('timeoutRunnerIds') or []) | set(item.get('declinedRunnerIds') or [])
    skip.add(lapsed_runner_id)

    next_index = (to_int(item.get('currentQueueIndex')) or 0) + 1
    while next_index < len(ranked) and ranked[next_index] in skip:
        next_index += 1

    updates = {ledger: recorded, 'currentQueueIndex': next_index}
    if next_index < len(ranked):
        next_runner_id = ranked[next_index]
        updates.update(open_offer_updates(next_runner_id, now))
        return updates, TimeoutAction.REASSIGNED, next_runner_id

    updates.update(cleared_offer_updates())
    return updates, TimeoutAction.RELEASED, None


def notify_caller_released(kind: str, item: Dict[str, Any]) -> bool:
    """Tell the caller nobody took the offer; best-effort."""
    return send_message(config.CALLER_NOTIFICATIONS_QUEUE_URL, {
        'event': 'no_runners_available',
        'callerId': item.get('callerId'),
        'engagementId': item.get('engagementId'),
        'kind': kind,
        'title': item.get('title'),
    })


def handle_timeout(store, engagement_id: str, runner_id: str, now: Optional[int] = None) -> Dict[str, Any]:
    """
    Resolve an expired offer to `runner_id`.

    Safe to call any number of times, concurrently, and late.

    Returns:
        {'success': True, 'action': ..., 'nextRunnerId': ...} for the one caller
        that resolved the offer, otherwise {'success': False, 'reason': ...}
    """
    now = now_ms() if now is None else now
    item = store.get(engagement_id)

    if not item:
        return {'success': False, 'reason': TimeoutReason.NOT_FOUND}
    if item.get('status') != EngagementStatus.PENDING:
        return {'success': False, 'reason': TimeoutReason.NOT_PENDING, 'status': item.get('status')}
    if item.get('runnerId') is not None:
        return {'success': False, 'reason': TimeoutReason.ALREADY_ACCEPTED}
    if item.get('notifiedRunnerId') != runner_id:
        return {'success': False, 'reason': TimeoutReason.NOT_NOTIFIED_TO_RUNNER}

    expires_at = item.get('notifiedExpiresAt')
    if expires_at is None or expires_at > now:
        return {'success': False, 'reason': TimeoutReason.NOT_EXPIRED_YET}

    updates, action, next_runner_id = advance_offer(item, runner_id, now, 'timeoutRunnerIds')
    guard = Guard(
        equals={
            'status': EngagementStatus.PENDING,
            'notifiedRunnerId': runner_id,
            'notifiedExpiresAt': expires_at,
        },
        is_null=['runnerId'],
        at_most={'notifiedExpiresAt': now}
    )
    updated = store.conditional_update(engagement_id, updates, guard)
    if updated is None:
        return {'success': False, 'reason': TimeoutReason.UPDATE_FAILED_CONCURRENT}

    logger.info(f"Offer of {store.kind} {engagement_id} to runner {runner_id} expired: {action}")
    if action == TimeoutAction.RELEASED:
        notify_caller_released(store.kind, updated)

    result = {'success': True, 'action': action}
    if next_runner_id:
        result['nextRunnerId'] = next_runner_id
    return result


def sweep_expired(store, now: Optional[int] = None, limit: Optional[int] = None) -> Dict[str, int]:
    """
    Scheduled fallback: resolve every offer whose deadline has passed.
    Rows already resolved by a client timer come back as no-ops.
    """
    now = now_ms() if now is None else now
    limit = limit or config.SWEEP_BATCH_LIMIT

    expired: List[Dict[str, Any]] = store.find_expired_notifications(now, limit)
    logger.info(f"Found {len(expired)} expired {store.kind} offers")

    counts = {'checked': len(expired), 'reassigned': 0, 'released': 0, 'skipped': 0, 'errors': 0}
    for item in expired:
        engagement_id = item.get('engagementId')
        try:
            result = handle_timeout(store, engagement_id, item.get('notifiedRunnerId'), now)
            if not result['success']:
                counts['skipped'] += 1
            elif result['action'] == TimeoutAction.REASSIGNED:
                counts['reassigned'] += 1
            else:
                counts['released'] += 1
        except Exception as e:
            logger.error(f"Error expiring offer for {store.kind} {engagement_id}: {e}")
            counts['errors'] += 1

    return counts
