"""
Offer lifecycle coordinator.

Moves an engagement from pending to assigned-to-exactly-one-runner, enforces
the one-active-engagement rules, and resolves unaccepted offers. All mutual
exclusion is delegated to guarded single-item writes on the engagement row;
reads before a write are advisory only.

Lifecycle: pending → (offered to a runner) → in_progress → completed
           pending → cancelled (requester, within the cancel window)
           offered → pending (offer expired or declined, next runner or open pool)
"""
import uuid
from typing import Any, Callable, Dict, Iterable, Optional
from .config import config
from .dynamo import Guard
from .engagement_store import EngagementStore
from .errors import StoreUnavailable
from .logging import logger
from .models import EngagementStatus, InvoiceStatus, OfferResult, Rejection, TimeoutAction
from .procedures import LambdaProcedureClient
from .timeouts import advance_offer, cleared_offer_updates, notify_caller_released, open_offer_updates
from .utils import now_ms, to_int


class OfferCoordinator:
    """
    Offer operations for one engagement kind (commission or errand).

    Args:
        kind: EngagementKind value
        store: EngagementStore (or compatible) for the kind's table
        procedures: client used to call the server-side timeout procedure
        notifier: best-effort callback(engagement, kind) run after a successful accept
        timers: optional NotificationTimers of this client
        clock: returns epoch milliseconds
    """

    def __init__(
        self,
        kind: str,
        store=None,
        procedures=None,
        notifier: Optional[Callable[[Dict[str, Any], str], Any]] = None,
        timers=None,
        clock: Callable[[], int] = now_ms
    ):
        self.kind = kind
        self.store = store if store is not None else EngagementStore(kind)
        self.procedures = procedures if procedures is not None else LambdaProcedureClient()
        self.notifier = notifier
        self.timers = timers
        self.clock = clock

    def _reject(self, operation: str, engagement_id: str, reason: str, engagement: dict = None) -> OfferResult:
        logger.info(f"{operation} {self.kind} {engagement_id} rejected: {reason}")
        return OfferResult.rejected(reason, engagement)

    def _cancel_timer(self, engagement_id: str) -> None:
        if self.timers is not None:
            self.timers.cancel(engagement_id)

    def attempt_accept(self, engagement_id: str, runner_id: str) -> OfferResult:
        """
        Assign the engagement to `runner_id`.

        Under concurrent calls for one engagement exactly one commit succeeds;
        the others get TAKEN_BY_OTHER or ALREADY_ACTIVE.
        """
        if not engagement_id:
            raise ValueError("engagement_id is required")
        if not runner_id:
            return self._reject('accept', engagement_id, Rejection.UNAUTHENTICATED)

        engagement = self.store.get(engagement_id)
        if not engagement:
            return self._reject('accept', engagement_id, Rejection.NOT_FOUND)

        # Advisory eligibility checks; the guarded commit below is authoritative
        if self.store.find_active(runner_id, exclude_id=engagement_id):
            return self._reject('accept', engagement_id, Rejection.ALREADY_ACTIVE)
        if self.store.find_active(runner_id, caller_id=engagement.get('callerId'), exclude_id=engagement_id):
            return self._reject('accept', engagement_id, Rejection.ALREADY_ACTIVE)

        fresh = self.store.get(engagement_id)
        if not fresh:
            return self._reject('accept', engagement_id, Rejection.NOT_FOUND)
        rejection = self._accept_conflict(fresh, runner_id)
        if rejection:
            return self._reject('accept', engagement_id, rejection, fresh)

        now = self.clock()
        updates = {
            'runnerId': runner_id,
            'status': EngagementStatus.IN_PROGRESS,
            'acceptedAt': now,
            'invoiceStatus': InvoiceStatus.DRAFT,
        }
        updates.update(cleared_offer_updates())
        guard = Guard(equals={'status': EngagementStatus.PENDING}, is_null=['runnerId'])

        updated = self.store.conditional_update(engagement_id, updates, guard)
        if updated is None:
            # Lost the race; report what won
            current = self.store.get(engagement_id)
            rejection = self._accept_conflict(current, runner_id) if current else Rejection.NOT_FOUND
            return self._reject('accept', engagement_id, rejection or Rejection.TAKEN_BY_OTHER, current)

        logger.info(f"Runner {runner_id} accepted {self.kind} {engagement_id}")
        self._cancel_timer(engagement_id)
        self._notify_accepted(updated)
        return OfferResult.success(updated)

    @staticmethod
    def _accept_conflict(engagement: Dict[str, Any], runner_id: str) -> Optional[str]:
        assignee = engagement.get('runnerId')
        status = engagement.get('status')
        if assignee is not None and assignee != runner_id:
            return Rejection.TAKEN_BY_OTHER
        if status in EngagementStatus.ACTIVE:
            return Rejection.ALREADY_ACTIVE
        if status != EngagementStatus.PENDING:
            return Rejection.NO_LONGER_ELIGIBLE
        return None

    def _notify_accepted(self, engagement: Dict[str, Any]) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier(engagement, self.kind)
        except Exception as e:
            # The assignment stands regardless; the message can be resent later
            logger.error(f"Acceptance message for {self.kind} {engagement.get('engagementId')} failed: {e}")

    def attempt_cancel(self, engagement_id: str, requester_id: str, now: Optional[int] = None) -> OfferResult:
        """Cancel a pending engagement within the cancel window after creation."""
        if not engagement_id:
            raise ValueError("engagement_id is required")
        if not requester_id:
            return self._reject('cancel', engagement_id, Rejection.UNAUTHENTICATED)

        now = self.clock() if now is None else now
        window_ms = config.CANCEL_WINDOW_SECONDS * 1000

        engagement = self.store.get(engagement_id)
        if not engagement:
            return self._reject('cancel', engagement_id, Rejection.NOT_FOUND)
        if engagement.get('callerId') != requester_id:
            return self._reject('cancel', engagement_id, Rejection.NOT_REQUESTER)

        elapsed = now - to_int(engagement['createdAt'])
        if elapsed > window_ms:
            return self._reject('cancel', engagement_id, Rejection.WINDOW_EXPIRED, engagement)

        updates = {'status': EngagementStatus.CANCELLED, 'cancelledAt': now}
        updates.update(cleared_offer_updates())
        guard = Guard(
            equals={'status': EngagementStatus.PENDING},
            is_null=['runnerId'],
            at_least={'createdAt': now - window_ms}
        )
        updated = self.store.conditional_update(engagement_id, updates, guard)
        if updated is None:
            return self._reject('cancel', engagement_id, Rejection.NO_LONGER_ELIGIBLE, engagement)

        logger.info(f"Caller {requester_id} cancelled {self.kind} {engagement_id}")
        self._cancel_timer(engagement_id)
        return OfferResult.success(updated)

    def resolve_expired_notification(self, engagement_id: str, notified_runner_id: str) -> OfferResult:
        """
        Ask the server to resolve an expired offer. Idempotent: only one
        concurrent caller sees ok=True, the rest get the procedure's reason.
        Raises ProcedureError on transport failure (safe to retry).
        """
        if not engagement_id:
            raise ValueError("engagement_id is required")
        if not notified_runner_id:
            return self._reject('timeout', engagement_id, Rejection.UNAUTHENTICATED)

        response = self.procedures.invoke(
            config.timeout_function_for(self.kind),
            {'engagementId': engagement_id, 'runnerId': notified_runner_id}
        )
        data = {k: v for k, v in response.items() if k not in ('success', 'reason')}
        if response.get('success'):
            return OfferResult.success(**data)
        return OfferResult.rejected(response.get('reason'), **data)

    def offer(self, engagement_id: str, ranked_runner_ids: Iterable[str],
              requester_id: Optional[str] = None) -> OfferResult:
        """Start offering a pending engagement to runners in ranked order."""
        if not engagement_id:
            raise ValueError("engagement_id is required")

        engagement = self.store.get(engagement_id)
        if not engagement:
            return self._reject('offer', engagement_id, Rejection.NOT_FOUND)
        if requester_id is not None and engagement.get('callerId') != requester_id:
            return self._reject('offer', engagement_id, Rejection.NOT_REQUESTER)

        excluded = set(engagement.get('timeoutRunnerIds') or []) | set(engagement.get('declinedRunnerIds') or [])
        queue = []
        for runner_id in ranked_runner_ids:
            if runner_id and runner_id not in excluded and runner_id not in queue:
                queue.append(runner_id)
        if not queue:
            return self._reject('offer', engagement_id, Rejection.NOT_OFFERED, engagement)

        updates = {'rankedRunnerIds': queue, 'currentQueueIndex': 0}
        updates.update(open_offer_updates(queue[0], self.clock()))
        guard = Guard(
            equals={'status': EngagementStatus.PENDING},
            is_null=['runnerId', 'notifiedRunnerId']
        )
        updated = self.store.conditional_update(engagement_id, updates, guard)
        if updated is None:
            return self._reject('offer', engagement_id, Rejection.NO_LONGER_ELIGIBLE, engagement)

        logger.info(f"Offered {self.kind} {engagement_id} to runner {queue[0]} ({len(queue)} ranked)")
        return OfferResult.success(updated, notifiedRunnerId=queue[0])

    def decline(self, engagement_id: str, runner_id: str) -> OfferResult:
        """The offered runner passes; the offer moves on without waiting for the deadline."""
        if not engagement_id:
            raise ValueError("engagement_id is required")
        if not runner_id:
            return self._reject('decline', engagement_id, Rejection.UNAUTHENTICATED)

        engagement = self.store.get(engagement_id)
        if not engagement:
            return self._reject('decline', engagement_id, Rejection.NOT_FOUND)
        if (engagement.get('status') != EngagementStatus.PENDING
                or engagement.get('runnerId') is not None
                or engagement.get('notifiedRunnerId') != runner_id):
            return self._reject('decline', engagement_id, Rejection.NOT_OFFERED, engagement)

        updates, action, next_runner_id = advance_offer(engagement, runner_id, self.clock(), 'declinedRunnerIds')
        guard = Guard(
            equals={
                'status': EngagementStatus.PENDING,
                'notifiedRunnerId': runner_id,
                'notifiedExpiresAt': engagement.get('notifiedExpiresAt'),
            },
            is_null=['runnerId']
        )
        updated = self.store.conditional_update(engagement_id, updates, guard)
        if updated is None:
            return self._reject('decline', engagement_id, Rejection.NO_LONGER_ELIGIBLE, engagement)

        self._cancel_timer(engagement_id)
        if action == TimeoutAction.RELEASED:
            notify_caller_released(self.kind, updated)
        logger.info(f"Runner {runner_id} declined {self.kind} {engagement_id}: {action}")
        return OfferResult.success(updated, action=action, nextRunnerId=next_runner_id)

    def create(self, requester_id: str, title: str, fields: Optional[Dict[str, Any]] = None) -> OfferResult:
        """Post a new pending engagement; createdAt is stamped here, never by the client."""
        if not requester_id:
            return self._reject('create', None, Rejection.UNAUTHENTICATED)

        item = dict(fields or {})
        # runnerId stays absent until accept; RunnerIndex rejects a NULL key
        item.pop('runnerId', None)
        item.update({
            'engagementId': str(uuid.uuid4()),
            'kind': self.kind,
            'callerId': requester_id,
            'title': title,
            'status': EngagementStatus.PENDING,
            'createdAt': self.clock(),
        })
        if not self.store.insert(item):
            raise StoreUnavailable(f"engagement id collision for {item['engagementId']}")

        logger.info(f"Caller {requester_id} created {self.kind} {item['engagementId']}")
        return OfferResult.success(item)
