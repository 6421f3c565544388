"""
Client-side offer countdowns.

A runner's app keeps at most one timer per engagement id, aimed at the
server-recorded notifiedExpiresAt rather than a locally computed duration.
When it fires it calls the idempotent timeout procedure; if it never fires
(app closed, device asleep) the scheduled sweep resolves the offer instead.
"""
import threading
from typing import Any, Callable, Dict, Optional
from .errors import ProcedureError
from .logging import logger
from .models import EngagementStatus
from .utils import now_ms, to_int


class NotificationTimers:
    """Per-engagement timers keyed by id, deduplicated by (runner, deadline)."""

    def __init__(self, resolve: Callable[[str, str], Any], clock: Callable[[], int] = now_ms):
        self._resolve = resolve
        self._clock = clock
        self._lock = threading.Lock()
        self._timers: Dict[str, threading.Timer] = {}
        self._scheduled: Dict[str, tuple] = {}

    def sync(self, engagement: Dict[str, Any], runner_id: str) -> bool:
        """
        Reconcile the timer for one engagement with its latest state.
        Call on every update; repeated calls for the same offer are no-ops.

        Returns:
            True if the offer is live for `runner_id` (timer running or already resolved)
        """
        engagement_id = engagement.get('engagementId')
        deadline = to_int(engagement.get('notifiedExpiresAt'))
        offered = (
            engagement.get('status') == EngagementStatus.PENDING
            and engagement.get('runnerId') is None
            and engagement.get('notifiedRunnerId') == runner_id
            and deadline is not None
        )
        if not offered:
            self.cancel(engagement_id)
            return False

        marker = (runner_id, deadline)
        with self._lock:
            if self._scheduled.get(engagement_id) == marker:
                return True
            self._cancel_locked(engagement_id)
            self._scheduled[engagement_id] = marker

            remaining_ms = deadline - self._clock()
            if remaining_ms > 0:
                timer = threading.Timer(remaining_ms / 1000.0, self._fire, args=(engagement_id, runner_id, marker))
                timer.daemon = True
                self._timers[engagement_id] = timer
                timer.start()
                return True

        # Deadline already passed
        self._fire(engagement_id, runner_id, marker)
        return True

    def cancel(self, engagement_id: Optional[str]) -> None:
        with self._lock:
            self._cancel_locked(engagement_id)

    def cancel_all(self) -> None:
        with self._lock:
            for engagement_id in list(self._scheduled):
                self._cancel_locked(engagement_id)

    def scheduled(self, engagement_id: str) -> bool:
        """True while a countdown is pending for the engagement."""
        with self._lock:
            return engagement_id in self._timers

    def _cancel_locked(self, engagement_id: Optional[str]) -> None:
        timer = self._timers.pop(engagement_id, None)
        if timer is not None:
            timer.cancel()
        self._scheduled.pop(engagement_id, None)

    def _fire(self, engagement_id: str, runner_id: str, marker: tuple) -> None:
        with self._lock:
            if self._scheduled.get(engagement_id) != marker:
                return
            self._timers.pop(engagement_id, None)

        try:
            result = self._resolve(engagement_id, runner_id)
            logger.info(f"Offer timeout for {engagement_id} handled by client: {result}")
        except ProcedureError as e:
            # Transient; forget the marker so the next sync of this row retries
            with self._lock:
                if self._scheduled.get(engagement_id) == marker:
                    self._scheduled.pop(engagement_id, None)
            logger.warning(f"Offer timeout call for {engagement_id} failed, will retry on next sync: {e}")
        except Exception as e:
            logger.warning(f"Offer timeout call for {engagement_id} failed, sweep will handle it: {e}")
