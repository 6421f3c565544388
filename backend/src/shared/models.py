"""
Data models and status constants for the offer lifecycle.
Based on the engagement lifecycle: Pending → (Notified) → In progress → Completed, or Pending → Cancelled
"""


class EngagementKind:
    """Kinds of engagements brokered between callers and runners."""
    COMMISSION = 'commission'
    ERRAND = 'errand'

    ALL = (COMMISSION, ERRAND)


class EngagementStatus:
    """Engagement lifecycle statuses."""
    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    ACCEPTED = 'accepted'  # Legacy alias of IN_PROGRESS, read but never written
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'

    ACTIVE = (IN_PROGRESS, ACCEPTED)


class InvoiceStatus:
    """Invoice sub-state initialized when a runner is assigned."""
    DRAFT = 'draft'
    SENT = 'sent'
    ACCEPTED = 'accepted'
    DECLINED = 'declined'


class Rejection:
    """Expected, non-exceptional reasons an offer operation did not apply."""
    ALREADY_ACTIVE = 'already_active'
    TAKEN_BY_OTHER = 'taken_by_other'
    NOT_FOUND = 'not_found'
    UNAUTHENTICATED = 'unauthenticated'
    WINDOW_EXPIRED = 'window_expired'
    NO_LONGER_ELIGIBLE = 'no_longer_eligible'
    NOT_REQUESTER = 'not_requester'
    NOT_OFFERED = 'not_offered'


class TimeoutReason:
    """No-op results of the timeout procedure (already resolved elsewhere)."""
    NOT_FOUND = 'not_found'
    NOT_PENDING = 'not_pending'
    ALREADY_ACCEPTED = 'already_accepted'
    NOT_NOTIFIED_TO_RUNNER = 'not_notified_to_runner'
    NOT_EXPIRED_YET = 'not_expired_yet'
    UPDATE_FAILED_CONCURRENT = 'update_failed_concurrent'


class TimeoutAction:
    """What the timeout procedure did with the engagement."""
    REASSIGNED = 'reassigned'  # Offered to the next runner in the ranked queue
    RELEASED = 'released'      # Queue exhausted, back to the open pool


class MessageType:
    """Chat message types."""
    TEXT = 'text'
    SYSTEM = 'system'


class OfferResult:
    """
    Outcome of a coordinator operation.

    Business-rule rejections are returned here with ok=False and a
    Rejection reason instead of being raised.
    """

    def __init__(self, ok: bool, reason: str = None, engagement: dict = None, data: dict = None):
        self.ok = ok
        self.reason = reason
        self.engagement = engagement
        self.data = data or {}

    @classmethod
    def success(cls, engagement: dict = None, **data) -> 'OfferResult':
        return cls(True, engagement=engagement, data=data)

    @classmethod
    def rejected(cls, reason: str, engagement: dict = None, **data) -> 'OfferResult':
        return cls(False, reason=reason, engagement=engagement, data=data)

    def to_dict(self) -> dict:
        body = {'success': self.ok}
        if self.reason:
            body['reason'] = self.reason
        if self.engagement is not None:
            body['engagement'] = self.engagement
        body.update(self.data)
        return body

    def __repr__(self):
        return f"OfferResult(ok={self.ok!r}, reason={self.reason!r})"
