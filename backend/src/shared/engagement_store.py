"""
Engagement table access (commission and errand tables share one shape).
"""
from typing import Any, Dict, List, Optional
from boto3.dynamodb.conditions import Attr, Key
from . import dynamo
from .config import config
from .dynamo import Guard
from .models import EngagementStatus

RUNNER_INDEX = 'RunnerIndex'


class EngagementStore:
    """Reads and guarded writes against one engagement table."""

    def __init__(self, kind: str, table_name: Optional[str] = None):
        self.kind = kind
        self.table_name = table_name or config.table_for(kind)

    def get(self, engagement_id: str) -> Optional[Dict[str, Any]]:
        return dynamo.get_item(self.table_name, {'engagementId': engagement_id})

    def insert(self, item: Dict[str, Any]) -> bool:
        """Create an engagement; False if the id is already taken."""
        return dynamo.put_item(self.table_name, item, Guard(is_null=['engagementId']))

    def find_active(
        self,
        runner_id: str,
        caller_id: Optional[str] = None,
        exclude_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Active engagements (in_progress or legacy accepted) held by a runner,
        optionally only those with one caller, excluding one engagement.
        """
        filter_expression = Attr('status').is_in(list(EngagementStatus.ACTIVE))
        if caller_id is not None:
            filter_expression = filter_expression & Attr('callerId').eq(caller_id)
        if exclude_id is not None:
            filter_expression = filter_expression & Attr('engagementId').ne(exclude_id)

        return dynamo.query(
            self.table_name,
            index_name=RUNNER_INDEX,
            key_condition=Key('runnerId').eq(runner_id),
            filter_expression=filter_expression,
            limit=1
        )

    def conditional_update(
        self,
        engagement_id: str,
        updates: Dict[str, Any],
        guard: Guard
    ) -> Optional[Dict[str, Any]]:
        return dynamo.conditional_update(self.table_name, {'engagementId': engagement_id}, updates, guard)

    def find_expired_notifications(self, now: int, limit: int) -> List[Dict[str, Any]]:
        """Pending, unassigned engagements whose offer deadline has passed, oldest first."""
        # In production, use a sparse GSI on notifiedExpiresAt for efficiency
        filter_expression = (
            Attr('status').eq(EngagementStatus.PENDING)
            & Attr('runnerId').not_exists()
            & Attr('notifiedRunnerId').attribute_type('S')
            & Attr('notifiedExpiresAt').lte(now)
        )
        items = dynamo.scan(self.table_name, filter_expression=filter_expression)
        items.sort(key=lambda item: item['notifiedExpiresAt'])
        return items[:limit]
