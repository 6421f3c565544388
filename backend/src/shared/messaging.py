"""
System chat messages sent after an engagement is accepted.
"""
import uuid
from typing import Any, Dict, Optional
from . import dynamo
from .config import config
from .dynamo import Guard
from .models import EngagementKind, MessageType
from .utils import now_ms


def display_name(user: Optional[Dict[str, Any]], fallback: str) -> str:
    if not user:
        return fallback
    name = f"{user.get('firstName') or ''} {user.get('lastName') or ''}".strip()
    return name or fallback


def conversation_id_for(user_a: str, user_b: str) -> str:
    """Deterministic id so both participants resolve the same conversation."""
    first, second = sorted([user_a, user_b])
    return f"conv#{first}#{second}"


def get_or_create_conversation(user_a: str, user_b: str, now: int) -> str:
    conversation_id = conversation_id_for(user_a, user_b)
    dynamo.put_item(
        config.CONVERSATIONS_TABLE,
        {
            'conversationId': conversation_id,
            'user1Id': user_a,
            'user2Id': user_b,
            'createdAt': now,
        },
        Guard(is_null=['conversationId'])
    )
    return conversation_id


def send_acceptance_message(engagement: Dict[str, Any], kind: str = EngagementKind.COMMISSION,
                            now: Optional[int] = None) -> Dict[str, Any]:
    """
    Post 'Commission "<title>" accepted by <runner>' into the runner/caller conversation.
    Raises on store failures; callers treat this as best-effort.
    """
    now = now_ms() if now is None else now
    runner_id = engagement['runnerId']
    caller_id = engagement['callerId']
    label = 'Errand' if kind == EngagementKind.ERRAND else 'Commission'

    runner = dynamo.get_item(config.USERS_TABLE, {'userId': runner_id})
    runner_name = display_name(runner, 'BuddyRunner')
    title = (engagement.get('title') or '').strip() or label

    conversation_id = get_or_create_conversation(runner_id, caller_id, now)
    message = {
        'messageId': str(uuid.uuid4()),
        'conversationId': conversation_id,
        'senderId': runner_id,
        'messageText': f'{label} "{title}" accepted by {runner_name}',
        'messageType': MessageType.SYSTEM,
        'createdAt': now,
    }
    dynamo.put_item(config.MESSAGES_TABLE, message)

    dynamo.update_item(
        config.CONVERSATIONS_TABLE,
        {'conversationId': conversation_id},
        'SET lastMessageAt = :ts, updatedAt = :ts',
        {':ts': now}
    )
    return message
