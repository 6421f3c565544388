"""
Caller notification events over SQS.
"""
import boto3
import json
from typing import Dict, Any
from botocore.exceptions import BotoCoreError, ClientError
from .config import config
from .logging import logger

sqs = boto3.client('sqs', region_name=config.AWS_REGION)


def send_message(queue_url: str, message_body: Dict[str, Any]) -> bool:
    """
    Publish one notification event. Best-effort: failures are logged, not raised.

    The body's 'event' field is copied to an 'event' message attribute so
    consumers can filter without parsing the body.

    Returns:
        True if sent, False if skipped (no queue configured) or failed
    """
    if not queue_url:
        logger.info(f"No queue configured, dropping {message_body.get('event')} notification")
        return False

    params = {
        'QueueUrl': queue_url,
        'MessageBody': json.dumps(message_body, default=str),
    }
    if message_body.get('event'):
        params['MessageAttributes'] = {
            'event': {'DataType': 'String', 'StringValue': message_body['event']}
        }

    try:
        sqs.send_message(**params)
        logger.info(f"Sent {message_body.get('event')} for {message_body.get('engagementId')}")
        return True
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error sending {message_body.get('event')} notification: {e}")
        return False
