"""
Logging utilities for Lambda handlers.
"""
import logging
import json
from .config import config

# Event keys worth keeping when logging an API Gateway / EventBridge event
EVENT_FIELDS = ('resource', 'httpMethod', 'path', 'pathParameters', 'source', 'detail-type', 'engagementId', 'runnerId')

logger = logging.getLogger('buddy-offers')
logger.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

# Add handler if not already configured
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logger.addHandler(handler)


def log_event(event: dict) -> None:
    """Log the routing part of an incoming event plus the caller's sub; body, headers and tokens are dropped."""
    try:
        safe_event = {k: event[k] for k in EVENT_FIELDS if k in event}
        claims = ((event.get('requestContext') or {}).get('authorizer') or {}).get('claims') or {}
        if claims.get('sub'):
            safe_event['sub'] = claims['sub']
        logger.info(f"Lambda event: {json.dumps(safe_event, default=str)}")
    except Exception as e:
        logger.warning(f"Could not log event: {e}")
