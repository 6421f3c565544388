"""
Configuration module for Lambda handlers.
Loads all environment variables needed by the offer coordinator.
"""
import os


class Config:
    """Centralized configuration from environment variables."""
    
    # AWS Region
    AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
    
    # DynamoDB Tables
    COMMISSIONS_TABLE = os.environ.get('COMMISSIONS_TABLE', 'commission')
    ERRANDS_TABLE = os.environ.get('ERRANDS_TABLE', 'errand')
    USERS_TABLE = os.environ.get('USERS_TABLE', 'users')
    CONVERSATIONS_TABLE = os.environ.get('CONVERSATIONS_TABLE', 'conversations')
    MESSAGES_TABLE = os.environ.get('MESSAGES_TABLE', 'messages')
    
    # SQS Queues
    CALLER_NOTIFICATIONS_QUEUE_URL = os.environ.get('CALLER_NOTIFICATIONS_QUEUE_URL', '')
    
    # S3 Buckets
    MEDIA_BUCKET = os.environ.get('MEDIA_BUCKET', '')
    
    # Timeout procedures (Lambda function names)
    COMMISSION_TIMEOUT_FUNCTION = os.environ.get('COMMISSION_TIMEOUT_FUNCTION', 'handle_commission_timeout')
    ERRAND_TIMEOUT_FUNCTION = os.environ.get('ERRAND_TIMEOUT_FUNCTION', 'handle_errand_timeout')
    PROCEDURE_MAX_ATTEMPTS = int(os.environ.get('PROCEDURE_MAX_ATTEMPTS', '3'))
    
    # Offer lifecycle windows
    CANCEL_WINDOW_SECONDS = int(os.environ.get('CANCEL_WINDOW_SECONDS', '30'))
    NOTIFICATION_WINDOW_SECONDS = int(os.environ.get('NOTIFICATION_WINDOW_SECONDS', '60'))
    SWEEP_BATCH_LIMIT = int(os.environ.get('SWEEP_BATCH_LIMIT', '50'))

    def table_for(self, kind: str) -> str:
        """DynamoDB table holding engagements of the given kind."""
        if kind == 'commission':
            return self.COMMISSIONS_TABLE
        if kind == 'errand':
            return self.ERRANDS_TABLE
        raise ValueError(f"Unknown engagement kind: {kind}")

    def timeout_function_for(self, kind: str) -> str:
        """Name of the server-side timeout procedure for the given kind."""
        if kind == 'commission':
            return self.COMMISSION_TIMEOUT_FUNCTION
        if kind == 'errand':
            return self.ERRAND_TIMEOUT_FUNCTION
        raise ValueError(f"Unknown engagement kind: {kind}")


config = Config()
