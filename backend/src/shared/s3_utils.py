"""
S3 utility functions for media operations (chat attachments, ID images, avatars).
"""
import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from .config import config
from .errors import StoreUnavailable
from .logging import logger

# S3 client with custom signature version for presigned URLs
s3_client = boto3.client(
    's3',
    region_name=config.AWS_REGION,
    config=BotoConfig(signature_version='s3v4')
)


def get_public_url(path: str, bucket_name: str = None) -> str:
    """Public URL of an object in the media bucket."""
    bucket = bucket_name or config.MEDIA_BUCKET
    if not bucket:
        raise ValueError("No MEDIA_BUCKET configured")
    return f"https://{bucket}.s3.{config.AWS_REGION}.amazonaws.com/{path.lstrip('/')}"


def upload(data: bytes, path: str, content_type: str, bucket_name: str = None) -> str:
    """
    Upload bytes to the media bucket.
    
    Args:
        data: Object content
        path: Object key (e.g., 'chat/<conversation>/<uuid>.jpg')
        content_type: MIME type stored with the object
        bucket_name: Optional bucket name, defaults to config.MEDIA_BUCKET
        
    Returns:
        Public URL of the uploaded object
    """
    bucket = bucket_name or config.MEDIA_BUCKET
    if not bucket:
        raise ValueError("No MEDIA_BUCKET configured")
    
    key = path.lstrip('/')
    try:
        s3_client.put_object(Bucket=bucket, Key=key, Body=data, ContentType=content_type)
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error uploading {key} to {bucket}: {e}")
        raise StoreUnavailable(f"upload of {key} failed") from e
    
    logger.info(f"Uploaded {len(data)} bytes to {key}")
    return get_public_url(key, bucket)


def generate_presigned_url(
    s3_key: str,
    expiration: int = 3600,
    bucket_name: str = None
) -> str:
    """
    Generate a presigned URL for S3 object download.
    
    Args:
        s3_key: The S3 object key (e.g., 'media/uuid.jpg')
        expiration: URL expiration time in seconds (default 1 hour)
        bucket_name: Optional bucket name, defaults to config.MEDIA_BUCKET
        
    Returns:
        Presigned URL string or original key if generation fails
    """
    if not s3_key:
        return s3_key
    
    bucket = bucket_name or config.MEDIA_BUCKET
    if not bucket:
        logger.warning("No MEDIA_BUCKET configured, returning original key")
        return s3_key
    
    # External URLs are returned as-is
    if s3_key.startswith('http://') or s3_key.startswith('https://'):
        return s3_key
    
    try:
        url = s3_client.generate_presigned_url(
            'get_object',
            Params={
                'Bucket': bucket,
                'Key': s3_key
            },
            ExpiresIn=expiration
        )
        logger.info(f"Generated presigned URL for {s3_key}")
        return url
        
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error generating presigned URL for {s3_key}: {e}")
        return s3_key
