"""
S3 utility functions for photo evidence.
Uploads local captures and generates presigned URLs for private bucket access.
"""
import uuid
import boto3
from typing import Optional
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from .config import config
from .errors import UploadFailure
from .logging import logger

# S3 client with custom signature version for presigned URLs
s3_client = boto3.client(
    's3',
    region_name=config.AWS_REGION,
    config=BotoConfig(signature_version='s3v4')
)


def photo_key(prefix: str, project_id: str, owner_id: str) -> str:
    return f"{prefix}/{project_id}/{owner_id}/{uuid.uuid4().hex}.jpg"


def upload_photo(local_path: str, key: str, bucket_name: Optional[str] = None) -> str:
    """
    Upload a captured photo and return its stable reference.

    Args:
        local_path: Path of the captured JPEG
        key: Destination object key (see photo_key)
        bucket_name: Optional bucket name, defaults to config.MEDIA_BUCKET

    Returns:
        The object key, used as photoRef on the submission

    Raises:
        UploadFailure: The transfer did not complete
    """
    bucket = bucket_name or config.MEDIA_BUCKET
    if not bucket:
        raise UploadFailure('No MEDIA_BUCKET configured')

    try:
        s3_client.upload_file(
            local_path,
            bucket,
            key,
            ExtraArgs={'ContentType': 'image/jpeg'}
        )
        logger.info(f"Uploaded photo to s3://{bucket}/{key}")
        return key
    except (ClientError, BotoCoreError, OSError) as e:
        logger.error(f"Error uploading photo {local_path}: {e}")
        raise UploadFailure('Failed to upload photo') from e


def delete_photo(key: str, bucket_name: Optional[str] = None) -> None:
    """Remove an uploaded photo whose submission was never persisted."""
    bucket = bucket_name or config.MEDIA_BUCKET
    try:
        s3_client.delete_object(Bucket=bucket, Key=key)
        logger.info(f"Deleted orphaned photo {key}")
    except (ClientError, BotoCoreError) as e:
        logger.warning(f"Could not delete orphaned photo {key}: {e}")


def generate_presigned_url(
    s3_key: str,
    expiration: int = None,
    bucket_name: str = None
) -> str:
    """
    Generate a presigned URL for S3 object download.
    
    Args:
        s3_key: The S3 object key (e.g., 'task_photos/p1/t1/uuid.jpg')
        expiration: URL expiration time in seconds (default from config)
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
    
    if s3_key.startswith('http://') or s3_key.startswith('https://'):
        return s3_key
    
    try:
        url = s3_client.generate_presigned_url(
            'get_object',
            Params={
                'Bucket': bucket,
                'Key': s3_key
            },
            ExpiresIn=expiration or config.PHOTO_URL_EXPIRATION
        )
        return url
        
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error generating presigned URL for {s3_key}: {e}")
        return s3_key
