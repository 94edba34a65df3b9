"""
Configuration module for Lambda handlers.
Loads all environment variables needed by the verification service.
"""
import os


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Centralized configuration from environment variables."""
    
    # AWS Region
    AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')
    
    # DynamoDB Tables
    TASKS_TABLE = os.environ.get('TASKS_TABLE', '')
    PROJECTS_TABLE = os.environ.get('PROJECTS_TABLE', '')
    SUBMISSIONS_TABLE = os.environ.get('SUBMISSIONS_TABLE', '')
    SUBMISSION_LOCKS_TABLE = os.environ.get('SUBMISSION_LOCKS_TABLE', '')
    MATERIALS_TABLE = os.environ.get('MATERIALS_TABLE', '')
    EQUIPMENT_TABLE = os.environ.get('EQUIPMENT_TABLE', '')
    
    # SQS Queues
    NOTIFICATIONS_QUEUE_URL = os.environ.get('NOTIFICATIONS_QUEUE_URL', '')
    EFFECTS_RETRY_QUEUE_URL = os.environ.get('EFFECTS_RETRY_QUEUE_URL', '')
    EFFECT_MAX_ATTEMPTS = int(os.environ.get('EFFECT_MAX_ATTEMPTS', '5'))
    
    # S3 Buckets
    MEDIA_BUCKET = os.environ.get('MEDIA_BUCKET', '')
    PHOTO_URL_EXPIRATION = int(os.environ.get('PHOTO_URL_EXPIRATION', '3600'))
    
    # Classifier (SageMaker endpoint hosting the status model)
    CLASSIFIER_ENDPOINT_NAME = os.environ.get('CLASSIFIER_ENDPOINT_NAME', '')
    HIGH_CONFIDENCE_THRESHOLD = float(os.environ.get('HIGH_CONFIDENCE_THRESHOLD', '0.80'))
    RELIABLE_CONFIDENCE_THRESHOLD = float(os.environ.get('RELIABLE_CONFIDENCE_THRESHOLD', '0.70'))
    AUTO_APPROVE_RELIABLE_PREDICTIONS = _env_bool('AUTO_APPROVE_RELIABLE_PREDICTIONS')
    
    # Inventory
    DEFAULT_LOW_STOCK_THRESHOLD = int(os.environ.get('DEFAULT_LOW_STOCK_THRESHOLD', '10'))
    
    # Daily submission gate
    DEFAULT_TIMEZONE = os.environ.get('DEFAULT_TIMEZONE', 'UTC')
    SUBMISSION_LOCK_TTL_SECONDS = int(os.environ.get('SUBMISSION_LOCK_TTL_SECONDS', str(3 * 24 * 3600)))


config = Config()
