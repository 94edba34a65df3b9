"""
SQS utility functions for message operations.
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
    Send a single message to SQS queue.
    
    Args:
        queue_url: SQS queue URL
        message_body: Message body as dict (will be JSON serialized)
        
    Returns:
        True if sent successfully, False otherwise
    """
    if not queue_url:
        logger.warning("No queue URL configured, message dropped")
        return False

    try:
        sqs.send_message(
            QueueUrl=queue_url,
            MessageBody=json.dumps(message_body, default=str)
        )
        logger.info(f"Message sent to {queue_url}")
        return True
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error sending message to SQS: {e}")
        return False
