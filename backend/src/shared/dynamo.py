"""
DynamoDB utility functions.

Failures are logged and re-raised as StorageError, except conditional-check
failures, which surface as the underlying ClientError so callers can map them to
domain errors (see is_conditional_failure).
"""
import boto3
from typing import List, Dict, Any, Optional
from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError
from .config import config
from .errors import StorageError
from .logging import logger

dynamodb = boto3.resource('dynamodb', region_name=config.AWS_REGION)

_serializer = TypeSerializer()

CONDITIONAL_FAILURE_CODES = ('ConditionalCheckFailedException', 'TransactionCanceledException')


def is_conditional_failure(error: Exception) -> bool:
    """True if a ClientError was caused by a failed ConditionExpression."""
    if not isinstance(error, ClientError):
        return False
    code = error.response.get('Error', {}).get('Code')
    if code == 'ConditionalCheckFailedException':
        return True
    if code == 'TransactionCanceledException':
        reasons = error.response.get('CancellationReasons') or []
        # Older botocore versions omit reasons; treat the cancel as a condition failure
        return not reasons or any(r.get('Code') == 'ConditionalCheckFailed' for r in reasons)
    return False


def serialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a plain item to the typed format used by the low-level client."""
    return {k: _serializer.serialize(v) for k, v in item.items()}


def get_item(table_name: str, key: Dict[str, Any], consistent: bool = False) -> Optional[Dict[str, Any]]:
    """Get a single item from DynamoDB."""
    try:
        table = dynamodb.Table(table_name)
        response = table.get_item(Key=key, ConsistentRead=consistent)
        return response.get('Item')
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error getting item from {table_name}: {e}")
        raise StorageError(f"Failed to read from {table_name}") from e


def query(
    table_name: str,
    key_condition: Any,
    index_name: Optional[str] = None,
    filter_expression: Optional[Any] = None,
    limit: Optional[int] = None,
    scan_forward: bool = True
) -> List[Dict[str, Any]]:
    """
    Query DynamoDB table or index, following pagination.

    Args:
        table_name: Name of the DynamoDB table
        key_condition: Key condition expression
        index_name: Optional GSI name
        filter_expression: Optional filter expression
        limit: Max items to return
        scan_forward: True for ascending, False for descending

    Returns:
        List of items matching the query
    """
    try:
        table = dynamodb.Table(table_name)

        query_params = {
            'KeyConditionExpression': key_condition,
            'ScanIndexForward': scan_forward
        }

        if index_name:
            query_params['IndexName'] = index_name
        if filter_expression is not None:
            query_params['FilterExpression'] = filter_expression
        if limit:
            query_params['Limit'] = limit

        items = []
        while True:
            response = table.query(**query_params)
            items.extend(response.get('Items', []))
            last_key = response.get('LastEvaluatedKey')
            if not last_key or (limit and len(items) >= limit):
                break
            query_params['ExclusiveStartKey'] = last_key

        return items[:limit] if limit else items

    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error querying {table_name}: {e}")
        raise StorageError(f"Failed to query {table_name}") from e


def update_item(
    table_name: str,
    key: Dict[str, Any],
    update_expression: str,
    expression_values: Dict[str, Any],
    expression_names: Optional[Dict[str, str]] = None,
    condition_expression: Optional[str] = None,
    return_values: str = 'NONE'
) -> Dict[str, Any]:
    """
    Update an item in DynamoDB.

    Returns:
        The 'Attributes' requested by return_values (empty dict for NONE)

    Raises:
        ClientError: The condition expression failed
        StorageError: Any other failure
    """
    try:
        table = dynamodb.Table(table_name)

        params = {
            'Key': key,
            'UpdateExpression': update_expression,
            'ExpressionAttributeValues': expression_values,
            'ReturnValues': return_values
        }

        if expression_names:
            params['ExpressionAttributeNames'] = expression_names
        if condition_expression:
            params['ConditionExpression'] = condition_expression

        response = table.update_item(**params)
        return response.get('Attributes', {})

    except ClientError as e:
        if is_conditional_failure(e):
            raise
        logger.error(f"Error updating item in {table_name}: {e}")
        raise StorageError(f"Failed to update {table_name}") from e
    except BotoCoreError as e:
        logger.error(f"Error updating item in {table_name}: {e}")
        raise StorageError(f"Failed to update {table_name}") from e


def transact_write(transact_items: List[Dict[str, Any]]) -> None:
    """
    Run a TransactWriteItems call.

    Raises:
        ClientError: The transaction was cancelled by a failed condition
        StorageError: Any other failure
    """
    try:
        dynamodb.meta.client.transact_write_items(TransactItems=transact_items)
    except ClientError as e:
        if is_conditional_failure(e):
            raise
        logger.error(f"Transaction error: {e}")
        raise StorageError('Transaction failed') from e
    except BotoCoreError as e:
        logger.error(f"Transaction error: {e}")
        raise StorageError('Transaction failed') from e
