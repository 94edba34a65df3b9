"""
Common utility functions for Lambda handlers.
"""
import base64
import binascii
import json
import os
import tempfile
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterator
from .errors import (
    EligibilityDenied,
    InvalidStateTransition,
    NotClassifierEligible,
    SitePulseError,
    StorageError,
    SubmissionNotFound,
    UploadFailure,
    ValidationError,
)
from .logging import logger

# Domain errors -> HTTP status codes
ERROR_STATUS_CODES = (
    (EligibilityDenied, 409),
    (ValidationError, 400),
    (NotClassifierEligible, 400),
    (SubmissionNotFound, 404),
    (InvalidStateTransition, 409),
    (UploadFailure, 502),
    (StorageError, 503),
)


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal types from DynamoDB."""
    
    def default(self, o):
        if isinstance(o, Decimal):
            # Convert to int if it's a whole number, otherwise float
            if o % 1 == 0:
                return int(o)
            return float(o)
        return super().default(o)


def format_response(
    status_code: int,
    body: Any,
    headers: Dict[str, str] = None
) -> Dict[str, Any]:
    """
    Format a standard API Gateway response with CORS headers.
    
    Args:
        status_code: HTTP status code
        body: Response body (will be JSON serialized)
        headers: Additional headers to include
        
    Returns:
        API Gateway response dict
    """
    default_headers = {
        'Access-Control-Allow-Origin': '*',
        'Access-Control-Allow-Credentials': True,
        'Content-Type': 'application/json'
    }
    
    if headers:
        default_headers.update(headers)
    
    return {
        'statusCode': status_code,
        'headers': default_headers,
        'body': json.dumps(body, cls=DecimalEncoder)
    }


def error_response(error: Exception) -> Dict[str, Any]:
    """Map an exception raised by the core to an API response."""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            body = {'message': str(error)}
            if isinstance(error, EligibilityDenied):
                body['reason'] = error.reason
            return format_response(status_code, body)

    if isinstance(error, SitePulseError):
        logger.error(f"Unhandled domain error: {error}")
    else:
        logger.exception(f"Unexpected error: {error}")
    return format_response(500, {'message': 'Internal Server Error'})


def parse_body(event: dict) -> dict:
    """
    Safely parse JSON body from API Gateway event.
    
    Args:
        event: API Gateway Lambda proxy event
        
    Returns:
        Parsed body dict or empty dict if invalid
    """
    try:
        body = event.get('body', '{}')
        if isinstance(body, str):
            return json.loads(body)
        return body or {}
    except (json.JSONDecodeError, TypeError):
        return {}


def get_path_param(event: dict, param_name: str) -> str:
    """Extract path parameter from event."""
    try:
        return event['pathParameters'][param_name]
    except (KeyError, TypeError):
        return None


def get_query_param(event: dict, param_name: str, default: str = None) -> str:
    """Extract query string parameter from event."""
    params = event.get('queryStringParameters') or {}
    return params.get(param_name, default)


@contextmanager
def decoded_photo(photo_b64: str) -> Iterator[str]:
    """
    Write a base64 photo from a request body to a temporary file.

    The file only lives for the duration of the request; abandoning the flow
    leaves nothing behind.

    Yields:
        Path of the temporary JPEG
    """
    if not photo_b64:
        raise ValidationError('photo is required')
    try:
        data = base64.b64decode(photo_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError('photo must be base64 encoded') from e

    fd, path = tempfile.mkstemp(suffix='.jpg')
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        yield path
    finally:
        os.remove(path)
