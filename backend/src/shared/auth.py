"""
Authentication utilities for extracting user info from Cognito tokens.
"""
from typing import Optional


def _claims(event: dict) -> dict:
    try:
        return event['requestContext']['authorizer']['claims'] or {}
    except (KeyError, TypeError):
        return {}


def get_user_sub(event: dict) -> Optional[str]:
    """
    Extract user sub (unique ID) from Cognito authorizer claims.
    
    Args:
        event: API Gateway Lambda proxy event
        
    Returns:
        User sub string or None if not authenticated
    """
    return _claims(event).get('sub')


def get_user_name(event: dict) -> Optional[str]:
    """Extract display name from Cognito claims."""
    return _claims(event).get('name')


def get_user_timezone(event: dict) -> Optional[str]:
    """Extract the user's IANA timezone (custom claim) if present."""
    return _claims(event).get('custom:timezone') or _claims(event).get('zoneinfo')


def get_user_groups(event: dict) -> list:
    """Extract user groups (engineer, worker) from Cognito claims."""
    groups = _claims(event).get('cognito:groups', '')
    if isinstance(groups, str):
        return groups.split(',') if groups else []
    return groups or []


def is_engineer(event: dict) -> bool:
    """Check if user belongs to engineer group."""
    return 'engineer' in get_user_groups(event)


def is_worker(event: dict) -> bool:
    """Check if user belongs to worker group."""
    return 'worker' in get_user_groups(event)
