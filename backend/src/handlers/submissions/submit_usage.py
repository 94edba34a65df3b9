"""
Submit a material usage, equipment usage or damage report.
POST /worker/usage
Body: {
    "projectId": "...", "type": "material" | "equipment" | "damage",
    "itemId": "...", "itemName": "...", "quantity": 5, "unit": "bags",
    "notes": "...", "photo": "<base64 jpeg>", "taskId": "..."
}
"""
import math
from shared.auth import get_user_name, get_user_sub, is_worker
from shared.errors import ValidationError
from shared.ledger import VerificationLedger
from shared.logging import log_event
from shared.submission_flow import submit_usage_report
from shared.utils import decoded_photo, error_response, format_response, parse_body

ledger = VerificationLedger()


def _quantity(value):
    if value is None:
        return None
    try:
        quantity = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError('quantity must be a number') from e
    if not math.isfinite(quantity):
        raise ValidationError('quantity must be a finite number')
    return quantity


def handler(event, context):
    log_event(event)

    worker_id = get_user_sub(event)
    if not worker_id or not is_worker(event):
        return format_response(403, {'message': 'Worker access required'})

    body = parse_body(event)
    project_id = body.get('projectId')
    if not project_id:
        return format_response(400, {'message': 'Missing projectId'})

    try:
        quantity = _quantity(body.get('quantity'))
        with decoded_photo(body.get('photo')) as photo_path:
            result = submit_usage_report(
                ledger,
                submitter_id=worker_id,
                project_id=project_id,
                kind=body.get('type'),
                item_id=body.get('itemId'),
                photo_path=photo_path,
                quantity=quantity,
                unit=body.get('unit'),
                item_name=body.get('itemName'),
                notes=body.get('notes'),
                task_id=body.get('taskId'),
                submitter_name=get_user_name(event)
            )

        return format_response(201, result.to_dict())

    except Exception as e:
        return error_response(e)
