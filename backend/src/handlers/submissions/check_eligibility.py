"""
Tell a worker whether they can submit evidence for a task today.
GET /worker/tasks/{taskId}/eligibility?timezone=Asia/Manila
"""
from shared.auth import get_user_sub, get_user_timezone, is_worker
from shared.gate import SubmissionGate
from shared.ledger import VerificationLedger
from shared.logging import log_event
from shared.utils import error_response, format_response, get_path_param, get_query_param

ledger = VerificationLedger()


def handler(event, context):
    log_event(event)

    worker_id = get_user_sub(event)
    if not worker_id or not is_worker(event):
        return format_response(403, {'message': 'Worker access required'})

    task_id = get_path_param(event, 'taskId')
    tz_name = get_query_param(event, 'timezone') or get_user_timezone(event)

    try:
        decision = SubmissionGate(ledger).check(task_id, worker_id, tz_name=tz_name)
        return format_response(200, decision.to_dict())
    except Exception as e:
        return error_response(e)
