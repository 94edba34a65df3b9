"""
Submit photo evidence of task progress.
POST /worker/tasks/{taskId}/photos
Body: { "photo": "<base64 jpeg>", "notes": "...", "timezone": "Asia/Manila" }
"""
from shared.ai_services import load_sagemaker_classifier
from shared.auth import get_user_name, get_user_sub, get_user_timezone, is_worker
from shared.inference import ClassifierHandle, StatusInferenceEngine
from shared.ledger import VerificationLedger
from shared.logging import log_event, logger
from shared.submission_flow import submit_task_photo
from shared.tasks import get_task
from shared.utils import decoded_photo, error_response, format_response, get_path_param, parse_body

ledger = VerificationLedger()
engine = StatusInferenceEngine(ClassifierHandle(load_sagemaker_classifier))


def handler(event, context):
    log_event(event)

    worker_id = get_user_sub(event)
    if not worker_id or not is_worker(event):
        return format_response(403, {'message': 'Worker access required'})

    task_id = get_path_param(event, 'taskId')
    body = parse_body(event)

    try:
        task = get_task(task_id)
        if not task:
            return format_response(404, {'message': 'Task not found'})

        with decoded_photo(body.get('photo')) as photo_path:
            result = submit_task_photo(
                ledger,
                engine,
                task,
                worker_id,
                photo_path,
                submitter_name=get_user_name(event),
                notes=body.get('notes'),
                tz_name=body.get('timezone') or get_user_timezone(event)
            )

        logger.info(f"Task photo {result.submission.submission_id} submitted for task {task_id}")
        return format_response(201, result.to_dict())

    except Exception as e:
        return error_response(e)
