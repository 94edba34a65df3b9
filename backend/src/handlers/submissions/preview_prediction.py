"""
Preview the classifier's status prediction before the worker confirms upload.
POST /worker/tasks/{taskId}/photos/preview
Body: { "photo": "<base64 jpeg>" }
"""
from shared.ai_services import load_sagemaker_classifier
from shared.auth import get_user_sub, is_worker
from shared.inference import ClassifierHandle, StatusInferenceEngine
from shared.logging import log_event
from shared.submission_flow import preview_prediction
from shared.tasks import get_task
from shared.utils import decoded_photo, error_response, format_response, get_path_param, parse_body

# Loaded once per container; a failed load stays cached
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
            result = preview_prediction(engine, task, photo_path)

        return format_response(200, result)

    except Exception as e:
        return error_response(e)
