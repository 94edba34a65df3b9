"""
List submissions awaiting engineer review for a project.
GET /engineer/projects/{projectId}/submissions/pending
"""
from shared.auth import get_user_sub, is_engineer
from shared.inference import confidence_level, is_reliable, task_mismatch_warning
from shared.ledger import VerificationLedger
from shared.logging import log_event
from shared.s3_utils import generate_presigned_url
from shared.utils import error_response, format_response, get_path_param

ledger = VerificationLedger()


def _review_card(submission) -> dict:
    """Submission plus the classifier hints shown to the reviewer."""
    card = submission.to_dict()
    card['photoUrl'] = generate_presigned_url(submission.photo_ref)

    prediction = submission.prediction
    if prediction is not None:
        card['confidenceLevel'] = confidence_level(prediction.confidence)
        card['reliable'] = is_reliable(prediction.confidence, prediction.task_match)
        card['warning'] = task_mismatch_warning(prediction)
    return card


def handler(event, context):
    log_event(event)

    if not get_user_sub(event) or not is_engineer(event):
        return format_response(403, {'message': 'Engineer access required'})

    project_id = get_path_param(event, 'projectId')
    if not project_id:
        return format_response(400, {'message': 'Missing projectId'})

    try:
        pending = ledger.list_pending(project_id)
        return format_response(200, {
            'submissions': [_review_card(s) for s in pending],
            'count': len(pending)
        })
    except Exception as e:
        return error_response(e)
