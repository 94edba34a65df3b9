"""
List the calling worker's own submissions, newest first.
GET /worker/submissions?type=material
"""
from shared.auth import get_user_sub, is_worker
from shared.ledger import VerificationLedger
from shared.logging import log_event
from shared.models import SubmissionKind
from shared.s3_utils import generate_presigned_url
from shared.utils import error_response, format_response, get_query_param

ledger = VerificationLedger()

VALID_TYPE_FILTERS = (SubmissionKind.TASK_PHOTO,) + SubmissionKind.USAGE


def handler(event, context):
    log_event(event)

    worker_id = get_user_sub(event)
    if not worker_id or not is_worker(event):
        return format_response(403, {'message': 'Worker access required'})

    kind = get_query_param(event, 'type')
    if kind and kind not in VALID_TYPE_FILTERS:
        return format_response(400, {'message': f"Invalid type filter '{kind}'"})

    try:
        submissions = ledger.list_for_submitter(worker_id)
        if kind:
            submissions = [s for s in submissions if s.kind == kind]

        items = []
        for submission in submissions:
            data = submission.to_dict()
            data['photoUrl'] = generate_presigned_url(submission.photo_ref) if submission.photo_ref else None
            items.append(data)

        return format_response(200, {'submissions': items, 'count': len(items)})
    except Exception as e:
        return error_response(e)
