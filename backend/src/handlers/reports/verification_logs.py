"""
Verification logs for a project, grouped per worker.
GET /engineer/projects/{projectId}/verification-logs?status=pending
"""
from shared.aggregation import group_by_submitter
from shared.auth import get_user_sub, is_engineer
from shared.ledger import VerificationLedger
from shared.logging import log_event
from shared.models import SubmissionStatus
from shared.s3_utils import generate_presigned_url
from shared.utils import error_response, format_response, get_path_param, get_query_param

ledger = VerificationLedger()

VALID_STATUS_FILTERS = (SubmissionStatus.PENDING, SubmissionStatus.APPROVED, SubmissionStatus.REJECTED)


def _serialize_group(group: dict) -> dict:
    submissions = []
    for submission in group['submissions']:
        data = submission.to_dict()
        data['photoUrl'] = generate_presigned_url(submission.photo_ref)
        submissions.append(data)
    return {**group, 'submissions': submissions}


def handler(event, context):
    log_event(event)

    if not get_user_sub(event) or not is_engineer(event):
        return format_response(403, {'message': 'Engineer access required'})

    project_id = get_path_param(event, 'projectId')
    if not project_id:
        return format_response(400, {'message': 'Missing projectId'})

    status = get_query_param(event, 'status')
    if status and status not in VALID_STATUS_FILTERS:
        return format_response(400, {'message': f"Invalid status filter '{status}'"})

    try:
        submissions = ledger.list_for_project(project_id)
        if status:
            submissions = [s for s in submissions if s.status == status]

        groups = group_by_submitter(submissions)
        return format_response(200, {
            'workers': [_serialize_group(g) for g in groups],
            'count': len(submissions)
        })
    except Exception as e:
        return error_response(e)
