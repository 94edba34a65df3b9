"""
Reject a pending submission.
POST /engineer/submissions/{submissionId}/reject
Body: { "reason": "Photo does not show the slab" }
"""
from shared.auth import get_user_sub, is_engineer
from shared.effects import EffectRunner
from shared.ledger import VerificationLedger
from shared.logging import log_event
from shared.review import ReviewWorkflow
from shared.utils import error_response, format_response, get_path_param, parse_body

ledger = VerificationLedger()
workflow = ReviewWorkflow(ledger)
runner = EffectRunner()


def handler(event, context):
    log_event(event)

    reviewer_id = get_user_sub(event)
    if not reviewer_id or not is_engineer(event):
        return format_response(403, {'message': 'Engineer access required'})

    submission_id = get_path_param(event, 'submissionId')
    if not submission_id:
        return format_response(400, {'message': 'Missing submissionId'})

    body = parse_body(event)

    try:
        outcome = workflow.reject(submission_id, reviewer_id, body.get('reason'))
    except Exception as e:
        return error_response(e)

    report = runner.run(outcome.effects, source_id=submission_id)

    return format_response(200, {
        'submission': outcome.submission.to_dict(),
        'effects': report.to_dict()
    })
