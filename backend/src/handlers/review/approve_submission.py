"""
Approve a pending submission and apply its side effects.
POST /engineer/submissions/{submissionId}/approve

Task completion, stock decrement, equipment status and notifications are
applied after the approval is committed. Effect failures are reported in the
response and never undo the approval.
"""
from shared.auth import get_user_sub, is_engineer
from shared.effects import EffectRunner
from shared.ledger import VerificationLedger
from shared.logging import log_event, logger
from shared.review import ReviewWorkflow
from shared.utils import error_response, format_response, get_path_param

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

    try:
        outcome = workflow.approve(submission_id, reviewer_id)
    except Exception as e:
        return error_response(e)

    report = runner.run(outcome.effects, source_id=submission_id)
    if not report.ok:
        logger.warning(f"Submission {submission_id} approved with {len(report.failed)} failed side effects")

    return format_response(200, {
        'submission': outcome.submission.to_dict(),
        'effects': report.to_dict()
    })
