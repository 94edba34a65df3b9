"""
Engineer review workflow.

pending -> approved and pending -> rejected are the only transitions. Both are
terminal for the submission; a rejection reopens the worker's daily slot.
Reviewing a submission that is not pending is an error so inventory side
effects can never be applied twice.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List
from . import notifications
from .effects import CompleteTask, DecrementStock, MarkEquipmentInUse, Notify
from .errors import InvalidStateTransition, ValidationError
from .inference import is_reliable
from .logging import logger
from .models import SubmissionKind, SubmissionStatus, VerificationSubmission


@dataclass
class ReviewOutcome:
    submission: VerificationSubmission
    effects: List[Any] = field(default_factory=list)


def should_auto_complete(submission: VerificationSubmission) -> bool:
    """Classifier-driven task photo with a reliable, task-matched prediction."""
    prediction = submission.prediction
    return (
        submission.kind == SubmissionKind.TASK_PHOTO
        and submission.classifier_driven
        and prediction is not None
        and is_reliable(prediction.confidence, prediction.task_match)
    )


def approval_effects(submission: VerificationSubmission, reviewer_id: str) -> List[Any]:
    """Side effects of approving a submission, in the order they must run."""
    effects = []

    if submission.kind == SubmissionKind.TASK_PHOTO:
        if should_auto_complete(submission):
            effects.append(CompleteTask(submission.task_id, reviewer_id))

    elif submission.kind == SubmissionKind.MATERIAL:
        if submission.item_id and submission.quantity:
            effects.append(DecrementStock(
                item_id=submission.item_id,
                quantity=submission.quantity,
                alert_recipient_id=reviewer_id,
                project_id=submission.project_id,
                submission_id=submission.submission_id
            ))

    elif submission.kind == SubmissionKind.EQUIPMENT:
        if submission.item_id:
            effects.append(MarkEquipmentInUse(submission.item_id, submission.submitter_id))

    # Damage reports are informational only

    effects.append(Notify(notifications.submission_approved(submission)))
    return effects


class ReviewWorkflow:
    """Approve or reject pending submissions."""

    def __init__(self, ledger, clock=None):
        self.ledger = ledger
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _pending(self, submission_id: str) -> VerificationSubmission:
        submission = self.ledger.get(submission_id)
        if submission.status != SubmissionStatus.PENDING:
            raise InvalidStateTransition(
                f"Submission {submission_id} is {submission.status}, not pending"
            )
        return submission

    def approve(self, submission_id: str, reviewer_id: str) -> ReviewOutcome:
        submission = self._pending(submission_id)
        reviewed_at = int(self._clock().timestamp())

        approved = self.ledger.transition(
            submission, SubmissionStatus.APPROVED, reviewer_id, reviewed_at
        )
        effects = approval_effects(approved, reviewer_id)
        logger.info(f"Submission {submission_id} approved with {len(effects)} side effects")
        return ReviewOutcome(approved, effects)

    def reject(self, submission_id: str, reviewer_id: str, reason: str) -> ReviewOutcome:
        if reason is None or not str(reason).strip():
            raise ValidationError('A rejection reason is required')
        reason = str(reason).strip()

        submission = self._pending(submission_id)
        reviewed_at = int(self._clock().timestamp())

        rejected = self.ledger.transition(
            submission, SubmissionStatus.REJECTED, reviewer_id, reviewed_at, rejection_reason=reason
        )
        return ReviewOutcome(rejected, [Notify(notifications.submission_rejected(rejected, reason))])
