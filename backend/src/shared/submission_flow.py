"""
Worker evidence submission flow.

capture -> gate check -> status inference (eligible tasks) -> upload ->
ledger create -> notify engineer. Nothing is persisted before the upload
step commits, and classifier problems never block a submission.
"""
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from . import notifications, s3_utils, tasks
from .config import config
from .effects import EffectReport, EffectRunner
from .errors import EligibilityDenied, InferenceTaskMismatch, StorageError, ValidationError
from .gate import SubmissionGate, day_window
from .inference import StatusInferenceEngine, confidence_level, is_reliable, task_mismatch, task_mismatch_warning
from .logging import logger
from .models import (
    SYSTEM_REVIEWER_ID,
    StatusPrediction,
    SubmissionKind,
    SubmissionStatus,
    Task,
    VerificationSubmission,
)
from .review import approval_effects

PREDICTION_SKIPPED_WARNING = 'Automatic status check unavailable; photo will be reviewed manually.'
DUPLICATE_USAGE_WARNING = (
    'Another worker on this task has already reported the same quantity ({quantity:g}) for this item.'
)


@dataclass
class SubmissionResult:
    submission: VerificationSubmission
    warnings: List[str] = field(default_factory=list)
    effects: Optional[EffectReport] = None
    mismatch: Optional[InferenceTaskMismatch] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'submission': self.submission.to_dict(),
            'warnings': self.warnings,
            'taskMismatch': None
        }
        if self.mismatch is not None:
            data['taskMismatch'] = {
                'expectedActivity': self.mismatch.expected_activity,
                'predictedActivity': self.mismatch.predicted_activity
            }
        if self.effects is not None:
            data['effects'] = self.effects.to_dict()
        return data


def describe_prediction(prediction: Optional[StatusPrediction]) -> Dict[str, Any]:
    """Prediction plus its display bucket, reliability and mismatch warning."""
    if prediction is None:
        return {'prediction': None}
    return {
        'prediction': prediction.to_dict(),
        'confidenceLevel': confidence_level(prediction.confidence),
        'reliable': is_reliable(prediction.confidence, prediction.task_match),
        'warning': task_mismatch_warning(prediction)
    }


def _notify_engineer(submission: VerificationSubmission) -> None:
    engineer_id = tasks.get_project_engineer_id(submission.project_id)
    if not engineer_id:
        logger.warning(f"No engineer to notify for project {submission.project_id}")
        return
    if not notifications.dispatch(notifications.new_submission(engineer_id, submission)):
        logger.error(f"Failed to notify engineer about submission {submission.submission_id}")


def preview_prediction(engine: StatusInferenceEngine, task: Task, photo_path: str) -> Dict[str, Any]:
    """Run inference for the confirmation dialog without persisting anything."""
    activity = task.classifier_activity
    if activity is None:
        return {'eligible': False, 'prediction': None}

    result = describe_prediction(engine.classify(photo_path, activity))
    result['eligible'] = True
    return result


def submit_task_photo(
    ledger,
    engine: StatusInferenceEngine,
    task: Task,
    submitter_id: str,
    photo_path: str,
    submitter_name: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
    tz_name: Optional[str] = None,
    runner: Optional[EffectRunner] = None
) -> SubmissionResult:
    """
    Submit photo evidence of task progress.

    Raises:
        EligibilityDenied: The worker already has an active submission today
        UploadFailure: The photo could not be stored
        StorageError: The submission could not be persisted
    """
    now = now or datetime.now(timezone.utc)

    decision = SubmissionGate(ledger).check(task.task_id, submitter_id, now=now, tz_name=tz_name)
    if not decision.allowed:
        raise EligibilityDenied(decision.reason)

    _, _, day_key = day_window(now, tz_name)
    warnings = []

    prediction = None
    mismatch = None
    activity = task.classifier_activity
    if activity is not None:
        prediction = engine.classify(photo_path, activity)
        if prediction is None:
            warnings.append(PREDICTION_SKIPPED_WARNING)
        else:
            mismatch = task_mismatch(prediction, activity)
            if mismatch is not None:
                logger.warning(f"Task {task.task_id}: {mismatch}")
                warnings.append(task_mismatch_warning(prediction))

    photo_ref = s3_utils.upload_photo(
        photo_path, s3_utils.photo_key('task_photos', task.project_id, task.task_id)
    )

    auto_approve = (
        config.AUTO_APPROVE_RELIABLE_PREDICTIONS
        and prediction is not None
        and is_reliable(prediction.confidence, prediction.task_match)
    )
    submitted_at = int(now.timestamp())

    submission = VerificationSubmission(
        submission_id=str(uuid.uuid4()),
        kind=SubmissionKind.TASK_PHOTO,
        task_id=task.task_id,
        project_id=task.project_id,
        submitter_id=submitter_id,
        photo_ref=photo_ref,
        status=SubmissionStatus.APPROVED if auto_approve else SubmissionStatus.PENDING,
        submitted_at=submitted_at,
        day_key=day_key,
        prediction=prediction,
        classifier_driven=prediction is not None,
        auto_approved=bool(auto_approve),
        reviewed_at=submitted_at if auto_approve else None,
        reviewer_id=SYSTEM_REVIEWER_ID if auto_approve else None,
        submitter_name=submitter_name,
        notes=notes
    )

    try:
        ledger.create(submission)
    except (EligibilityDenied, StorageError):
        s3_utils.delete_photo(photo_ref)
        raise

    result = SubmissionResult(submission, warnings, mismatch=mismatch)

    if auto_approve:
        logger.info(f"Submission {submission.submission_id} auto-approved from reliable prediction")
        runner = runner or EffectRunner()
        result.effects = runner.run(
            approval_effects(submission, SYSTEM_REVIEWER_ID), source_id=submission.submission_id
        )
    else:
        _notify_engineer(submission)

    return result


def duplicate_usage_warning(ledger, task_id: str, item_id: str, submitter_id: str,
                            quantity: float) -> Optional[str]:
    """Warn when another worker already reported the same quantity of this item for the task."""
    try:
        reports = ledger.list_for_task_item(task_id, item_id)
    except StorageError as e:
        logger.warning(f"Duplicate usage check skipped for {task_id}/{item_id}: {e}")
        return None

    for report in reports:
        if report.submitter_id == submitter_id or report.status == SubmissionStatus.REJECTED:
            continue
        if report.quantity is not None and float(report.quantity) == float(quantity):
            return DUPLICATE_USAGE_WARNING.format(quantity=quantity)
    return None


def submit_usage_report(
    ledger,
    submitter_id: str,
    project_id: str,
    kind: str,
    item_id: str,
    photo_path: Optional[str] = None,
    quantity: Optional[float] = None,
    unit: Optional[str] = None,
    item_name: Optional[str] = None,
    notes: Optional[str] = None,
    task_id: Optional[str] = None,
    submitter_name: Optional[str] = None,
    now: Optional[datetime] = None
) -> SubmissionResult:
    """
    Submit a material, equipment or damage report for engineer review.

    Raises:
        ValidationError: Unknown kind, missing item or photo, or a material
            quantity that is not a positive finite number
    """
    if kind not in SubmissionKind.USAGE:
        raise ValidationError(f"Unknown usage report type '{kind}'")
    if not item_id:
        raise ValidationError('itemId is required')
    if kind == SubmissionKind.MATERIAL:
        if quantity is None or not math.isfinite(quantity) or quantity <= 0:
            raise ValidationError('Material usage requires a positive quantity')
    else:
        quantity = None
    if not photo_path:
        raise ValidationError('photo is required')

    now = now or datetime.now(timezone.utc)

    warnings = []
    if kind == SubmissionKind.MATERIAL and task_id:
        duplicate = duplicate_usage_warning(ledger, task_id, item_id, submitter_id, quantity)
        if duplicate:
            warnings.append(duplicate)

    photo_ref = s3_utils.upload_photo(
        photo_path, s3_utils.photo_key('usage_photos', project_id, submitter_id)
    )

    submission = VerificationSubmission(
        submission_id=str(uuid.uuid4()),
        kind=kind,
        task_id=task_id,
        project_id=project_id,
        submitter_id=submitter_id,
        photo_ref=photo_ref,
        status=SubmissionStatus.PENDING,
        submitted_at=int(now.timestamp()),
        submitter_name=submitter_name,
        notes=notes,
        item_id=item_id,
        item_name=item_name,
        quantity=quantity,
        unit=unit
    )

    try:
        ledger.create(submission)
    except StorageError:
        s3_utils.delete_photo(photo_ref)
        raise

    _notify_engineer(submission)
    return SubmissionResult(submission, warnings)
