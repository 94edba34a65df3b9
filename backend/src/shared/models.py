"""
Data models and status constants for the site verification service.
Based on the submission lifecycle: Captured → Pending → Approved/Rejected → side effects
"""
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, Optional


class TaskStatus:
    """Task lifecycle statuses."""
    NOT_STARTED = 'not_started'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    BLOCKED = 'blocked'
    CANCELLED = 'cancelled'


class PredictedStatus:
    """Statuses the classifier can predict for a task."""
    NOT_STARTED = 'not_started'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'

    ALL = (NOT_STARTED, IN_PROGRESS, COMPLETED)


class SubmissionStatus:
    """Submission review statuses."""
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'

    # Statuses that hold the (task, submitter, day) slot
    ACTIVE = (PENDING, APPROVED)


class SubmissionKind:
    """Kinds of evidence a worker can submit."""
    TASK_PHOTO = 'task_photo'
    MATERIAL = 'material'
    EQUIPMENT = 'equipment'
    DAMAGE = 'damage'

    USAGE = (MATERIAL, EQUIPMENT, DAMAGE)


class EquipmentStatus:
    """Equipment availability statuses."""
    AVAILABLE = 'available'
    IN_USE = 'in_use'
    MAINTENANCE = 'maintenance'


class ConfidenceLevel:
    """Display buckets for prediction confidence."""
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'


class Activity:
    """Activities the on-device status model was trained on."""
    CONCRETE_POURING = 'concrete_pouring'
    CHB_LAYING = 'chb_laying'
    ROOFING = 'roofing'
    TILE_LAYING = 'tile_laying'
    PAINTING = 'painting'


# Task activity kinds (as stored on tasks) -> classifier activity
TASK_ACTIVITY_TO_CLASSIFIER = {
    'concrete_pouring': Activity.CONCRETE_POURING,
    'chb_laying': Activity.CHB_LAYING,
    'roof_sheeting': Activity.ROOFING,
    'tile_laying': Activity.TILE_LAYING,
    'painting': Activity.PAINTING,
}

CLASSIFIER_TO_TASK_ACTIVITY = {v: k for k, v in TASK_ACTIVITY_TO_CLASSIFIER.items()}

CLASSIFIER_ACTIVITIES = frozenset(TASK_ACTIVITY_TO_CLASSIFIER.values())

PROGRESS_BY_STATUS = {
    PredictedStatus.NOT_STARTED: 0,
    PredictedStatus.IN_PROGRESS: 50,
    PredictedStatus.COMPLETED: 100,
}

SYSTEM_REVIEWER_ID = 'system'


def _to_decimal(value: float) -> Decimal:
    return Decimal(str(value))


def _to_number(value: Any) -> Any:
    """Convert DynamoDB Decimals back to int/float."""
    if isinstance(value, Decimal):
        return int(value) if value % 1 == 0 else float(value)
    return value


@dataclass(frozen=True)
class StatusPrediction:
    """Calibrated, task-scoped classifier prediction. Immutable once attached."""
    status: str
    confidence: float
    progress_percent: int
    task_match: bool
    produced_at: str
    predicted_activity: Optional[str] = None

    def to_item(self) -> Dict[str, Any]:
        item = {
            'status': self.status,
            'confidence': _to_decimal(self.confidence),
            'progressPercent': self.progress_percent,
            'taskMatch': self.task_match,
            'producedAt': self.produced_at,
        }
        if self.predicted_activity is not None:
            item['predictedActivity'] = self.predicted_activity
        return item

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_item()
        data['confidence'] = self.confidence
        return data

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'StatusPrediction':
        return cls(
            status=item['status'],
            confidence=float(item['confidence']),
            progress_percent=int(item['progressPercent']),
            task_match=bool(item['taskMatch']),
            produced_at=item.get('producedAt', ''),
            predicted_activity=item.get('predictedActivity'),
        )


@dataclass
class Task:
    """Construction task owned by a project."""
    task_id: str
    project_id: str
    activity_kind: Optional[str]
    status: str = TaskStatus.NOT_STARTED
    title: str = ''

    @property
    def classifier_activity(self) -> Optional[str]:
        """Classifier activity for this task, or None if not classifier-eligible."""
        if not self.activity_kind:
            return None
        return TASK_ACTIVITY_TO_CLASSIFIER.get(self.activity_kind)

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'Task':
        return cls(
            task_id=item['taskId'],
            project_id=item.get('projectId', ''),
            activity_kind=item.get('activityKind'),
            status=item.get('status', TaskStatus.NOT_STARTED),
            title=item.get('title', ''),
        )


# camelCase attribute names in the submissions table
_FIELD_NAMES = {
    'submission_id': 'submissionId',
    'kind': 'kind',
    'task_id': 'taskId',
    'project_id': 'projectId',
    'submitter_id': 'submitterId',
    'photo_ref': 'photoRef',
    'status': 'status',
    'submitted_at': 'submittedAt',
    'day_key': 'dayKey',
    'classifier_driven': 'classifierDriven',
    'auto_approved': 'autoApproved',
    'reviewed_at': 'reviewedAt',
    'reviewer_id': 'reviewerId',
    'rejection_reason': 'rejectionReason',
    'submitter_name': 'submitterName',
    'notes': 'notes',
    'item_id': 'itemId',
    'item_name': 'itemName',
    'quantity': 'quantity',
    'unit': 'unit',
}


@dataclass
class VerificationSubmission:
    """A piece of photo evidence awaiting or past engineer review."""
    submission_id: str
    kind: str
    task_id: Optional[str]
    project_id: str
    submitter_id: str
    photo_ref: str
    status: str
    submitted_at: int
    day_key: Optional[str] = None
    prediction: Optional[StatusPrediction] = None
    classifier_driven: bool = False
    auto_approved: bool = False
    reviewed_at: Optional[int] = None
    reviewer_id: Optional[str] = None
    rejection_reason: Optional[str] = None
    submitter_name: Optional[str] = None
    notes: Optional[str] = None
    # Usage reports only
    item_id: Optional[str] = None
    item_name: Optional[str] = None
    quantity: Optional[float] = None
    unit: Optional[str] = None

    @property
    def submitter_task_key(self) -> str:
        return f"{self.submitter_id}#{self.task_id}"

    @property
    def task_item_key(self) -> str:
        return f"{self.task_id}#{self.item_id}"

    def with_review(self, status: str, reviewer_id: str, reviewed_at: int,
                    rejection_reason: Optional[str] = None) -> 'VerificationSubmission':
        return replace(
            self,
            status=status,
            reviewer_id=reviewer_id,
            reviewed_at=reviewed_at,
            rejection_reason=rejection_reason,
        )

    def to_item(self) -> Dict[str, Any]:
        """Serialize to a DynamoDB item, dropping unset optional fields."""
        item = {}
        for attr, name in _FIELD_NAMES.items():
            value = getattr(self, attr)
            if value is None:
                continue
            if isinstance(value, float):
                value = _to_decimal(value)
            item[name] = value
        # Only task photos take part in the daily gate index
        if self.task_id is not None and self.kind == SubmissionKind.TASK_PHOTO:
            item['submitterTask'] = self.submitter_task_key
        if self.kind == SubmissionKind.MATERIAL and self.task_id is not None and self.item_id is not None:
            item['taskItem'] = self.task_item_key
        if self.prediction is not None:
            item['prediction'] = self.prediction.to_item()
        return item

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation for API responses."""
        data = {name: getattr(self, attr) for attr, name in _FIELD_NAMES.items()}
        data['prediction'] = self.prediction.to_dict() if self.prediction else None
        return data

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'VerificationSubmission':
        kwargs = {}
        for attr, name in _FIELD_NAMES.items():
            if name in item:
                kwargs[attr] = _to_number(item[name])
        prediction = item.get('prediction')
        if prediction:
            kwargs['prediction'] = StatusPrediction.from_item(prediction)
        kwargs.setdefault('task_id', None)
        kwargs.setdefault('photo_ref', '')
        kwargs['classifier_driven'] = bool(kwargs.get('classifier_driven', False))
        kwargs['auto_approved'] = bool(kwargs.get('auto_approved', False))
        return cls(**kwargs)
