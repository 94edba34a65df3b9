"""
Notification events handed to the external dispatcher.

The core only emits {recipientId, kind, payload}; push or in-app delivery is
the dispatcher's job.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from . import sqs
from .config import config


class NotificationKind:
    NEW_SUBMISSION = 'new_submission'
    SUBMISSION_APPROVED = 'submission_approved'
    SUBMISSION_REJECTED = 'submission_rejected'
    LOW_STOCK = 'low_stock'
    PROJECT_ASSIGNMENT = 'project_assignment'


@dataclass(frozen=True)
class NotificationEvent:
    recipient_id: str
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_message(self) -> Dict[str, Any]:
        return {
            'recipientId': self.recipient_id,
            'kind': self.kind,
            'payload': self.payload,
            'createdAt': datetime.now(timezone.utc).isoformat()
        }


def dispatch(event: NotificationEvent) -> bool:
    """Queue a notification. Returns False if it could not be queued."""
    return sqs.send_message(config.NOTIFICATIONS_QUEUE_URL, event.to_message())


def new_submission(engineer_id: str, submission) -> NotificationEvent:
    label = 'Damage Report' if submission.kind == 'damage' else 'Verification Submission'
    return NotificationEvent(engineer_id, NotificationKind.NEW_SUBMISSION, {
        'title': f"New {label}",
        'submissionId': submission.submission_id,
        'submissionKind': submission.kind,
        'taskId': submission.task_id,
        'projectId': submission.project_id,
        'submitterId': submission.submitter_id,
        'submitterName': submission.submitter_name
    })


def submission_approved(submission) -> NotificationEvent:
    return NotificationEvent(submission.submitter_id, NotificationKind.SUBMISSION_APPROVED, {
        'submissionId': submission.submission_id,
        'submissionKind': submission.kind,
        'taskId': submission.task_id,
        'projectId': submission.project_id
    })


def submission_rejected(submission, reason: str) -> NotificationEvent:
    return NotificationEvent(submission.submitter_id, NotificationKind.SUBMISSION_REJECTED, {
        'submissionId': submission.submission_id,
        'submissionKind': submission.kind,
        'taskId': submission.task_id,
        'projectId': submission.project_id,
        'reason': reason
    })


def low_stock(recipient_id: str, item_id: str, remaining, unit: Optional[str] = None,
              project_id: Optional[str] = None, item_name: Optional[str] = None) -> NotificationEvent:
    return NotificationEvent(recipient_id, NotificationKind.LOW_STOCK, {
        'title': 'Low Stock Alert',
        'itemId': item_id,
        'itemName': item_name,
        'remaining': remaining,
        'unit': unit,
        'projectId': project_id
    })


def project_assignment(worker_id: str, project_id: str, assignment_id: Optional[str] = None) -> NotificationEvent:
    return NotificationEvent(worker_id, NotificationKind.PROJECT_ASSIGNMENT, {
        'projectId': project_id,
        'assignmentId': assignment_id
    })
