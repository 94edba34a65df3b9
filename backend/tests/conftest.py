"""
Shared fixtures for the verification core tests.
"""
import os
import sys
from datetime import datetime, timezone

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

os.environ.setdefault('AWS_REGION', 'us-east-1')
os.environ.setdefault('AWS_ACCESS_KEY_ID', 'testing')
os.environ.setdefault('AWS_SECRET_ACCESS_KEY', 'testing')

from shared.errors import EligibilityDenied, InvalidStateTransition, StorageError, SubmissionNotFound  # noqa: E402
from shared.ledger import denial_reason, lock_id  # noqa: E402
from shared.models import (  # noqa: E402
    StatusPrediction,
    SubmissionKind,
    SubmissionStatus,
    Task,
    VerificationSubmission,
)


class InMemoryLedger:
    """Ledger fake with the same day-lock and pending-only rules as DynamoDB."""

    def __init__(self):
        self.submissions = {}
        self.locks = {}
        self.fail_reads = False
        self.created = []

    def create(self, submission):
        if submission.kind == SubmissionKind.TASK_PHOTO and submission.task_id \
                and submission.status in SubmissionStatus.ACTIVE:
            key = lock_id(submission.task_id, submission.submitter_id, submission.day_key)
            holder = self.locks.get(key)
            if holder is not None:
                raise EligibilityDenied(denial_reason(self.submissions[holder].status))
            self.locks[key] = submission.submission_id
        self.submissions[submission.submission_id] = submission
        self.created.append(submission)
        return submission

    def get(self, submission_id):
        if submission_id not in self.submissions:
            raise SubmissionNotFound(f"Submission {submission_id} not found")
        return self.submissions[submission_id]

    def list_for_day(self, task_id, submitter_id, start, end):
        if self.fail_reads:
            raise RuntimeError('store unreachable')
        matches = [
            s for s in self.submissions.values()
            if s.kind == SubmissionKind.TASK_PHOTO and s.task_id == task_id
            and s.submitter_id == submitter_id and start <= s.submitted_at < end
        ]
        return sorted(matches, key=lambda s: s.submitted_at, reverse=True)

    def list_pending(self, project_id):
        return [s for s in self.list_for_project(project_id) if s.status == SubmissionStatus.PENDING]

    def list_for_project(self, project_id):
        matches = [s for s in self.submissions.values() if s.project_id == project_id]
        return sorted(matches, key=lambda s: s.submitted_at, reverse=True)

    def list_for_submitter(self, submitter_id):
        matches = [s for s in self.submissions.values() if s.submitter_id == submitter_id]
        return sorted(matches, key=lambda s: s.submitted_at, reverse=True)

    def list_for_task_item(self, task_id, item_id):
        if self.fail_reads:
            raise StorageError('Failed to query Submissions')
        return [
            s for s in self.submissions.values()
            if s.kind == SubmissionKind.MATERIAL and s.task_id == task_id and s.item_id == item_id
        ]

    def transition(self, submission, new_status, reviewer_id, reviewed_at, rejection_reason=None):
        stored = self.submissions[submission.submission_id]
        if stored.status != SubmissionStatus.PENDING:
            raise InvalidStateTransition(f"Submission {submission.submission_id} is not pending")

        if new_status == SubmissionStatus.REJECTED and stored.task_id and stored.day_key:
            key = lock_id(stored.task_id, stored.submitter_id, stored.day_key)
            if self.locks.get(key) == stored.submission_id:
                del self.locks[key]

        updated = stored.with_review(new_status, reviewer_id, reviewed_at, rejection_reason)
        self.submissions[submission.submission_id] = updated
        return updated


class FakeClassifier:
    """Classifier runtime returning canned (label, score) pairs."""

    def __init__(self, output=None, error=None):
        self.output = output or []
        self.error = error
        self.calls = []

    def run_inference(self, image_path):
        self.calls.append(image_path)
        if self.error:
            raise self.error
        return self.output


CONCRETE_OUTPUT = [
    ('concrete_pouring_completed', 0.42),
    ('concrete_pouring_in_progress', 0.31),
    ('tile_laying_completed', 0.10),
    ('concrete_pouring_not_started', 0.02),
    ('painting_in_progress', 0.15),
]


def make_submission(**overrides):
    defaults = dict(
        submission_id='sub-1',
        kind=SubmissionKind.TASK_PHOTO,
        task_id='task-1',
        project_id='proj-1',
        submitter_id='worker-1',
        photo_ref='task_photos/proj-1/task-1/a.jpg',
        status=SubmissionStatus.PENDING,
        submitted_at=1_700_000_000,
        day_key='2023-11-14',
    )
    defaults.update(overrides)
    return VerificationSubmission(**defaults)


def make_prediction(confidence=0.9, task_match=True, status='completed', predicted_activity=None):
    return StatusPrediction(
        status=status,
        confidence=confidence,
        progress_percent={'not_started': 0, 'in_progress': 50, 'completed': 100}[status],
        task_match=task_match,
        produced_at='2023-11-14T08:00:00+00:00',
        predicted_activity=predicted_activity,
    )


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def concrete_task():
    return Task(task_id='task-1', project_id='proj-1', activity_kind='concrete_pouring',
                status='in_progress', title='Pour ground floor slab')


@pytest.fixture
def fixed_now():
    return datetime(2023, 11, 14, 8, 0, tzinfo=timezone.utc)
