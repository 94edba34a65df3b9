"""
Verification ledger: submissions and their lifecycle state in DynamoDB.

At most one pending/approved task-photo submission may exist per
(task, submitter, day). The ledger enforces this with a lock item keyed on
that triple, written in the same transaction as the submission. Rejection
deletes the lock in the same transaction as the status change, which reopens
the slot for a resubmission.
"""
from typing import List, Optional
from boto3.dynamodb.conditions import Key, Attr
from botocore.exceptions import ClientError
from . import dynamo
from .config import config
from .errors import EligibilityDenied, InvalidStateTransition, StorageError, SubmissionNotFound
from .logging import logger
from .models import SubmissionKind, SubmissionStatus, VerificationSubmission

REASON_AWAITING_REVIEW = 'awaiting review'
REASON_ALREADY_APPROVED = 'already approved today'

BY_SUBMITTER_TASK_INDEX = 'bySubmitterTask'
BY_PROJECT_INDEX = 'byProject'
BY_SUBMITTER_INDEX = 'bySubmitter'
BY_TASK_ITEM_INDEX = 'byTaskItem'


def lock_id(task_id: str, submitter_id: str, day_key: str) -> str:
    return f"{task_id}#{submitter_id}#{day_key}"


def denial_reason(status: Optional[str]) -> str:
    """User-facing reason for an occupied daily slot."""
    if status == SubmissionStatus.APPROVED:
        return REASON_ALREADY_APPROVED
    return REASON_AWAITING_REVIEW


class VerificationLedger:
    """Stores verification submissions and transitions their status."""

    def __init__(self, submissions_table: str = None, locks_table: str = None):
        self.submissions_table = submissions_table or config.SUBMISSIONS_TABLE
        self.locks_table = locks_table or config.SUBMISSION_LOCKS_TABLE

    def _holds_daily_slot(self, submission: VerificationSubmission) -> bool:
        return (
            submission.kind == SubmissionKind.TASK_PHOTO
            and submission.task_id is not None
            and submission.status in SubmissionStatus.ACTIVE
        )

    def create(self, submission: VerificationSubmission) -> VerificationSubmission:
        """
        Persist a new submission.

        Raises:
            EligibilityDenied: Another active submission holds the daily slot
            StorageError: The write failed for any other reason
        """
        transact_items = []
        lock_key = None

        if self._holds_daily_slot(submission):
            lock_key = lock_id(submission.task_id, submission.submitter_id, submission.day_key)
            transact_items.append({
                'Put': {
                    'TableName': self.locks_table,
                    'Item': dynamo.serialize_item({
                        'lockId': lock_key,
                        'submissionId': submission.submission_id,
                        'createdAt': submission.submitted_at,
                        'expiresAt': submission.submitted_at + config.SUBMISSION_LOCK_TTL_SECONDS
                    }),
                    'ConditionExpression': 'attribute_not_exists(lockId)'
                }
            })

        transact_items.append({
            'Put': {
                'TableName': self.submissions_table,
                'Item': dynamo.serialize_item(submission.to_item()),
                'ConditionExpression': 'attribute_not_exists(submissionId)'
            }
        })

        try:
            dynamo.transact_write(transact_items)
        except ClientError as e:
            if lock_key is None:
                raise StorageError('Submission id collision') from e
            reason = self._occupied_reason(lock_key)
            logger.info(f"Daily slot {lock_key} already taken: {reason}")
            raise EligibilityDenied(reason) from e

        logger.info(f"Submission {submission.submission_id} created as {submission.status}")
        return submission

    def _occupied_reason(self, lock_key: str) -> str:
        """Work out why a slot is taken by looking at the submission holding it."""
        try:
            lock = dynamo.get_item(self.locks_table, {'lockId': lock_key}, consistent=True)
            if not lock:
                return REASON_AWAITING_REVIEW
            holder = dynamo.get_item(
                self.submissions_table, {'submissionId': lock['submissionId']}, consistent=True
            )
        except StorageError:
            return REASON_AWAITING_REVIEW
        return denial_reason(holder.get('status') if holder else None)

    def get(self, submission_id: str) -> VerificationSubmission:
        item = dynamo.get_item(self.submissions_table, {'submissionId': submission_id}, consistent=True)
        if not item:
            raise SubmissionNotFound(f"Submission {submission_id} not found")
        return VerificationSubmission.from_item(item)

    def list_for_day(self, task_id: str, submitter_id: str, start: int, end: int) -> List[VerificationSubmission]:
        """Submitter's submissions for a task with start <= submittedAt < end, newest first."""
        items = dynamo.query(
            self.submissions_table,
            index_name=BY_SUBMITTER_TASK_INDEX,
            key_condition=(
                Key('submitterTask').eq(f"{submitter_id}#{task_id}")
                & Key('submittedAt').between(start, end - 1)
            ),
            scan_forward=False
        )
        return [VerificationSubmission.from_item(item) for item in items]

    def list_pending(self, project_id: str) -> List[VerificationSubmission]:
        """Pending submissions of a project, newest first."""
        items = dynamo.query(
            self.submissions_table,
            index_name=BY_PROJECT_INDEX,
            key_condition=Key('projectId').eq(project_id),
            filter_expression=Attr('status').eq(SubmissionStatus.PENDING),
            scan_forward=False
        )
        return [VerificationSubmission.from_item(item) for item in items]

    def list_for_project(self, project_id: str) -> List[VerificationSubmission]:
        items = dynamo.query(
            self.submissions_table,
            index_name=BY_PROJECT_INDEX,
            key_condition=Key('projectId').eq(project_id),
            scan_forward=False
        )
        return [VerificationSubmission.from_item(item) for item in items]

    def list_for_submitter(self, submitter_id: str) -> List[VerificationSubmission]:
        items = dynamo.query(
            self.submissions_table,
            index_name=BY_SUBMITTER_INDEX,
            key_condition=Key('submitterId').eq(submitter_id),
            scan_forward=False
        )
        return [VerificationSubmission.from_item(item) for item in items]

    def list_for_task_item(self, task_id: str, item_id: str) -> List[VerificationSubmission]:
        """Material reports filed against one item of a task."""
        items = dynamo.query(
            self.submissions_table,
            index_name=BY_TASK_ITEM_INDEX,
            key_condition=Key('taskItem').eq(f"{task_id}#{item_id}")
        )
        return [VerificationSubmission.from_item(item) for item in items]

    def transition(
        self,
        submission: VerificationSubmission,
        new_status: str,
        reviewer_id: str,
        reviewed_at: int,
        rejection_reason: Optional[str] = None
    ) -> VerificationSubmission:
        """
        Move a pending submission to approved or rejected.

        Raises:
            InvalidStateTransition: The stored submission is no longer pending
        """
        update_expression = 'SET #status = :new_status, reviewedAt = :ts, reviewerId = :reviewer'
        values = {
            ':new_status': new_status,
            ':pending': SubmissionStatus.PENDING,
            ':ts': reviewed_at,
            ':reviewer': reviewer_id
        }
        if rejection_reason is not None:
            update_expression += ', rejectionReason = :reason'
            values[':reason'] = rejection_reason

        transact_items = [{
            'Update': {
                'TableName': self.submissions_table,
                'Key': dynamo.serialize_item({'submissionId': submission.submission_id}),
                'UpdateExpression': update_expression,
                'ConditionExpression': '#status = :pending',
                'ExpressionAttributeNames': {'#status': 'status'},
                'ExpressionAttributeValues': dynamo.serialize_item(values)
            }
        }]

        if new_status == SubmissionStatus.REJECTED and submission.kind == SubmissionKind.TASK_PHOTO \
                and submission.task_id and submission.day_key:
            # Free the daily slot, but only if this submission holds it
            transact_items.append({
                'Delete': {
                    'TableName': self.locks_table,
                    'Key': dynamo.serialize_item({
                        'lockId': lock_id(submission.task_id, submission.submitter_id, submission.day_key)
                    }),
                    'ConditionExpression': 'attribute_not_exists(lockId) OR submissionId = :sid',
                    'ExpressionAttributeValues': dynamo.serialize_item({':sid': submission.submission_id})
                }
            })

        try:
            dynamo.transact_write(transact_items)
        except ClientError as e:
            raise InvalidStateTransition(
                f"Submission {submission.submission_id} is not pending"
            ) from e

        logger.info(f"Submission {submission.submission_id}: {submission.status} -> {new_status} by {reviewer_id}")
        return submission.with_review(new_status, reviewer_id, reviewed_at, rejection_reason)
