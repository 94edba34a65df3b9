"""
Per-worker grouping of verification logs for review dashboards.
"""
from typing import Any, Dict, Iterable, List
from .logging import logger
from .models import SubmissionStatus, VerificationSubmission

UNKNOWN_WORKER = 'Unknown Worker'


def group_by_submitter(submissions: Iterable[VerificationSubmission]) -> List[Dict[str, Any]]:
    """
    Group submissions per submitter, newest first.

    All submissions are sorted by submission time (descending) before
    grouping, so each group's list is newest-first and groups appear in order
    of their most recent activity.

    Returns:
        List of {submitterId, submitterName, pendingCount, lastActivityAt, submissions}
    """
    ordered = sorted(submissions, key=lambda s: s.submitted_at, reverse=True)
    groups: Dict[str, Dict[str, Any]] = {}

    for submission in ordered:
        if not submission.submitter_id:
            logger.warning(f"Submission {submission.submission_id} has no submitter, skipped")
            continue

        group = groups.get(submission.submitter_id)
        if group is None:
            group = {
                'submitterId': submission.submitter_id,
                'submitterName': submission.submitter_name or UNKNOWN_WORKER,
                'pendingCount': 0,
                'lastActivityAt': submission.submitted_at,
                'submissions': []
            }
            groups[submission.submitter_id] = group

        group['submissions'].append(submission)
        if group['submitterName'] == UNKNOWN_WORKER and submission.submitter_name:
            group['submitterName'] = submission.submitter_name
        if submission.status == SubmissionStatus.PENDING:
            group['pendingCount'] += 1
        if submission.submitted_at > group['lastActivityAt']:
            group['lastActivityAt'] = submission.submitted_at

    return list(groups.values())
