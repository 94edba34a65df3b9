"""
Error taxonomy for the verification core.

Gate and validation failures are returned to the caller and shown to the user.
Classifier failures are absorbed by the inference engine. Storage and upload
failures propagate so the user can retry.
"""


class SitePulseError(Exception):
    """Base class for all verification errors."""


class EligibilityDenied(SitePulseError):
    """The daily gate refused a new submission."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ValidationError(SitePulseError):
    """Caller supplied invalid input (e.g. an empty rejection reason)."""


class ModelUnavailable(SitePulseError):
    """The status classifier could not be initialized."""


class InferenceTaskMismatch(SitePulseError):
    """The classifier's top guess belongs to a different activity than the task.

    Carried as a warning alongside a prediction, never raised into the
    submission flow.
    """

    def __init__(self, expected_activity: str, predicted_activity: str):
        super().__init__(
            f"Classifier detected '{predicted_activity}' instead of expected '{expected_activity}'"
        )
        self.expected_activity = expected_activity
        self.predicted_activity = predicted_activity


class InvalidStateTransition(SitePulseError):
    """Approve/reject attempted on a submission that is no longer pending."""


class UploadFailure(SitePulseError):
    """Photo transfer to the blob store failed."""


class StorageError(SitePulseError):
    """The document store could not complete a read or write."""


class SubmissionNotFound(SitePulseError):
    """No submission exists with the requested id."""


class NotClassifierEligible(SitePulseError, ValueError):
    """Inference was requested for an activity outside the classifier allow-list."""
