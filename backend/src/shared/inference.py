"""
Status inference for classifier-eligible tasks.

The task's activity is already known from application state, so the engine
only has to decide the completion status. Scores the model spent on other
activities are discarded and the three status classes of the known activity
are renormalized, which gives a more honest confidence than the raw global
score.
"""
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol, Tuple

from .config import config
from .errors import InferenceTaskMismatch, ModelUnavailable, NotClassifierEligible
from .labels import parse_output
from .logging import logger
from .models import (
    CLASSIFIER_ACTIVITIES,
    CLASSIFIER_TO_TASK_ACTIVITY,
    PROGRESS_BY_STATUS,
    ConfidenceLevel,
    StatusPrediction,
)


class ClassifierRuntime(Protocol):
    """Anything that can score an image against the fixed label set."""

    def run_inference(self, image_path: str) -> List[Tuple[str, float]]:
        ...


class ModelState:
    """Lifecycle of the classifier model."""
    UNINITIALIZED = 'uninitialized'
    READY = 'ready'
    UNAVAILABLE = 'unavailable'


class ClassifierHandle:
    """
    Owns the classifier lifecycle: UNINITIALIZED -> READY | UNAVAILABLE.

    Loading is attempted once. A failure is logged once and cached so later
    calls fail fast with ModelUnavailable instead of retrying.
    """

    def __init__(self, loader: Callable[[], ClassifierRuntime]):
        self._loader = loader
        self._runtime: Optional[ClassifierRuntime] = None
        self.state = ModelState.UNINITIALIZED
        self.error: Optional[str] = None

    @classmethod
    def ready(cls, runtime: ClassifierRuntime) -> 'ClassifierHandle':
        handle = cls(lambda: runtime)
        handle._runtime = runtime
        handle.state = ModelState.READY
        return handle

    def get(self) -> ClassifierRuntime:
        if self.state == ModelState.UNINITIALIZED:
            try:
                self._runtime = self._loader()
                self.state = ModelState.READY
                logger.info("Status classifier loaded")
            except Exception as e:
                self.state = ModelState.UNAVAILABLE
                self.error = str(e)
                logger.error(f"Status classifier unavailable, inference disabled: {e}")

        if self.state == ModelState.UNAVAILABLE:
            raise ModelUnavailable(self.error or 'classifier unavailable')
        return self._runtime


def progress_percent(status: str) -> int:
    """Progress shown for a predicted status: 0, 50 or 100."""
    return PROGRESS_BY_STATUS[status]


def confidence_level(confidence: float) -> str:
    """Display bucket for a confidence value. Not used for gating."""
    if confidence >= config.HIGH_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.HIGH
    if confidence >= config.RELIABLE_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def is_reliable(confidence: float, task_match: bool) -> bool:
    """Sole gate for auto-approval and auto-completion."""
    return task_match is True and confidence >= config.RELIABLE_CONFIDENCE_THRESHOLD


def is_classifier_eligible(activity: Optional[str]) -> bool:
    return activity in CLASSIFIER_ACTIVITIES


def format_status(status: str) -> str:
    """'in_progress' -> 'In Progress'."""
    return ' '.join(word.capitalize() for word in status.split('_'))


def task_mismatch(prediction: StatusPrediction, expected_activity: str) -> Optional[InferenceTaskMismatch]:
    """Warning value for a prediction whose top guess was another activity."""
    if prediction.task_match:
        return None
    return InferenceTaskMismatch(expected_activity, prediction.predicted_activity or 'unknown')


def task_mismatch_warning(prediction: StatusPrediction) -> Optional[str]:
    """User-facing warning text when the classifier saw a different kind of work."""
    if prediction.task_match:
        return None
    seen = prediction.predicted_activity or 'unknown'
    seen = CLASSIFIER_TO_TASK_ACTIVITY.get(seen, seen)
    return (
        f"Warning: the classifier detected \"{format_status(seen)}\" instead of the "
        f"expected task. Status prediction may be less accurate."
    )


class StatusInferenceEngine:
    """Turns raw multi-class classifier output into a task-scoped StatusPrediction."""

    def __init__(self, handle: Optional[ClassifierHandle] = None, clock=None):
        self.handle = handle
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def predict(self, raw_output: List[Tuple[str, float]], known_activity: str) -> StatusPrediction:
        """
        Interpret classifier output for a task whose activity is known.

        Args:
            raw_output: (label, score) pairs from the classifier
            known_activity: Classifier activity of the task (must be eligible)

        Returns:
            StatusPrediction with renormalized confidence when the known
            activity appears in the output, otherwise the global top guess
            flagged with task_match=False.
        """
        if not is_classifier_eligible(known_activity):
            raise NotClassifierEligible(
                f"Activity '{known_activity}' is not classifier-eligible. "
                f"Supported: {', '.join(sorted(CLASSIFIER_ACTIVITIES))}"
            )
        if not raw_output:
            raise ValueError('Classifier returned no predictions')

        parsed = parse_output(raw_output)
        produced_at = self._clock().isoformat()

        subset = [(label, score) for label, score in parsed if label.activity == known_activity]
        if subset:
            total = sum(score for _, score in subset)
            if total > 0:
                renormalized = [(label, score / total) for label, score in subset]
            else:
                # Degenerate all-zero scores: spread evenly so the subset still sums to 1
                renormalized = [(label, 1.0 / len(subset)) for label, _ in subset]

            best_label, best_score = renormalized[0]
            for label, score in renormalized[1:]:
                if score > best_score:
                    best_label, best_score = label, score

            return StatusPrediction(
                status=best_label.status,
                confidence=best_score,
                progress_percent=progress_percent(best_label.status),
                task_match=True,
                produced_at=produced_at,
            )

        top_label, top_score = parsed[0]
        for label, score in parsed[1:]:
            if score > top_score:
                top_label, top_score = label, score

        logger.warning(
            f"Task mismatch: expected '{known_activity}', classifier top guess '{top_label.activity}'"
        )
        return StatusPrediction(
            status=top_label.status,
            confidence=top_score,
            progress_percent=progress_percent(top_label.status),
            task_match=False,
            produced_at=produced_at,
            predicted_activity=top_label.activity,
        )

    def classify(self, image_path: str, known_activity: str) -> Optional[StatusPrediction]:
        """
        Run the classifier on a photo and interpret the result.

        Classifier problems never reach the caller: an unavailable model or a
        failed inference returns None so the evidence workflow continues.
        Requesting an ineligible activity is a programming error and raises.
        """
        if not is_classifier_eligible(known_activity):
            raise NotClassifierEligible(f"Activity '{known_activity}' is not classifier-eligible")
        if self.handle is None:
            return None

        try:
            runtime = self.handle.get()
        except ModelUnavailable:
            return None

        try:
            raw_output = runtime.run_inference(image_path)
            prediction = self.predict(raw_output, known_activity)
        except NotClassifierEligible:
            raise
        except Exception as e:
            logger.error(f"Inference failed for {image_path}, skipping prediction: {e}")
            return None

        logger.info(
            f"Status prediction for {known_activity}: {prediction.status} "
            f"({prediction.confidence:.2f}, match={prediction.task_match})"
        )
        return prediction
