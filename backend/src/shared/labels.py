"""
Classifier label decoding.

The status model emits compound labels such as ``concrete_pouring_in_progress``.
They are decoded once here into an ``ActivityLabel`` so downstream code never
re-parses raw strings.
"""
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from .logging import logger
from .models import PredictedStatus

# Longest first so "in_progress" never shadows a shorter suffix
_STATUS_SUFFIXES = sorted(PredictedStatus.ALL, key=len, reverse=True)


@dataclass(frozen=True)
class ActivityLabel:
    """A decoded classifier label."""
    activity: str
    status: str
    raw: str
    recognized: bool = True


def parse_label(label: str) -> ActivityLabel:
    """
    Split a classifier label into (activity, status).

    Unknown suffixes fall back to ``in_progress`` with the whole label as the
    activity. That branch is a data-quality signal, so it is logged.

    Args:
        label: Raw classifier label, e.g. "tile_laying_completed"

    Returns:
        ActivityLabel with the activity segment and status
    """
    for status in _STATUS_SUFFIXES:
        suffix = f"_{status}"
        if label.endswith(suffix) and len(label) > len(suffix):
            return ActivityLabel(activity=label[:-len(suffix)], status=status, raw=label)

    logger.warning(f"Unrecognized classifier label '{label}', treating as in_progress")
    return ActivityLabel(
        activity=label,
        status=PredictedStatus.IN_PROGRESS,
        raw=label,
        recognized=False
    )


def parse_output(raw_output: Iterable[Tuple[str, float]]) -> List[Tuple[ActivityLabel, float]]:
    """Decode every (label, score) pair of a classifier run."""
    return [(parse_label(label), float(score)) for label, score in raw_output]
