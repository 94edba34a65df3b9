"""
Side effects of review decisions.

approve/reject return an ordered list of effects instead of performing them.
EffectRunner applies each one independently, so a failed notification never
rolls back or hides an inventory change. Failed effects are serialized onto
the effects retry queue and replayed by handlers/review/replay_effects.py
until they succeed or EFFECT_MAX_ATTEMPTS is reached.
"""
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
from . import inventory, notifications, sqs, tasks
from .config import config
from .logging import logger
from .notifications import NotificationEvent


@dataclass(frozen=True)
class CompleteTask:
    task_id: str
    completed_by: str


@dataclass(frozen=True)
class DecrementStock:
    item_id: str
    quantity: float
    alert_recipient_id: str
    project_id: Optional[str] = None
    # Stock is decremented at most once per submission id
    submission_id: Optional[str] = None


@dataclass(frozen=True)
class MarkEquipmentInUse:
    equipment_id: str
    used_by: str


@dataclass(frozen=True)
class Notify:
    event: NotificationEvent


EFFECT_TYPES = {cls.__name__: cls for cls in (CompleteTask, DecrementStock, MarkEquipmentInUse, Notify)}


def serialize_effect(effect) -> Dict[str, Any]:
    return {'type': type(effect).__name__, 'fields': asdict(effect)}


def deserialize_effect(data: Dict[str, Any]):
    """
    Rebuild an effect from its queued form.

    Raises:
        ValueError: Unknown effect type or malformed fields
    """
    effect_type = EFFECT_TYPES.get(data.get('type'))
    if effect_type is None:
        raise ValueError(f"Unknown effect type {data.get('type')!r}")

    fields = dict(data.get('fields') or {})
    try:
        if effect_type is Notify:
            fields['event'] = NotificationEvent(**fields['event'])
        return effect_type(**fields)
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed {effect_type.__name__} effect: {e}") from e


def defer_effects(effects: List[Any], attempt: int, source_id: Optional[str] = None) -> bool:
    """Queue effects for another attempt. Returns False if they could not be queued."""
    return sqs.send_message(config.EFFECTS_RETRY_QUEUE_URL, {
        'sourceId': source_id,
        'attempt': attempt,
        'effects': [serialize_effect(e) for e in effects]
    })


@dataclass
class EffectReport:
    applied: List[Any] = field(default_factory=list)
    failed: List[Tuple[Any, str]] = field(default_factory=list)
    deferred: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            'applied': [type(e).__name__ for e in self.applied],
            'failed': [{'effect': type(e).__name__, 'error': err} for e, err in self.failed],
            'deferred': self.deferred
        }


class NotificationNotQueued(Exception):
    pass


class EffectRunner:
    """Executes review side effects against the stores and the dispatcher."""

    def __init__(
        self,
        complete_task: Callable = tasks.complete_task,
        decrement_stock: Callable = inventory.decrement_stock,
        mark_equipment_in_use: Callable = inventory.mark_equipment_in_use,
        dispatch: Callable[[NotificationEvent], bool] = notifications.dispatch,
        defer: Callable[..., bool] = defer_effects
    ):
        self._complete_task = complete_task
        self._decrement_stock = decrement_stock
        self._mark_equipment_in_use = mark_equipment_in_use
        self._dispatch = dispatch
        self._defer = defer

    def run(self, effects: List[Any], attempt: int = 1, source_id: Optional[str] = None) -> EffectReport:
        """
        Apply effects in order.

        Args:
            effects: Effects to apply
            attempt: 1 for the first run, incremented on each replay
            source_id: Submission the effects belong to, for logs and the retry queue
        """
        report = EffectReport()
        queue = list(effects)

        while queue:
            effect = queue.pop(0)
            try:
                follow_ups = self._apply(effect)
            except Exception as e:
                logger.error(f"Side effect {effect} failed (attempt {attempt}): {e}")
                report.failed.append((effect, str(e)))
                continue
            report.applied.append(effect)
            # Follow-ups run right after the effect that produced them
            queue[0:0] = follow_ups

        retryable = [e for e, _ in report.failed if type(e) in EFFECT_TYPES.values()]
        if retryable:
            if attempt >= config.EFFECT_MAX_ATTEMPTS:
                logger.error(f"Giving up on {len(retryable)} side effects for {source_id} after {attempt} attempts")
            else:
                report.deferred = self._defer(retryable, attempt + 1, source_id)
                if not report.deferred:
                    logger.error(f"Could not queue {len(retryable)} failed side effects for {source_id}")

        return report

    def _apply(self, effect) -> List[Any]:
        if isinstance(effect, CompleteTask):
            self._complete_task(effect.task_id, effect.completed_by)
            return []

        if isinstance(effect, DecrementStock):
            level = self._decrement_stock(effect.item_id, effect.quantity, submission_id=effect.submission_id)
            if level.is_low:
                logger.warning(f"Low stock for {effect.item_id}: {level.remaining} remaining")
                return [Notify(notifications.low_stock(
                    effect.alert_recipient_id,
                    effect.item_id,
                    level.remaining,
                    unit=level.unit,
                    project_id=effect.project_id,
                    item_name=level.name
                ))]
            return []

        if isinstance(effect, MarkEquipmentInUse):
            self._mark_equipment_in_use(effect.equipment_id, effect.used_by)
            return []

        if isinstance(effect, Notify):
            if not self._dispatch(effect.event):
                raise NotificationNotQueued(f"{effect.event.kind} for {effect.event.recipient_id}")
            return []

        raise TypeError(f"Unknown side effect: {effect!r}")
