"""
Effects Replay Handler.
Triggered by SQS (effects retry queue).

Review side effects that failed after a decision was committed are queued
with their attempt number. Each message is replayed through EffectRunner;
anything that fails again is queued once more until EFFECT_MAX_ATTEMPTS.
"""
import json
from shared.effects import EffectRunner, deserialize_effect
from shared.logging import logger

runner = EffectRunner()


def process_record(record) -> bool:
    """
    Replay the effects in one queued message.
    Returns True if every effect applied.
    """
    body = json.loads(record['body'])
    source_id = body.get('sourceId')
    attempt = int(body.get('attempt', 1))
    effects = [deserialize_effect(data) for data in body.get('effects', [])]

    if not effects:
        logger.warning(f"Retry message for {source_id} carries no effects")
        return True

    logger.info(f"Replaying {len(effects)} side effects for {source_id} (attempt {attempt})")
    report = runner.run(effects, attempt=attempt, source_id=source_id)
    return report.ok


def handler(event, context):
    records = event.get('Records', [])
    if not records:
        return {'message': 'No records to process'}

    replayed = 0
    for record in records:
        try:
            if process_record(record):
                replayed += 1
        except Exception as e:
            logger.error(f"Error replaying side effects: {e}")

    return {'message': f'Replayed {replayed} of {len(records)} messages'}
