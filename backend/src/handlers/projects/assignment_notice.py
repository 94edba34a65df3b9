"""
Project Assignment Notice Handler.
Triggered by DynamoDB Streams on the project assignments table.
Tells a worker they were added to a project.
"""
from boto3.dynamodb.types import TypeDeserializer
from shared import notifications
from shared.logging import logger

_deserializer = TypeDeserializer()


def _image(record: dict) -> dict:
    raw = record.get('dynamodb', {}).get('NewImage', {})
    return {k: _deserializer.deserialize(v) for k, v in raw.items()}


def process_record(record) -> bool:
    """
    Queue a project_assignment notification for a new assignment.
    Returns True if a notification was queued.
    """
    image = _image(record)
    worker_id = image.get('workerId')
    project_id = image.get('projectId')

    if not worker_id or not project_id:
        logger.warning(f"Assignment record missing workerId/projectId: {image}")
        return False

    event = notifications.project_assignment(worker_id, project_id, image.get('assignmentId'))
    return notifications.dispatch(event)


def handler(event, context):
    records = event.get('Records', [])
    if not records:
        return {'message': 'No records to process'}

    sent = 0
    for record in records:
        if record.get('eventName') != 'INSERT':
            continue
        try:
            if process_record(record):
                sent += 1
        except Exception as e:
            logger.error(f"Error processing assignment record: {e}")

    return {'message': f'Queued {sent} assignment notices'}
