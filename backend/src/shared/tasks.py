"""
Task and project records used by the verification flow.
"""
from datetime import datetime, timezone
from typing import Optional
from . import dynamo
from .config import config
from .errors import StorageError
from .logging import logger
from .models import Task, TaskStatus


def get_task(task_id: str) -> Optional[Task]:
    item = dynamo.get_item(config.TASKS_TABLE, {'taskId': task_id})
    return Task.from_item(item) if item else None


def complete_task(task_id: str, completed_by: str, now: Optional[datetime] = None) -> None:
    """Mark a task completed and stamp its actual end date."""
    now = now or datetime.now(timezone.utc)
    dynamo.update_item(
        config.TASKS_TABLE,
        key={'taskId': task_id},
        update_expression='SET #status = :completed, actualEndDate = :end, updatedAt = :ts, completedBy = :by',
        expression_names={'#status': 'status'},
        expression_values={
            ':completed': TaskStatus.COMPLETED,
            ':end': now.date().isoformat(),
            ':ts': now.isoformat(),
            ':by': completed_by
        }
    )
    logger.info(f"Task {task_id} auto-completed by {completed_by}")


def get_project_engineer_id(project_id: str) -> Optional[str]:
    """Engineer responsible for reviewing a project's submissions."""
    try:
        item = dynamo.get_item(config.PROJECTS_TABLE, {'projectId': project_id})
    except StorageError:
        return None
    if not item:
        logger.warning(f"Project {project_id} not found")
        return None
    return item.get('engineerId')
