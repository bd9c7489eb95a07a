from datetime import datetime, timezone
from typing import Iterable

from app.domain.schemas import NotificationCreate, Task

TASK_OVERDUE = "task_overdue"


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_overdue(task: Task, now: datetime) -> bool:
    """A task is overdue once its due date has passed and it is still open."""
    if task.completed or task.due_date is None:
        return False
    return _aware(task.due_date) < _aware(now)


def find_overdue_tasks(tasks: Iterable[Task], now: datetime) -> list[Task]:
    return [task for task in tasks if is_overdue(task, now)]


def overdue_notification(task: Task) -> NotificationCreate:
    return NotificationCreate(
        user_id=task.user_id,
        type=TASK_OVERDUE,
        title="Task Overdue",
        message=f'Task "{task.title}" is overdue',
        link=f"/app/tasks?id={task.id}",
        priority="high",
        metadata={
            "taskId": task.id,
            "dueDate": _aware(task.due_date).isoformat() if task.due_date else None,
        },
    )
