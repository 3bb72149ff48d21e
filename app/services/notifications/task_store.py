from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Task


class TaskStore:
    """Read-only queries over the tasks owned by the task application."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, task_id: str) -> Optional[Task]:
        return await self.db.get(Task, task_id)

    async def list_incomplete(self) -> List[Task]:
        result = await self.db.execute(
            select(Task).where(Task.completed.is_(False)).order_by(Task.created_at)
        )
        return list(result.scalars().all())

    async def list_incomplete_with_due_date(self) -> List[Task]:
        result = await self.db.execute(
            select(Task)
            .where(Task.completed.is_(False), Task.due_date.is_not(None))
            .order_by(Task.due_date)
        )
        return list(result.scalars().all())

    async def list_schedulable(self) -> List[Task]:
        """Incomplete tasks that carry a due date or a weekday schedule."""
        result = await self.db.execute(
            select(Task)
            .where(
                Task.completed.is_(False),
                or_(Task.due_date.is_not(None), Task.available_days.is_not(None)),
            )
            .order_by(Task.created_at)
        )
        # JSON "[]" is not NULL; empty schedules are filtered here
        return [
            task
            for task in result.scalars().all()
            if task.due_date is not None or task.has_weekday_schedule
        ]
