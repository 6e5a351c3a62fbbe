"""Recurring task templates — cloned into a sprint when its predecessor completes."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.enums import TaskStatus
from src.models.task import Task
from src.models.task_template import TaskTemplate

logger = logging.getLogger(__name__)


class TaskTemplateService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def clone_recurring_templates(self, sprint_id: uuid.UUID) -> int:
        """Create one ``todo`` task per active recurring template in ``sprint_id``.

        Templates that already have a task in the sprint are skipped, so a
        repeated call clones nothing new. Returns the number of tasks created.
        """
        templates = (
            await self.db.execute(
                select(TaskTemplate)
                .where(TaskTemplate.is_recurring.is_(True), TaskTemplate.is_active.is_(True))
                .order_by(TaskTemplate.created_at.asc())
            )
        ).scalars().all()
        if not templates:
            return 0

        existing = set(
            (
                await self.db.execute(
                    select(Task.template_id).where(
                        Task.sprint_id == sprint_id, Task.template_id.is_not(None)
                    )
                )
            ).scalars().all()
        )

        cloned = 0
        for template in templates:
            if template.id in existing:
                continue
            self.db.add(
                Task(
                    title=template.title,
                    description=template.description,
                    points=template.points,
                    status=TaskStatus.TODO,
                    sprint_id=sprint_id,
                    template_id=template.id,
                )
            )
            cloned += 1

        if cloned:
            await self.db.flush()
            logger.info("Cloned %d recurring task(s) into sprint %s", cloned, sprint_id)
        return cloned
