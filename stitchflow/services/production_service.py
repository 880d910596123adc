"""Production collaborator: per-section tasks for sections released from their packet."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from stitchflow.core.exceptions import InvalidStateError, NotFoundError
from stitchflow.models.order import OrderItem, SectionStatus
from stitchflow.models.production import ProductionAssignment, ProductionTask, ProductionTaskStatus
from stitchflow.services.state_machine import refresh_order_item_status, transition_section
from stitchflow.services.timeline_service import TimelineService


logger = logging.getLogger(__name__)


class ProductionService:
    """Service for production assignments and tasks."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.timeline = TimelineService(db)

    async def _get_order_item(self, order_item_id: uuid.UUID) -> OrderItem:
        order_item = await self.db.get(OrderItem, order_item_id)
        if not order_item:
            raise NotFoundError(f"Order item {order_item_id} not found")
        return order_item

    async def get_task(self, task_id: uuid.UUID) -> ProductionTask:
        task = await self.db.get(ProductionTask, task_id)
        if not task:
            raise NotFoundError(f"Production task {task_id} not found")
        return task

    async def list_tasks(
        self,
        order_item_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
    ) -> List[ProductionTask]:
        query = select(ProductionTask).order_by(ProductionTask.created_at)
        if order_item_id:
            query = query.where(ProductionTask.order_item_id == order_item_id)
        if status:
            query = query.where(ProductionTask.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def assign_production(
        self,
        order_item_id: uuid.UUID,
        assigned_to: str,
        assigned_by: Optional[str] = None,
    ) -> List[ProductionTask]:
        """Create one task per section that is ready for production and has no task yet."""
        order_item = await self._get_order_item(order_item_id)
        ready = [
            s for s in order_item.sections
            if s.status == SectionStatus.READY_FOR_PRODUCTION.value
        ]
        open_tasks = {
            t.section_key for t in await self.list_tasks(order_item_id=order_item.id)
            if t.status != ProductionTaskStatus.COMPLETED.value
        }
        ready = [s for s in ready if s.section_key not in open_tasks]
        if not ready:
            raise InvalidStateError(
                "No sections are ready for production",
                details={"sections": {s.section_key: s.status for s in order_item.sections}},
            )

        assignment = ProductionAssignment(
            order_id=order_item.order_id,
            order_item_id=order_item.id,
            assigned_to=assigned_to,
            assigned_by=assigned_by,
        )
        self.db.add(assignment)
        await self.db.flush()

        tasks = []
        for section in ready:
            task = ProductionTask(
                assignment_id=assignment.id,
                order_id=order_item.order_id,
                order_item_id=order_item.id,
                section_key=section.section_key,
                status=ProductionTaskStatus.PENDING.value,
                notes=section.alteration_notes if section.is_alteration else None,
            )
            self.db.add(task)
            tasks.append(task)
        await self.db.flush()
        for section, task in zip(ready, tasks):
            section.production_task_id = task.id

        await self.timeline.log(
            order_item.order_id, "PRODUCTION_ASSIGNED",
            f"Production assigned to {assigned_to} for {', '.join(s.section_key for s in ready)}",
            order_item_id=order_item.id, performed_by=assigned_by,
        )
        return tasks

    async def start_task(self, task_id: uuid.UUID, worker: Optional[str] = None) -> ProductionTask:
        task = await self.get_task(task_id)
        if task.status != ProductionTaskStatus.PENDING.value:
            raise InvalidStateError(f"Task already {task.status}", details={"current_status": task.status})
        order_item = await self._get_order_item(task.order_item_id)
        section = self._section_for(order_item, task)

        transition_section(order_item, section, SectionStatus.IN_PRODUCTION)
        task.status = ProductionTaskStatus.IN_PROGRESS.value
        task.worker = worker
        task.started_at = datetime.now(timezone.utc)
        refresh_order_item_status(order_item)
        return task

    async def complete_task(
        self,
        task_id: uuid.UUID,
        notes: Optional[str] = None,
    ) -> ProductionTask:
        task = await self.get_task(task_id)
        if task.status != ProductionTaskStatus.IN_PROGRESS.value:
            raise InvalidStateError(
                f"Task must be IN_PROGRESS to complete (current: {task.status})",
                details={"current_status": task.status},
            )
        order_item = await self._get_order_item(task.order_item_id)
        section = self._section_for(order_item, task)

        transition_section(order_item, section, SectionStatus.PRODUCTION_COMPLETED)
        task.status = ProductionTaskStatus.COMPLETED.value
        task.completed_at = datetime.now(timezone.utc)
        if notes:
            task.notes = notes
        refresh_order_item_status(order_item)

        await self.timeline.log(
            order_item.order_id, "PRODUCTION_COMPLETED", f"Section {section.section_key} produced",
            order_item_id=order_item.id, performed_by=task.worker,
        )
        return task

    async def delete_for_order_items(self, order_item_ids: Iterable[uuid.UUID]) -> int:
        """Remove tasks and assignments; used when an order starts from scratch."""
        ids = list(order_item_ids)
        if not ids:
            return 0
        tasks = await self.db.execute(
            delete(ProductionTask)
            .where(ProductionTask.order_item_id.in_(ids))
            .execution_options(synchronize_session="fetch")
        )
        await self.db.execute(
            delete(ProductionAssignment)
            .where(ProductionAssignment.order_item_id.in_(ids))
            .execution_options(synchronize_session="fetch")
        )
        return tasks.rowcount or 0

    @staticmethod
    def _section_for(order_item: OrderItem, task: ProductionTask):
        section = order_item.get_section(task.section_key)
        if section is None:
            raise NotFoundError(f"Section {task.section_key} no longer exists on order item {order_item.id}")
        return section
