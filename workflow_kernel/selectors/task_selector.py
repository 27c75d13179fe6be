"""
Module: workflow_kernel.selectors.task_selector
Responsibility: The per-actor pending-task inbox.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - A task is a process that is pending, sits at its instance's
      current_node_index, is assigned to the actor, and belongs to a
      pending instance.  Future nodes assigned to the actor are not tasks.
    - FIFO: ordered by process creation time, then instance creation time,
      then process id, so the order is stable across calls.
    - Pure read: nothing is marked as viewed.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from workflow_kernel.domain.workflow import (
    InstanceStatus,
    PendingTask,
    ProcessAction,
    WorkflowProcess,
)
from workflow_kernel.models.workflow import (
    WorkflowInstanceModel,
    WorkflowProcessModel,
    WorkflowTemplateModel,
)
from workflow_kernel.selectors.base import BaseSelector


class TaskSelector(BaseSelector[WorkflowProcessModel]):
    """Pending-task queries."""

    def _pending_stmt(self, actor_id: UUID):
        return (
            select(WorkflowProcessModel, WorkflowInstanceModel, WorkflowTemplateModel)
            .join(
                WorkflowInstanceModel,
                WorkflowProcessModel.instance_id == WorkflowInstanceModel.id,
            )
            .join(
                WorkflowTemplateModel,
                WorkflowInstanceModel.template_id == WorkflowTemplateModel.id,
            )
            .where(
                WorkflowProcessModel.assignee_id == actor_id,
                WorkflowProcessModel.action == ProcessAction.PENDING.value,
                WorkflowProcessModel.node_index == WorkflowInstanceModel.current_node_index,
                WorkflowInstanceModel.status == InstanceStatus.PENDING.value,
            )
            .order_by(
                WorkflowProcessModel.created_at,
                WorkflowInstanceModel.created_at,
                WorkflowProcessModel.id,
            )
        )

    def pending_tasks(self, actor_id: UUID) -> list[WorkflowProcess]:
        rows = self.session.execute(self._pending_stmt(actor_id)).all()
        return [process.to_dto() for process, _instance, _template in rows]

    def pending_task_details(self, actor_id: UUID) -> list[PendingTask]:
        rows = self.session.execute(self._pending_stmt(actor_id)).all()
        return [
            PendingTask(
                process=process.to_dto(),
                business_type=instance.business_type,
                business_id=instance.business_id,
                business_title=instance.business_title,
                template_code=instance.template_code,
                template_name=template.name,
                node_count=instance.node_count,
                instance_created_at=instance.created_at,
            )
            for process, instance, template in rows
        ]

    def count_pending(self, actor_id: UUID) -> int:
        return len(self.session.execute(self._pending_stmt(actor_id)).all())
