"""
Module: workflow_kernel.selectors.instance_selector
Responsibility: Read paths over instances: lookup by id, latest instance for a
    business entity (the business-status bridge), node history, and the
    append-only action log.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - "Latest" is by creation time; at equal timestamps the pending instance
      (there is at most one) wins.
    - History is ordered by node_index; the action log by its per-instance
      sequence.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import case, select

from workflow_kernel.domain.workflow import (
    ActionLogEntry,
    InstanceStatus,
    WorkflowInstance,
    WorkflowProcess,
)
from workflow_kernel.exceptions import InstanceNotFoundError
from workflow_kernel.models.workflow import (
    WorkflowActionLogModel,
    WorkflowInstanceModel,
    WorkflowProcessModel,
)
from workflow_kernel.selectors.base import BaseSelector


class InstanceSelector(BaseSelector[WorkflowInstanceModel]):
    """Instance, history and action-log queries."""

    def get_instance(self, instance_id: UUID) -> WorkflowInstance:
        model = self.session.get(WorkflowInstanceModel, instance_id)
        if model is None:
            raise InstanceNotFoundError(str(instance_id))
        return model.to_dto()

    def latest_for_business(
        self,
        business_type: str,
        business_id: str,
    ) -> WorkflowInstance | None:
        """Most recent instance for the entity, or None if none ever ran."""
        pending_first = case(
            (WorkflowInstanceModel.status == InstanceStatus.PENDING.value, 0),
            else_=1,
        )
        model = self.session.execute(
            select(WorkflowInstanceModel)
            .where(
                WorkflowInstanceModel.business_type == business_type,
                WorkflowInstanceModel.business_id == str(business_id),
            )
            .order_by(WorkflowInstanceModel.created_at.desc(), pending_first)
            .limit(1)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def instances_for_business(
        self,
        business_type: str,
        business_id: str,
    ) -> list[WorkflowInstance]:
        models = self.session.execute(
            select(WorkflowInstanceModel)
            .where(
                WorkflowInstanceModel.business_type == business_type,
                WorkflowInstanceModel.business_id == str(business_id),
            )
            .order_by(WorkflowInstanceModel.created_at)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def history(self, instance_id: UUID) -> list[WorkflowProcess]:
        """Process rows of the instance, by node_index."""
        self._require_instance(instance_id)
        models = self.session.execute(
            select(WorkflowProcessModel)
            .where(WorkflowProcessModel.instance_id == instance_id)
            .order_by(WorkflowProcessModel.node_index)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def action_log(self, instance_id: UUID) -> list[ActionLogEntry]:
        self._require_instance(instance_id)
        models = self.session.execute(
            select(WorkflowActionLogModel)
            .where(WorkflowActionLogModel.instance_id == instance_id)
            .order_by(WorkflowActionLogModel.sequence)
        ).scalars().all()
        return [m.to_dto() for m in models]

    def _require_instance(self, instance_id: UUID) -> None:
        found = self.session.execute(
            select(WorkflowInstanceModel.id).where(WorkflowInstanceModel.id == instance_id)
        ).scalar_one_or_none()
        if found is None:
            raise InstanceNotFoundError(str(instance_id))
