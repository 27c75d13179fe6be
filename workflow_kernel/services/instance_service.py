"""
workflow_kernel.services.instance_service -- Instance and process persistence.

Responsibility:
    The single mutator path for workflow instances and their process rows.
    Creates an instance with one process per template node, applies
    transition plans computed by the pure state machine, cancels, and
    reassigns -- writing an append-only action log entry for each.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.
    Coordinators in workflow_services decide WHAT happens (engine plans,
    assignee resolution); this service decides nothing and only writes.

Invariants enforced:
    - One pending instance per business entity (checked here, backed by
      the partial unique index).
    - Row locking: every mutation of an existing instance first takes
      ``SELECT ... FOR UPDATE`` on the instance row and re-reads the
      instance and its processes with ``populate_existing``.
    - No stale writes: a transition carries the instance version its plan
      was computed from and is refused if the locked row has moved on.
    - Terminal instances are never written (ORM listener backs this).
    - Every action appends exactly one log row (plus one per auto-passed
      node); the log is never updated.

Failure modes:
    - DuplicateActiveInstanceError when a pending instance exists.
    - InstanceNotFoundError / ProcessNotFoundError for unknown ids.
    - InstanceNotCancellableError when cancelling a terminal instance.
    - IllegalTransitionError when applying or reassigning on a terminal
      instance or a decided process.
    - AlreadyProcessedError when a plan was computed from an outdated
      snapshot.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from workflow_kernel.domain.clock import Clock
from workflow_kernel.domain.workflow import (
    InstanceStatus,
    LogAction,
    ProcessAction,
    TransitionPlan,
    WorkflowInstance,
    WorkflowProcess,
    WorkflowTemplate,
)
from workflow_kernel.exceptions import (
    AlreadyProcessedError,
    DuplicateActiveInstanceError,
    IllegalTransitionError,
    InstanceNotCancellableError,
    InstanceNotFoundError,
    ProcessNotFoundError,
)
from workflow_kernel.logging_config import get_logger
from workflow_kernel.models.workflow import (
    WorkflowActionLogModel,
    WorkflowInstanceModel,
    WorkflowProcessModel,
)
from workflow_kernel.services.base import BaseService

logger = get_logger("services.instance")

_PLAN_EVENTS: dict[LogAction, str] = {
    LogAction.APPROVE: "node_approved",
    LogAction.REJECT: "node_rejected",
    LogAction.BACK: "node_backed",
}


class WorkflowInstanceService(BaseService[WorkflowInstanceModel]):
    """Writes workflow instances, process rows and action log entries."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    # -----------------------------------------------------------------
    # Start
    # -----------------------------------------------------------------

    def create_instance(
        self,
        template: WorkflowTemplate,
        business_type: str,
        business_id: str,
        business_title: str,
        creator_id: UUID,
        assignee_ids: Sequence[UUID | None],
        plan: TransitionPlan,
    ) -> WorkflowInstance:
        """Persist a new instance, one pending process per node, then the start plan.

        Preconditions:
            ``assignee_ids`` has one entry per template node.
            ``plan`` is the start plan for the template's nodes.
        """
        if len(assignee_ids) != template.node_count:
            raise ValueError(
                f"{len(assignee_ids)} assignees for {template.node_count} nodes"
            )

        existing = self.session.execute(
            select(WorkflowInstanceModel.id).where(
                WorkflowInstanceModel.business_type == business_type,
                WorkflowInstanceModel.business_id == business_id,
                WorkflowInstanceModel.status == InstanceStatus.PENDING.value,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateActiveInstanceError(
                business_type, business_id, str(existing),
            )

        now = self.clock.now()
        instance = WorkflowInstanceModel(
            business_type=business_type,
            business_id=business_id,
            business_title=business_title,
            template_id=template.template_id,
            template_code=template.code,
            template_version=template.version,
            status=InstanceStatus.PENDING.value,
            current_node_index=0,
            node_count=template.node_count,
            creator_id=creator_id,
            created_at=now,
            updated_at=now,
        )
        instance.processes = [
            WorkflowProcessModel(
                node_index=node.index,
                node_name=node.name,
                node_type=node.node_type.value,
                auto_pass=node.auto_pass,
                time_limit_hours=node.time_limit_hours,
                assignee_id=assignee_ids[node.index],
                action=ProcessAction.PENDING.value,
                created_at=now,
            )
            for node in template.nodes
        ]
        self.session.add(instance)
        self.session.flush()

        self._append_log(
            instance,
            LogAction.START,
            actor_id=creator_id,
            to_node_index=plan.current_node_index,
            now=now,
        )
        self._apply_plan(instance, plan, actor_id=creator_id, comment=None, now=now)
        self.session.flush()

        logger.info(
            "workflow_started",
            extra={
                "instance_id": str(instance.id),
                "business_type": business_type,
                "business_id": business_id,
                "template_code": template.code,
                "template_version": template.version,
                "node_count": template.node_count,
                "current_node_index": instance.current_node_index,
                "status": instance.status,
            },
        )
        self._log_plan_outcome(instance, plan, actor_id=creator_id)
        return instance.to_dto()

    # -----------------------------------------------------------------
    # Locked reads
    # -----------------------------------------------------------------

    def lock_instance(self, instance_id: UUID) -> WorkflowInstance:
        """Lock the instance row and return a fresh snapshot."""
        return self._lock_instance_model(instance_id).to_dto()

    def lock_instance_for_process(self, process_id: UUID) -> WorkflowInstance:
        """Lock the instance owning ``process_id`` and return a fresh snapshot."""
        return self._lock_model_for_process(process_id).to_dto()

    # -----------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------

    def apply_transition(
        self,
        instance_id: UUID,
        process_id: UUID,
        action: LogAction,
        plan: TransitionPlan,
        actor_id: UUID,
        comment: str | None = None,
        *,
        expected_version: int,
    ) -> WorkflowProcess:
        """Apply a plan for an actor's action on ``process_id``.

        ``plan`` was computed from a snapshot at ``expected_version``.  The
        instance is re-read under the lock first; if another writer has
        moved it on since the snapshot, nothing is written.

        Raises:
            AlreadyProcessedError: the instance changed after the snapshot.
            IllegalTransitionError: the instance is no longer pending.
        """
        instance = self._lock_instance_model(instance_id)
        process = self._process_in(instance, process_id)
        if instance.version != expected_version:
            logger.info(
                "stale_transition_refused",
                extra={
                    "instance_id": str(instance.id),
                    "process_id": str(process_id),
                    "action": action.value,
                    "expected_version": expected_version,
                    "current_version": instance.version,
                },
            )
            raise AlreadyProcessedError(str(process_id), action.value)
        if instance.status != InstanceStatus.PENDING.value:
            raise IllegalTransitionError(
                str(process_id), action.value, f"instance is {instance.status}",
            )

        now = self.clock.now()
        from_index = instance.current_node_index
        self._append_log(
            instance,
            action,
            process=process,
            actor_id=actor_id,
            comment=comment,
            from_node_index=from_index,
            to_node_index=plan.current_node_index,
            now=now,
        )
        self._apply_plan(instance, plan, actor_id=actor_id, comment=comment, now=now)
        self.session.flush()

        logger.info(
            _PLAN_EVENTS.get(action, "node_processed"),
            extra={
                "instance_id": str(instance.id),
                "process_id": str(process.id),
                "node_index": process.node_index,
                "actor_id": str(actor_id),
                "from_node_index": from_index,
                "to_node_index": instance.current_node_index,
                "status": instance.status,
            },
        )
        self._log_plan_outcome(instance, plan, actor_id=actor_id)
        return process.to_dto()

    def cancel(
        self,
        instance_id: UUID,
        actor_id: UUID,
        comment: str | None = None,
    ) -> WorkflowInstance:
        """Cancel a pending instance.  Process rows are left as they are."""
        instance = self._lock_instance_model(instance_id)
        if instance.status != InstanceStatus.PENDING.value:
            raise InstanceNotCancellableError(str(instance_id), instance.status)

        now = self.clock.now()
        self._append_log(
            instance,
            LogAction.CANCEL,
            actor_id=actor_id,
            comment=comment,
            from_node_index=instance.current_node_index,
            now=now,
        )
        instance.status = InstanceStatus.CANCELLED.value
        instance.resolved_at = now
        instance.resolved_by = actor_id
        instance.updated_at = now
        self.session.flush()

        logger.info(
            "workflow_cancelled",
            extra={
                "instance_id": str(instance.id),
                "actor_id": str(actor_id),
                "current_node_index": instance.current_node_index,
            },
        )
        return instance.to_dto()

    def reassign(
        self,
        process_id: UUID,
        new_assignee_id: UUID,
        actor_id: UUID,
        comment: str | None = None,
    ) -> WorkflowProcess:
        """Hand a not-yet-decided node to another user."""
        instance = self._lock_model_for_process(process_id)
        process = self._process_in(instance, process_id)

        if instance.status != InstanceStatus.PENDING.value:
            raise IllegalTransitionError(
                str(process_id), LogAction.REASSIGN.value,
                f"instance is {instance.status}",
            )
        if process.action != ProcessAction.PENDING.value:
            raise IllegalTransitionError(
                str(process_id), LogAction.REASSIGN.value,
                f"node {process.node_index} was already decided ({process.action})",
            )

        now = self.clock.now()
        previous = process.assignee_id
        process.assignee_id = new_assignee_id
        instance.updated_at = now
        self._append_log(
            instance,
            LogAction.REASSIGN,
            process=process,
            actor_id=actor_id,
            comment=comment,
            now=now,
        )
        self.session.flush()

        logger.info(
            "process_reassigned",
            extra={
                "instance_id": str(instance.id),
                "process_id": str(process.id),
                "node_index": process.node_index,
                "previous_assignee_id": str(previous) if previous else None,
                "new_assignee_id": str(new_assignee_id),
                "actor_id": str(actor_id),
            },
        )
        return process.to_dto()

    # -----------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------

    def _apply_plan(
        self,
        instance: WorkflowInstanceModel,
        plan: TransitionPlan,
        *,
        actor_id: UUID,
        comment: str | None,
        now: datetime,
    ) -> None:
        for update in plan.updates:
            process = instance.process_at(update.node_index)
            process.action = update.action.value
            if update.reset:
                process.processor_id = None
                process.processed_at = None
                process.comment = None
                process.activated_at = None
            if update.decided:
                is_auto = update.action == ProcessAction.AUTO
                process.processor_id = None if is_auto else actor_id
                process.comment = None if is_auto else comment
                process.processed_at = now
            if update.activate:
                process.activated_at = now

        for node_index in plan.auto_passed:
            process = instance.process_at(node_index)
            self._append_log(
                instance,
                LogAction.AUTO,
                process=process,
                from_node_index=node_index,
                to_node_index=min(node_index + 1, instance.node_count - 1),
                now=now,
            )

        instance.current_node_index = plan.current_node_index
        instance.status = plan.status.value
        instance.updated_at = now
        if plan.is_terminal:
            instance.resolved_at = now
            instance.resolved_by = actor_id

    def _log_plan_outcome(
        self,
        instance: WorkflowInstanceModel,
        plan: TransitionPlan,
        *,
        actor_id: UUID,
    ) -> None:
        for node_index in plan.auto_passed:
            logger.info(
                "node_auto_passed",
                extra={"instance_id": str(instance.id), "node_index": node_index},
            )
        if plan.status == InstanceStatus.COMPLETED:
            logger.info(
                "workflow_completed",
                extra={
                    "instance_id": str(instance.id),
                    "business_type": instance.business_type,
                    "business_id": instance.business_id,
                    "actor_id": str(actor_id),
                },
            )

    def _append_log(
        self,
        instance: WorkflowInstanceModel,
        action: LogAction,
        *,
        now: datetime,
        process: WorkflowProcessModel | None = None,
        actor_id: UUID | None = None,
        comment: str | None = None,
        from_node_index: int | None = None,
        to_node_index: int | None = None,
    ) -> None:
        last_sequence = self.session.execute(
            select(func.coalesce(func.max(WorkflowActionLogModel.sequence), 0)).where(
                WorkflowActionLogModel.instance_id == instance.id,
            )
        ).scalar_one()
        self.session.add(WorkflowActionLogModel(
            instance_id=instance.id,
            process_id=process.id if process is not None else None,
            node_index=process.node_index if process is not None else None,
            action=action.value,
            actor_id=actor_id,
            comment=comment,
            from_node_index=from_node_index,
            to_node_index=to_node_index,
            sequence=last_sequence + 1,
            created_at=now,
        ))
        # Flush so the next max(sequence) in this transaction sees the row.
        self.session.flush()

    def _lock_instance_model(self, instance_id: UUID) -> WorkflowInstanceModel:
        instance = self.session.execute(
            select(WorkflowInstanceModel)
            .where(WorkflowInstanceModel.id == instance_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if instance is None:
            raise InstanceNotFoundError(str(instance_id))

        self.session.execute(
            select(WorkflowProcessModel)
            .where(WorkflowProcessModel.instance_id == instance_id)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return instance

    def _lock_model_for_process(self, process_id: UUID) -> WorkflowInstanceModel:
        instance_id = self.session.execute(
            select(WorkflowProcessModel.instance_id).where(
                WorkflowProcessModel.id == process_id,
            )
        ).scalar_one_or_none()
        if instance_id is None:
            raise ProcessNotFoundError(str(process_id))
        return self._lock_instance_model(instance_id)

    @staticmethod
    def _process_in(
        instance: WorkflowInstanceModel,
        process_id: UUID,
    ) -> WorkflowProcessModel:
        for process in instance.processes:
            if process.id == process_id:
                return process
        raise ProcessNotFoundError(str(process_id))
