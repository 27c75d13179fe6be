"""
workflow_services.node_processor -- Node Processor coordinator.

Responsibility:
    Executes approve / reject / back against a process.  Locks the owning
    instance, validates the action against the fresh snapshot with the
    pure transition engine, plans the effects and hands the plan to the
    kernel WorkflowInstanceService to persist.

Architecture position:
    Services layer.  May import from workflow_engines/ and workflow_kernel/.

Invariants enforced:
    - Only the active node of a pending instance is actionable.
    - No double decision: the precondition is re-checked on the locked
      snapshot; a node that is no longer pending raises AlreadyProcessedError.
    - Assignee enforcement when ``enforce_assignee`` is set.

Failure modes:
    - ProcessNotFoundError / InstanceNotFoundError.
    - IllegalTransitionError, AlreadyProcessedError, UnauthorizedActorError.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from workflow_config.schema import EngineSettings
from workflow_engines.transitions import (
    backable_node_indices,
    check_transition,
    plan_transition,
)
from workflow_kernel.domain.clock import Clock
from workflow_kernel.domain.workflow import (
    BackableNode,
    LogAction,
    NodeState,
    ProcessAction,
    WorkflowAction,
    WorkflowInstance,
    WorkflowProcess,
)
from workflow_kernel.exceptions import (
    AlreadyProcessedError,
    IllegalTransitionError,
    ProcessNotFoundError,
    UnauthorizedActorError,
)
from workflow_kernel.logging_config import get_logger
from workflow_kernel.selectors.instance_selector import InstanceSelector
from workflow_kernel.services.instance_service import WorkflowInstanceService

logger = get_logger("services.node_processor")


def node_states(instance: WorkflowInstance) -> list[NodeState]:
    return [
        NodeState(p.node_index, p.action, p.auto_pass)
        for p in instance.processes
    ]


class NodeProcessor:
    """Validates and applies actor decisions on workflow nodes."""

    def __init__(
        self,
        session: Session,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
    ):
        self._settings = settings or EngineSettings()
        self._instances = WorkflowInstanceService(session, clock)
        self._selector = InstanceSelector(session)

    def process(
        self,
        process_id: UUID,
        action: WorkflowAction | str,
        actor_id: UUID,
        comment: str | None = None,
        back_to_node_index: int | None = None,
    ) -> WorkflowProcess:
        action_value = action.value if isinstance(action, WorkflowAction) else str(action)

        snapshot = self._instances.lock_instance_for_process(process_id)
        target = _process_by_id(snapshot, process_id)

        try:
            requested = WorkflowAction(action_value)
        except ValueError:
            raise IllegalTransitionError(
                str(process_id), action_value, f"unknown action {action_value!r}",
            ) from None

        reason = check_transition(
            status=snapshot.status,
            current_node_index=snapshot.current_node_index,
            nodes=node_states(snapshot),
            target_node_index=target.node_index,
            action=action_value,
            back_to_node_index=back_to_node_index,
        )
        if reason is not None:
            logger.info(
                "transition_refused",
                extra={
                    "instance_id": str(snapshot.instance_id),
                    "process_id": str(process_id),
                    "node_index": target.node_index,
                    "action": action_value,
                    "reason": reason,
                },
            )
            if target.action != ProcessAction.PENDING:
                raise AlreadyProcessedError(str(process_id), action_value)
            raise IllegalTransitionError(str(process_id), action_value, reason)

        if (
            self._settings.enforce_assignee
            and target.assignee_id is not None
            and target.assignee_id != actor_id
        ):
            raise UnauthorizedActorError(
                str(actor_id), str(process_id), "actor is not the node's assignee",
            )

        plan = plan_transition(
            status=snapshot.status,
            current_node_index=snapshot.current_node_index,
            nodes=node_states(snapshot),
            action=action_value,
            back_to_node_index=back_to_node_index,
        )
        return self._instances.apply_transition(
            snapshot.instance_id,
            process_id,
            LogAction(requested.value),
            plan,
            actor_id=actor_id,
            comment=comment,
            expected_version=snapshot.version,
        )

    def get_backable_nodes(self, instance_id: UUID) -> list[BackableNode]:
        """Approved nodes below the pointer, for the "back to" picker."""
        instance = self._selector.get_instance(instance_id)
        indices = backable_node_indices(
            status=instance.status,
            current_node_index=instance.current_node_index,
            nodes=node_states(instance),
        )
        by_index = {p.node_index: p for p in instance.processes}
        return [
            BackableNode(
                node_index=i,
                node_name=by_index[i].node_name,
                processed_at=by_index[i].processed_at,
                processor_id=by_index[i].processor_id,
            )
            for i in indices
        ]


def _process_by_id(instance: WorkflowInstance, process_id: UUID) -> WorkflowProcess:
    for process in instance.processes:
        if process.process_id == process_id:
            return process
    raise ProcessNotFoundError(str(process_id))
