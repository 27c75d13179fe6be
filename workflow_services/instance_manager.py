"""
workflow_services.instance_manager -- Instance lifecycle coordinator.

Responsibility:
    Start, Cancel and Reassign.  Thin coordinator -- template selection
    is delegated to TemplateStore, assignee resolution and initial
    activation to the pure engines, persistence to the kernel
    WorkflowInstanceService.

Architecture position:
    Services layer.  May import from workflow_engines/, workflow_config/
    and workflow_kernel/ (domain, services, selectors).

Invariants enforced:
    - Only active templates with at least two nodes are instantiated.
    - Explicit assignees override the node's assignment rule.
    - Creator-only cancel when ``restrict_cancel_to_creator`` is set.

Failure modes:
    - TemplateNotFoundError / TemplateNotResolvableError / InvalidTemplateError.
    - DuplicateActiveInstanceError (from the kernel service).
    - InstanceNotCancellableError, UnauthorizedActorError on Cancel.
    - ValueError when ``assignees`` names a node index the template lacks.
"""

from __future__ import annotations

from collections.abc import Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from workflow_config.schema import WorkflowConfigSet
from workflow_engines.assignment import AssigneeSource, resolve_assignees
from workflow_engines.transitions import plan_start
from workflow_kernel.domain.clock import Clock
from workflow_kernel.domain.workflow import (
    DiscriminantProvider,
    NodeState,
    ProcessAction,
    UserDirectory,
    WorkflowInstance,
    WorkflowProcess,
    WorkflowTemplate,
)
from workflow_kernel.exceptions import (
    InstanceNotCancellableError,
    InvalidTemplateError,
    UnauthorizedActorError,
)
from workflow_kernel.logging_config import get_logger
from workflow_kernel.services.instance_service import WorkflowInstanceService
from workflow_services.template_store import TemplateStore

logger = get_logger("services.instance_manager")


class InstanceManager:
    """Creates, cancels and reassigns workflow instances."""

    def __init__(
        self,
        session: Session,
        config: WorkflowConfigSet,
        user_directory: UserDirectory,
        discriminant_provider: DiscriminantProvider | None = None,
        clock: Clock | None = None,
    ):
        self._config = config
        self._directory = user_directory
        self._discriminants = discriminant_provider
        self._templates = TemplateStore(session, config, clock)
        self._instances = WorkflowInstanceService(session, clock)

    def start(
        self,
        business_type: str,
        business_id: str | int,
        business_title: str,
        creator_id: UUID,
        template_id: UUID | None = None,
        assignees: Mapping[int, UUID] | None = None,
        discriminant: str | None = None,
    ) -> WorkflowInstance:
        business_id = str(business_id)
        template = self._select_template(business_type, business_id, template_id, discriminant)

        if not template.is_active:
            raise InvalidTemplateError(template.code, "template is inactive")
        if template.node_count < 2:
            raise InvalidTemplateError(
                template.code, f"template has {template.node_count} node(s); at least 2 required",
            )

        resolutions = resolve_assignees(
            template.nodes,
            explicit=assignees,
            directory=self._directory,
            business_type=business_type,
            business_id=business_id,
        )
        for resolution, node in zip(resolutions, template.nodes):
            if resolution.source == AssigneeSource.UNRESOLVED and not node.auto_pass:
                logger.warning(
                    "assignee_unresolved",
                    extra={
                        "business_type": business_type,
                        "business_id": business_id,
                        "template_code": template.code,
                        "node_index": node.index,
                        "node_name": node.name,
                    },
                )

        plan = plan_start([
            NodeState(node.index, ProcessAction.PENDING, node.auto_pass)
            for node in template.nodes
        ])
        return self._instances.create_instance(
            template,
            business_type=business_type,
            business_id=business_id,
            business_title=business_title,
            creator_id=creator_id,
            assignee_ids=[r.assignee_id for r in resolutions],
            plan=plan,
        )

    def cancel(
        self,
        instance_id: UUID,
        actor_id: UUID,
        comment: str | None = None,
    ) -> WorkflowInstance:
        snapshot = self._instances.lock_instance(instance_id)
        if snapshot.is_terminal:
            raise InstanceNotCancellableError(str(instance_id), snapshot.status.value)
        if (
            self._config.settings.restrict_cancel_to_creator
            and snapshot.creator_id != actor_id
        ):
            raise UnauthorizedActorError(
                str(actor_id), str(instance_id), "only the creator may cancel",
            )
        return self._instances.cancel(instance_id, actor_id, comment)

    def reassign(
        self,
        process_id: UUID,
        new_assignee_id: UUID,
        actor_id: UUID,
        comment: str | None = None,
    ) -> WorkflowProcess:
        return self._instances.reassign(process_id, new_assignee_id, actor_id, comment)

    def _select_template(
        self,
        business_type: str,
        business_id: str,
        template_id: UUID | None,
        discriminant: str | None,
    ) -> WorkflowTemplate:
        if template_id is not None:
            return self._templates.get(template_id)
        if discriminant is None and self._discriminants is not None:
            discriminant = self._discriminants.discriminant_for(business_type, business_id)
        return self._templates.resolve_for_business(business_type, discriminant)
