"""
workflow_services.workflow_engine -- The workflow engine facade.

Responsibility:
    The operation set callers use: Start, Process, Cancel, Reassign,
    GetBusinessStatus, GetPendingTasks, History, GetBackableNodes and the
    template management calls.  Each write is one unit of work: commit on
    success, rollback on any error, then post-commit listener delivery.

Architecture position:
    Services -- the outermost layer.  Owns the Session lifecycle; the
    coordinators and kernel services below it only flush.

Invariants enforced:
    - Atomicity: a failed operation leaves no partial mutation.
    - Error mapping: SQLAlchemy failures surface as typed kernel errors
      (StaleDataError -> AlreadyProcessedError on a process or
      InstanceConflictError on an instance, pending-business index
      violation on Start -> DuplicateActiveInstanceError, anything else
      -> StorageError with the driver exception chained).
    - Listener isolation: a failing BusinessStatusListener is logged at
      error level and never undoes a committed change.

Failure modes:
    - Every typed WorkflowKernelError from the layers below propagates
      unchanged after rollback.
    - ValueError for malformed caller input (e.g. assignees for a node
      index the template lacks), after rollback.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from workflow_config.schema import WorkflowConfigSet
from workflow_kernel.db import get_session_factory
from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.workflow import (
    ActionLogEntry,
    BackableNode,
    BusinessStatus,
    DiscriminantProvider,
    InstanceStatus,
    PendingTask,
    TemplateProblem,
    UserDirectory,
    WorkflowAction,
    WorkflowInstance,
    WorkflowProcess,
    WorkflowTemplate,
)
from workflow_kernel.exceptions import (
    AlreadyProcessedError,
    DuplicateActiveInstanceError,
    InstanceConflictError,
    StorageError,
    WorkflowKernelError,
)
from workflow_kernel.logging_config import LogContext, get_logger
from workflow_kernel.selectors.instance_selector import InstanceSelector
from workflow_kernel.selectors.task_selector import TaskSelector
from workflow_kernel.services.template_service import TemplateUpsertResult
from workflow_services.business_status import (
    BusinessStatusBridge,
    BusinessStatusListener,
    project_status,
)
from workflow_services.instance_manager import InstanceManager
from workflow_services.node_processor import NodeProcessor
from workflow_services.template_store import TemplateStore

logger = get_logger("services.workflow_engine")

_PENDING_BUSINESS_INDEX = "uq_workflow_instances_pending_business"


class WorkflowEngine:
    """Transactional entry point to the workflow engine.

    Args:
        config: The active configuration set (``get_active_config()``).
        user_directory: Resolves role and dynamic assignee rules at Start.
        session_factory: Callable returning a new Session.  Defaults to
            the factory configured by ``workflow_kernel.db.init_engine_from_url``.
        discriminant_provider: Supplies routing discriminants when Start is
            called without a template id or explicit discriminant.
        listeners: Business-status listeners notified after commit.
        clock: Time source; SystemClock by default.
    """

    def __init__(
        self,
        config: WorkflowConfigSet,
        user_directory: UserDirectory,
        session_factory: Callable[[], Session] | None = None,
        discriminant_provider: DiscriminantProvider | None = None,
        listeners: Iterable[BusinessStatusListener] = (),
        clock: Clock | None = None,
    ):
        self._config = config
        self._directory = user_directory
        self._session_factory = session_factory or get_session_factory()
        self._discriminants = discriminant_provider
        self._listeners: list[BusinessStatusListener] = list(listeners)
        self._clock = clock or SystemClock()

    @property
    def config(self) -> WorkflowConfigSet:
        return self._config

    def add_listener(self, listener: BusinessStatusListener) -> None:
        self._listeners.append(listener)

    # -----------------------------------------------------------------
    # Instance lifecycle
    # -----------------------------------------------------------------

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
        context = {
            "actor_id": creator_id,
            "business_type": business_type,
            "business_id": str(business_id),
        }
        with self._unit_of_work("start", context) as session:
            instance = self._instance_manager(session).start(
                business_type,
                business_id,
                business_title,
                creator_id,
                template_id=template_id,
                assignees=assignees,
                discriminant=discriminant,
            )
        self._notify(instance)
        return instance

    def process(
        self,
        process_id: UUID,
        action: WorkflowAction | str,
        actor_id: UUID,
        comment: str | None = None,
        back_to_node_index: int | None = None,
    ) -> WorkflowProcess:
        action_value = action.value if isinstance(action, WorkflowAction) else str(action)
        context = {
            "actor_id": actor_id,
            "process_id": process_id,
            "action": action_value,
        }
        with self._unit_of_work("process", context) as session:
            process = self._node_processor(session).process(
                process_id,
                action_value,
                actor_id,
                comment=comment,
                back_to_node_index=back_to_node_index,
            )
            instance = InstanceSelector(session).get_instance(process.instance_id)
        self._notify(instance)
        return process

    def cancel(
        self,
        instance_id: UUID,
        actor_id: UUID,
        comment: str | None = None,
    ) -> WorkflowInstance:
        context = {"actor_id": actor_id, "instance_id": instance_id}
        with self._unit_of_work("cancel", context) as session:
            instance = self._instance_manager(session).cancel(instance_id, actor_id, comment)
        self._notify(instance)
        return instance

    def reassign(
        self,
        process_id: UUID,
        new_assignee_id: UUID,
        actor_id: UUID,
        comment: str | None = None,
    ) -> WorkflowProcess:
        context = {"actor_id": actor_id, "process_id": process_id}
        with self._unit_of_work("reassign", context) as session:
            return self._instance_manager(session).reassign(
                process_id, new_assignee_id, actor_id, comment,
            )

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    def get_business_status(
        self,
        business_type: str,
        business_id: str | int,
    ) -> BusinessStatus:
        with self._read_scope("get_business_status") as session:
            return BusinessStatusBridge(session, self._config).get_business_status(
                business_type, business_id,
            )

    def get_pending_tasks(self, actor_id: UUID) -> list[WorkflowProcess]:
        with self._read_scope("get_pending_tasks") as session:
            return TaskSelector(session).pending_tasks(actor_id)

    def get_pending_task_details(self, actor_id: UUID) -> list[PendingTask]:
        with self._read_scope("get_pending_task_details") as session:
            return TaskSelector(session).pending_task_details(actor_id)

    def count_pending_tasks(self, actor_id: UUID) -> int:
        with self._read_scope("count_pending_tasks") as session:
            return TaskSelector(session).count_pending(actor_id)

    def get_instance(self, instance_id: UUID) -> WorkflowInstance:
        with self._read_scope("get_instance") as session:
            return InstanceSelector(session).get_instance(instance_id)

    def history(self, instance_id: UUID) -> list[WorkflowProcess]:
        with self._read_scope("history") as session:
            return InstanceSelector(session).history(instance_id)

    def action_log(self, instance_id: UUID) -> list[ActionLogEntry]:
        with self._read_scope("action_log") as session:
            return InstanceSelector(session).action_log(instance_id)

    def get_backable_nodes(self, instance_id: UUID) -> list[BackableNode]:
        with self._read_scope("get_backable_nodes") as session:
            return self._node_processor(session).get_backable_nodes(instance_id)

    # -----------------------------------------------------------------
    # Templates
    # -----------------------------------------------------------------

    def get_template(self, template_id: UUID) -> WorkflowTemplate:
        with self._read_scope("get_template") as session:
            return self._template_store(session).get(template_id)

    def resolve_template(
        self,
        business_type: str,
        discriminant: str | None = None,
    ) -> WorkflowTemplate:
        with self._read_scope("resolve_template") as session:
            return self._template_store(session).resolve_for_business(
                business_type, discriminant,
            )

    def list_templates(
        self,
        category: str | None = None,
        active_only: bool = False,
    ) -> list[WorkflowTemplate]:
        with self._read_scope("list_templates") as session:
            return self._template_store(session).list_templates(category, active_only)

    def validate_template(self, nodes: Any) -> list[TemplateProblem]:
        return TemplateStore.validate_template(nodes)

    def create_template(
        self,
        code: str,
        name: str,
        category: str,
        nodes: list[dict[str, Any]],
        description: str = "",
        is_active: bool = True,
    ) -> WorkflowTemplate:
        with self._unit_of_work("create_template", {}) as session:
            return self._template_store(session).create_template(
                code, name, category, nodes,
                description=description, is_active=is_active,
            )

    def replace_template_nodes(
        self,
        template_id: UUID,
        nodes: list[dict[str, Any]],
    ) -> WorkflowTemplate:
        with self._unit_of_work("replace_template_nodes", {}) as session:
            return self._template_store(session).replace_nodes(template_id, nodes)

    def activate_template(self, template_id: UUID) -> WorkflowTemplate:
        with self._unit_of_work("activate_template", {}) as session:
            return self._template_store(session).activate(template_id)

    def deactivate_template(self, template_id: UUID) -> WorkflowTemplate:
        with self._unit_of_work("deactivate_template", {}) as session:
            return self._template_store(session).deactivate(template_id)

    def sync_templates(self) -> list[TemplateUpsertResult]:
        """Upsert the configuration set's templates into storage."""
        with self._unit_of_work("sync_templates", {}) as session:
            return self._template_store(session).sync_from_config()

    # -----------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------

    def _instance_manager(self, session: Session) -> InstanceManager:
        return InstanceManager(
            session,
            self._config,
            self._directory,
            discriminant_provider=self._discriminants,
            clock=self._clock,
        )

    def _node_processor(self, session: Session) -> NodeProcessor:
        return NodeProcessor(session, self._config.settings, clock=self._clock)

    def _template_store(self, session: Session) -> TemplateStore:
        return TemplateStore(session, self._config, clock=self._clock)

    @contextmanager
    def _unit_of_work(
        self,
        operation: str,
        context: dict[str, Any],
    ) -> Iterator[Session]:
        session = self._session_factory()
        bound = {
            k: str(v) for k, v in context.items()
            if k in ("actor_id", "instance_id", "process_id", "business_type", "business_id")
        }
        with LogContext.bind(correlation_id=str(uuid4()), **bound):
            try:
                yield session
                session.commit()
            except WorkflowKernelError as exc:
                session.rollback()
                logger.info(
                    "operation_refused",
                    extra={"operation": operation, "error_code": exc.code},
                )
                raise
            except StaleDataError as exc:
                session.rollback()
                logger.warning(
                    "transaction_rolled_back",
                    extra={"operation": operation, "reason": "stale_data"},
                )
                raise _concurrent_update_error(operation, context) from exc
            except IntegrityError as exc:
                session.rollback()
                logger.warning(
                    "transaction_rolled_back",
                    extra={"operation": operation, "reason": "integrity_error"},
                )
                if operation == "start" and self._is_pending_business_violation(
                    session, exc, context,
                ):
                    raise DuplicateActiveInstanceError(
                        str(context.get("business_type")),
                        str(context.get("business_id")),
                    ) from exc
                raise StorageError(operation, str(exc.orig)) from exc
            except SQLAlchemyError as exc:
                session.rollback()
                logger.error(
                    "transaction_rolled_back",
                    extra={"operation": operation, "reason": type(exc).__name__},
                )
                raise StorageError(operation, str(exc)) from exc
            except Exception:
                session.rollback()
                logger.warning(
                    "transaction_rolled_back",
                    extra={"operation": operation},
                    exc_info=True,
                )
                raise
            finally:
                session.close()

    @staticmethod
    def _is_pending_business_violation(
        session: Session,
        exc: IntegrityError,
        context: dict[str, Any],
    ) -> bool:
        """True when a Start lost the race for the one-pending-per-entity index."""
        diag = getattr(exc.orig, "diag", None)
        constraint = getattr(diag, "constraint_name", None)
        if constraint is not None:
            return constraint == _PENDING_BUSINESS_INDEX
        # SQLite reports columns, not the index name: look for the winner
        return any(
            instance.status == InstanceStatus.PENDING
            for instance in InstanceSelector(session).instances_for_business(
                str(context.get("business_type")), str(context.get("business_id")),
            )
        )

    @contextmanager
    def _read_scope(self, operation: str) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            raise StorageError(operation, str(exc)) from exc
        finally:
            session.close()

    def _notify(self, instance: WorkflowInstance) -> None:
        if not self._listeners:
            return
        status = project_status(self._config, instance)
        for listener in self._listeners:
            try:
                listener.on_status_changed(status)
            except Exception:
                logger.error(
                    "business_status_listener_failed",
                    extra={
                        "listener": type(listener).__name__,
                        "instance_id": str(instance.instance_id),
                        "business_type": instance.business_type,
                        "business_id": instance.business_id,
                    },
                    exc_info=True,
                )


def _concurrent_update_error(
    operation: str,
    context: dict[str, Any],
) -> WorkflowKernelError:
    """Map a lost version check to the error the operation's caller expects."""
    if "process_id" in context:
        return AlreadyProcessedError(
            str(context["process_id"]), str(context.get("action", operation)),
        )
    return InstanceConflictError(str(context.get("instance_id")), operation)
