"""
Module: workflow_kernel.models.workflow
Responsibility: ORM persistence for workflow templates, instances, per-node
    processes and the append-only action log.

Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions only.  Domain DTOs are imported lazily inside to_dto().

Invariants enforced:
    - One pending instance per business entity: partial UNIQUE index on
      (business_type, business_id) WHERE status = 'pending' (PostgreSQL
      and SQLite both honour partial indexes).
    - One process per node: UNIQUE(instance_id, node_index).
    - Pointer bounds: CHECK 0 <= current_node_index < node_count.
    - Lost-update protection: the instance row carries a version counter
      (SQLAlchemy version_id_col); a stale writer fails at flush with
      StaleDataError.
    - Terminal instances are frozen: an ORM listener refuses any column
      change on an instance whose stored status is terminal.
    - Action log rows are append-only: ORM listeners refuse UPDATE/DELETE.

Failure modes:
    - IntegrityError on a second pending instance for the same entity.
    - IntegrityError on a duplicate (instance_id, node_index).
    - StaleDataError on a concurrent instance update.
    - ImmutabilityViolationError on terminal-instance or log mutation.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workflow_kernel.db.base import Base, UUIDString
from workflow_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from workflow_kernel.domain.workflow import (
        ActionLogEntry,
        WorkflowInstance,
        WorkflowProcess,
        WorkflowTemplate,
    )


_TERMINAL_STATUS_VALUES = frozenset({"completed", "rejected", "cancelled"})


class WorkflowTemplateModel(Base):
    """Persistent workflow template.

    The node array is stored as JSON and parsed into typed NodeSpecs once,
    in to_dto().  Running instances never read it back: every node
    attribute a transition needs is copied onto the process rows at Start.
    """

    __tablename__ = "workflow_templates"

    __table_args__ = (
        Index("ix_workflow_templates_category_active", "category", "is_active"),
    )

    code: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    nodes: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    version: Mapped[int] = mapped_column(default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<WorkflowTemplate {self.code} v{self.version} active={self.is_active}>"

    def to_dto(self) -> WorkflowTemplate:
        """Convert ORM model to frozen domain DTO."""
        from workflow_kernel.domain.workflow import (
            WorkflowTemplate as WorkflowTemplateDTO,
            node_specs_from_list,
        )

        return WorkflowTemplateDTO(
            template_id=self.id,
            code=self.code,
            name=self.name,
            category=self.category,
            nodes=node_specs_from_list(list(self.nodes)),
            is_active=self.is_active,
            version=self.version,
            description=self.description,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class WorkflowInstanceModel(Base):
    """Persistent workflow instance.

    Contract:
        ``status`` and ``current_node_index`` are written only by the
        instance manager (start, cancel) and the node processor.
        Once the stored status is terminal, no column may change.
    """

    __tablename__ = "workflow_instances"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed', 'rejected', 'cancelled')",
            name="ck_workflow_instances_valid_status",
        ),
        CheckConstraint(
            "current_node_index >= 0 AND current_node_index < node_count",
            name="ck_workflow_instances_pointer_bounds",
        ),
        CheckConstraint(
            "node_count >= 2",
            name="ck_workflow_instances_min_nodes",
        ),
        Index(
            "uq_workflow_instances_pending_business",
            "business_type", "business_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
        Index(
            "ix_workflow_instances_business",
            "business_type", "business_id", "created_at",
        ),
    )

    business_type: Mapped[str] = mapped_column(String(50), nullable=False)
    business_id: Mapped[str] = mapped_column(String(100), nullable=False)
    business_title: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    template_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("workflow_templates.id"), nullable=False,
    )
    template_code: Mapped[str] = mapped_column(String(100), nullable=False)
    template_version: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    current_node_index: Mapped[int] = mapped_column(default=0, nullable=False)
    node_count: Mapped[int] = mapped_column(nullable=False)
    creator_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    template: Mapped[WorkflowTemplateModel] = relationship(
        "WorkflowTemplateModel",
    )
    processes: Mapped[list["WorkflowProcessModel"]] = relationship(
        "WorkflowProcessModel",
        back_populates="instance",
        order_by="WorkflowProcessModel.node_index",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<WorkflowInstance {self.id} {self.business_type}/{self.business_id} "
            f"status={self.status} node={self.current_node_index}/{self.node_count}>"
        )

    def process_at(self, node_index: int) -> WorkflowProcessModel:
        for process in self.processes:
            if process.node_index == node_index:
                return process
        raise LookupError(f"Instance {self.id} has no process at node {node_index}")

    def to_dto(self) -> WorkflowInstance:
        """Convert ORM model to frozen domain DTO."""
        from workflow_kernel.domain.workflow import (
            InstanceStatus,
            WorkflowInstance as WorkflowInstanceDTO,
        )

        return WorkflowInstanceDTO(
            instance_id=self.id,
            business_type=self.business_type,
            business_id=self.business_id,
            business_title=self.business_title,
            template_id=self.template_id,
            template_code=self.template_code,
            template_version=self.template_version,
            status=InstanceStatus(self.status),
            current_node_index=self.current_node_index,
            node_count=self.node_count,
            creator_id=self.creator_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            resolved_at=self.resolved_at,
            resolved_by=self.resolved_by,
            processes=tuple(p.to_dto() for p in self.processes),
            version=self.version,
        )


class WorkflowProcessModel(Base):
    """Persistent per-node process record.

    Node attributes (name, type, auto-pass flag, time limit) are copied
    from the template at Start and never re-read from it.
    """

    __tablename__ = "workflow_processes"

    __table_args__ = (
        UniqueConstraint(
            "instance_id", "node_index",
            name="uq_workflow_processes_instance_node",
        ),
        CheckConstraint(
            "action IN ('pending', 'approve', 'reject', 'back', 'auto')",
            name="ck_workflow_processes_valid_action",
        ),
        # Pending-task inbox
        Index(
            "ix_workflow_processes_assignee_action",
            "assignee_id", "action", "created_at",
        ),
    )

    instance_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("workflow_instances.id"), nullable=False,
    )
    node_index: Mapped[int] = mapped_column(nullable=False)
    node_name: Mapped[str] = mapped_column(String(200), nullable=False)
    node_type: Mapped[str] = mapped_column(String(20), nullable=False)
    auto_pass: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    time_limit_hours: Mapped[int | None] = mapped_column(nullable=True)
    assignee_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    processor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    action: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    activated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    instance: Mapped[WorkflowInstanceModel] = relationship(
        "WorkflowInstanceModel", back_populates="processes",
    )

    def __repr__(self) -> str:
        return (
            f"<WorkflowProcess {self.id} instance={self.instance_id} "
            f"node={self.node_index} action={self.action}>"
        )

    def to_dto(self) -> WorkflowProcess:
        """Convert ORM model to frozen domain DTO."""
        from workflow_kernel.domain.workflow import (
            NodeType,
            ProcessAction,
            WorkflowProcess as WorkflowProcessDTO,
        )

        return WorkflowProcessDTO(
            process_id=self.id,
            instance_id=self.instance_id,
            node_index=self.node_index,
            node_name=self.node_name,
            node_type=NodeType(self.node_type),
            action=ProcessAction(self.action),
            assignee_id=self.assignee_id,
            processor_id=self.processor_id,
            comment=self.comment,
            processed_at=self.processed_at,
            activated_at=self.activated_at,
            created_at=self.created_at,
            auto_pass=self.auto_pass,
            time_limit_hours=self.time_limit_hours,
        )


class WorkflowActionLogModel(Base):
    """Append-only record of every engine action.

    Back transitions wipe decisions from the process rows; this log is
    where those decisions survive.
    """

    __tablename__ = "workflow_action_log"

    __table_args__ = (
        CheckConstraint(
            "action IN ('start', 'approve', 'reject', 'back', 'auto', "
            "'cancel', 'reassign')",
            name="ck_workflow_action_log_valid_action",
        ),
        Index("ix_workflow_action_log_instance", "instance_id", "created_at"),
    )

    instance_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("workflow_instances.id"), nullable=False,
    )
    process_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    node_index: Mapped[int | None] = mapped_column(nullable=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    from_node_index: Mapped[int | None] = mapped_column(nullable=True)
    to_node_index: Mapped[int | None] = mapped_column(nullable=True)
    # Monotonic within an instance; breaks created_at ties under a fixed clock.
    sequence: Mapped[int] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<WorkflowActionLog {self.id} instance={self.instance_id} "
            f"action={self.action}>"
        )

    def to_dto(self) -> ActionLogEntry:
        """Convert ORM model to frozen domain DTO."""
        from workflow_kernel.domain.workflow import (
            ActionLogEntry as ActionLogEntryDTO,
            LogAction,
        )

        return ActionLogEntryDTO(
            entry_id=self.id,
            instance_id=self.instance_id,
            action=LogAction(self.action),
            process_id=self.process_id,
            node_index=self.node_index,
            actor_id=self.actor_id,
            comment=self.comment,
            from_node_index=self.from_node_index,
            to_node_index=self.to_node_index,
            created_at=self.created_at,
        )


# =============================================================================
# ORM-Level Immutability
# =============================================================================


@event.listens_for(WorkflowInstanceModel, "before_update")
def prevent_terminal_instance_update(mapper, connection, target):
    """Refuse column changes on an instance whose stored status is terminal."""
    state = inspect(target)
    changed = [
        attr.key for attr in mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    ]
    if not changed:
        return

    status_history = state.attrs.status.history
    stored_status = (
        status_history.deleted[0] if status_history.deleted else target.status
    )
    if stored_status in _TERMINAL_STATUS_VALUES:
        raise ImmutabilityViolationError(
            entity_type="WorkflowInstance",
            entity_id=str(target.id),
            reason=f"Instance is {stored_status} -- cannot modify {', '.join(changed)}",
        )


@event.listens_for(WorkflowActionLogModel, "before_update")
def prevent_action_log_update(mapper, connection, target):
    """Prevent updates to action log records."""
    raise ImmutabilityViolationError(
        entity_type="WorkflowActionLog",
        entity_id=str(target.id),
        reason="Action log entries are immutable -- cannot modify",
    )


@event.listens_for(WorkflowActionLogModel, "before_delete")
def prevent_action_log_delete(mapper, connection, target):
    """Prevent deletion of action log records."""
    raise ImmutabilityViolationError(
        entity_type="WorkflowActionLog",
        entity_id=str(target.id),
        reason="Action log entries are immutable -- cannot delete",
    )
