"""
Workflow domain types (``workflow_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the template-driven sequential approval engine.
Defines the instance lifecycle, the per-node process actions, the
strongly-typed node specification with its assignee rule variants, and
the immutable DTOs that services and selectors hand to callers.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Instance lifecycle -- ``INSTANCE_TRANSITIONS`` defines the only valid
  status transitions.  Terminal states have no outgoing edges.
* Typed node list -- JSON node arrays are parsed into ``NodeSpec`` once,
  at the template boundary (``node_specs_from_list``).  Malformed nodes
  raise ``ValueError`` there and never reach a transition.
* Active node derivation -- the active process is the one whose
  ``node_index`` equals ``current_node_index``; there is no separate
  "active" flag to drift out of sync.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Protocol, Union
from uuid import UUID


# =========================================================================
# Lifecycle enums
# =========================================================================


class InstanceStatus(str, Enum):
    """Workflow instance lifecycle states."""

    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


INSTANCE_TRANSITIONS: dict[InstanceStatus, frozenset[InstanceStatus]] = {
    InstanceStatus.PENDING: frozenset({
        InstanceStatus.COMPLETED,
        InstanceStatus.REJECTED,
        InstanceStatus.CANCELLED,
    }),
    InstanceStatus.COMPLETED: frozenset(),
    InstanceStatus.REJECTED: frozenset(),
    InstanceStatus.CANCELLED: frozenset(),
}

TERMINAL_INSTANCE_STATUSES: frozenset[InstanceStatus] = frozenset({
    InstanceStatus.COMPLETED,
    InstanceStatus.REJECTED,
    InstanceStatus.CANCELLED,
})


class ProcessAction(str, Enum):
    """Recorded state of a single node's process row."""

    PENDING = "pending"
    APPROVE = "approve"
    REJECT = "reject"
    BACK = "back"
    AUTO = "auto"


class WorkflowAction(str, Enum):
    """Actions an actor may request against the active node."""

    APPROVE = "approve"
    REJECT = "reject"
    BACK = "back"


# A node can be a back target only if an actor approved it.
BACKABLE_ACTIONS: frozenset[ProcessAction] = frozenset({ProcessAction.APPROVE})


class NodeType(str, Enum):
    """Display category of a template node."""

    START = "start"
    REVIEW = "review"
    HANDLE = "handle"
    ASSIGN = "assign"
    CHECK = "check"
    NOTIFY = "notify"
    END = "end"


class LogAction(str, Enum):
    """Entry kinds in the append-only workflow action log."""

    START = "start"
    APPROVE = "approve"
    REJECT = "reject"
    BACK = "back"
    AUTO = "auto"
    CANCEL = "cancel"
    REASSIGN = "reassign"


def can_transition(current: InstanceStatus, target: InstanceStatus) -> bool:
    return target in INSTANCE_TRANSITIONS.get(current, frozenset())


# =========================================================================
# Assignee rules
# =========================================================================


@dataclass(frozen=True)
class FixedAssignee:
    """A fixed user, or a candidate pool of users of which the first is taken."""

    user_ids: tuple[UUID, ...]

    def __post_init__(self) -> None:
        if not self.user_ids:
            raise ValueError("FixedAssignee requires at least one user id")

    @property
    def user_id(self) -> UUID:
        return self.user_ids[0]


@dataclass(frozen=True)
class RoleAssignee:
    """Resolved through the user directory by role code."""

    role_code: str


@dataclass(frozen=True)
class DynamicAssignee:
    """Resolved through a named resolver against the business entity."""

    resolver_key: str


AssigneeRule = Union[FixedAssignee, RoleAssignee, DynamicAssignee]


def assignee_rule_from_dict(data: dict[str, Any] | None) -> AssigneeRule | None:
    """Parse the persisted/YAML form of an assignee rule.

    Accepted shapes::

        {"kind": "fixed", "user_ids": ["<uuid>", ...]}
        {"kind": "role", "role_code": "case_reviewer"}
        {"kind": "dynamic", "resolver_key": "case.business_person"}
    """
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError(f"Assignee rule must be a mapping, got {type(data).__name__}")

    kind = data.get("kind")
    if kind == "fixed":
        raw_ids = data.get("user_ids")
        if raw_ids is None and data.get("user_id") is not None:
            raw_ids = [data["user_id"]]
        if not raw_ids:
            raise ValueError("Fixed assignee rule needs user_ids")
        return FixedAssignee(user_ids=tuple(UUID(str(u)) for u in raw_ids))
    if kind == "role":
        role_code = data.get("role_code")
        if not role_code:
            raise ValueError("Role assignee rule needs role_code")
        return RoleAssignee(role_code=str(role_code))
    if kind == "dynamic":
        resolver_key = data.get("resolver_key")
        if not resolver_key:
            raise ValueError("Dynamic assignee rule needs resolver_key")
        return DynamicAssignee(resolver_key=str(resolver_key))
    raise ValueError(f"Unknown assignee rule kind: {kind!r}")


def assignee_rule_to_dict(rule: AssigneeRule | None) -> dict[str, Any] | None:
    if rule is None:
        return None
    if isinstance(rule, FixedAssignee):
        return {"kind": "fixed", "user_ids": [str(u) for u in rule.user_ids]}
    if isinstance(rule, RoleAssignee):
        return {"kind": "role", "role_code": rule.role_code}
    return {"kind": "dynamic", "resolver_key": rule.resolver_key}


# =========================================================================
# Node specification
# =========================================================================


@dataclass(frozen=True)
class NodeSpec:
    """One node of a workflow template.

    ``index`` always equals the node's position in the template's node
    tuple.  ``auto_pass`` nodes are decided by the engine itself as soon
    as they become active.
    """

    index: int
    name: str
    node_type: NodeType = NodeType.REVIEW
    assignee: AssigneeRule | None = None
    auto_pass: bool = False
    time_limit_hours: int | None = None
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "node_type": self.node_type.value,
            "assignee": assignee_rule_to_dict(self.assignee),
            "auto_pass": self.auto_pass,
            "time_limit_hours": self.time_limit_hours,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, index: int, data: dict[str, Any]) -> NodeSpec:
        if not isinstance(data, dict):
            raise ValueError(f"Node {index} must be a mapping")
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"Node {index} has no name")
        time_limit = data.get("time_limit_hours")
        if time_limit is not None:
            time_limit = int(time_limit)
        return cls(
            index=index,
            name=name.strip(),
            node_type=NodeType(data.get("node_type", NodeType.REVIEW.value)),
            assignee=assignee_rule_from_dict(data.get("assignee")),
            auto_pass=bool(data.get("auto_pass", False)),
            time_limit_hours=time_limit,
            description=str(data.get("description") or ""),
        )


def node_specs_from_list(raw_nodes: list[dict[str, Any]]) -> tuple[NodeSpec, ...]:
    """Parse a JSON/YAML node array into typed NodeSpecs (indices by position)."""
    if not isinstance(raw_nodes, list):
        raise ValueError("Template nodes must be a list")
    return tuple(NodeSpec.from_dict(i, node) for i, node in enumerate(raw_nodes))


def node_specs_to_list(nodes: tuple[NodeSpec, ...]) -> list[dict[str, Any]]:
    return [node.to_dict() for node in nodes]


# =========================================================================
# DTOs
# =========================================================================


@dataclass(frozen=True)
class WorkflowTemplate:
    """Immutable snapshot of a workflow template."""

    template_id: UUID
    code: str
    name: str
    category: str
    nodes: tuple[NodeSpec, ...]
    is_active: bool = True
    version: int = 1
    description: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def node_count(self) -> int:
        return len(self.nodes)


@dataclass(frozen=True)
class WorkflowProcess:
    """Immutable snapshot of one node's process record."""

    process_id: UUID
    instance_id: UUID
    node_index: int
    node_name: str
    node_type: NodeType
    action: ProcessAction
    assignee_id: UUID | None = None
    processor_id: UUID | None = None
    comment: str | None = None
    processed_at: datetime | None = None
    activated_at: datetime | None = None
    created_at: datetime | None = None
    auto_pass: bool = False
    time_limit_hours: int | None = None

    @property
    def is_pending(self) -> bool:
        return self.action == ProcessAction.PENDING

    @property
    def due_at(self) -> datetime | None:
        if self.activated_at is None or self.time_limit_hours is None:
            return None
        return self.activated_at + timedelta(hours=self.time_limit_hours)


@dataclass(frozen=True)
class WorkflowInstance:
    """Immutable snapshot of a workflow instance and its ordered processes."""

    instance_id: UUID
    business_type: str
    business_id: str
    business_title: str
    template_id: UUID
    template_code: str
    template_version: int
    status: InstanceStatus
    current_node_index: int
    node_count: int
    creator_id: UUID
    created_at: datetime | None = None
    updated_at: datetime | None = None
    resolved_at: datetime | None = None
    resolved_by: UUID | None = None
    processes: tuple[WorkflowProcess, ...] = ()
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_INSTANCE_STATUSES

    @property
    def active_process(self) -> WorkflowProcess | None:
        """The workable process, or None once the instance is terminal."""
        if self.is_terminal:
            return None
        for process in self.processes:
            if process.node_index == self.current_node_index:
                return process
        return None

    @property
    def current_node_name(self) -> str | None:
        for process in self.processes:
            if process.node_index == self.current_node_index:
                return process.node_name
        return None

    def progress_percentage(self) -> int:
        if self.status == InstanceStatus.COMPLETED:
            return 100
        if self.node_count <= 0:
            return 0
        return self.current_node_index * 100 // self.node_count


@dataclass(frozen=True)
class ActionLogEntry:
    """One append-only record of an engine action."""

    entry_id: UUID
    instance_id: UUID
    action: LogAction
    process_id: UUID | None = None
    node_index: int | None = None
    actor_id: UUID | None = None
    comment: str | None = None
    from_node_index: int | None = None
    to_node_index: int | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class BackableNode:
    """A previously approved node the active pointer may be sent back to."""

    node_index: int
    node_name: str
    processed_at: datetime | None
    processor_id: UUID | None


@dataclass(frozen=True)
class PendingTask:
    """Inbox row: an active process plus the business context around it."""

    process: WorkflowProcess
    business_type: str
    business_id: str
    business_title: str
    template_code: str
    template_name: str
    node_count: int
    instance_created_at: datetime | None = None

    @property
    def due_at(self) -> datetime | None:
        return self.process.due_at


@dataclass(frozen=True)
class BusinessStatus:
    """What the business entity sees: latest instance plus projected label.

    ``instance`` is None when no workflow has ever run for the entity.
    """

    business_type: str
    business_id: str
    instance: WorkflowInstance | None = None
    status_label: str | None = None

    @property
    def has_workflow(self) -> bool:
        return self.instance is not None


# =========================================================================
# Collaborator protocols
# =========================================================================


class UserDirectory(Protocol):
    """External user directory consulted when resolving node assignees."""

    def users_with_role(self, role_code: str) -> list[UUID]:
        """Users holding ``role_code``, in directory order."""
        ...

    def resolve_dynamic(
        self,
        resolver_key: str,
        business_type: str,
        business_id: str,
    ) -> UUID | None:
        """Resolve a per-entity assignee (e.g. the case's business person)."""
        ...


class DiscriminantProvider(Protocol):
    """Supplies the routing discriminant (e.g. case sub-type) for an entity."""

    def discriminant_for(self, business_type: str, business_id: str) -> str | None:
        ...


@dataclass
class StaticUserDirectory:
    """In-memory ``UserDirectory`` for scripts and tests."""

    roles: dict[str, list[UUID]] = field(default_factory=dict)
    dynamic: dict[tuple[str, str, str], UUID] = field(default_factory=dict)

    def users_with_role(self, role_code: str) -> list[UUID]:
        return list(self.roles.get(role_code, []))

    def resolve_dynamic(
        self,
        resolver_key: str,
        business_type: str,
        business_id: str,
    ) -> UUID | None:
        return self.dynamic.get((resolver_key, business_type, str(business_id)))


# =========================================================================
# Transition planning types (produced by workflow_engines, applied by
# the kernel instance service)
# =========================================================================


@dataclass(frozen=True)
class NodeState:
    """The slice of a process row the state machine needs."""

    node_index: int
    action: ProcessAction
    auto_pass: bool = False


@dataclass(frozen=True)
class ProcessUpdate:
    """One process row change.

    ``decided`` rows get the actor, comment and timestamp written;
    ``reset`` rows have them cleared.  ``activate`` stamps activated_at.
    """

    node_index: int
    action: ProcessAction
    decided: bool = False
    reset: bool = False
    activate: bool = False


@dataclass(frozen=True)
class TransitionPlan:
    """Result of planning one action (or the initial activation at Start)."""

    status: InstanceStatus
    current_node_index: int
    updates: tuple[ProcessUpdate, ...] = ()
    auto_passed: tuple[int, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.status != InstanceStatus.PENDING


# =========================================================================
# Template routing and validation types
# =========================================================================


WILDCARD_DISCRIMINANT = "*"


@dataclass(frozen=True)
class RoutingRule:
    """Maps a business type (and optional sub-type) to a template code."""

    business_type: str
    template_code: str
    discriminant: str = WILDCARD_DISCRIMINANT

    @property
    def is_wildcard(self) -> bool:
        return self.discriminant == WILDCARD_DISCRIMINANT


class ProblemSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class TemplateProblem:
    """One finding from template validation."""

    severity: ProblemSeverity
    message: str
    node_index: int | None = None

    @property
    def is_error(self) -> bool:
        return self.severity == ProblemSeverity.ERROR
