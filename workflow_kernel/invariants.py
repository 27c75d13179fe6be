"""
Kernel Invariants Contract.

These invariants are structural law for the workflow engine.  No engine
setting, template, or routing rule may override them.

This module exists solely to declare these invariants explicitly.  The
enforcement is distributed across the transition planner, the instance
service, the ORM models, and database constraints.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the workflow kernel."""

    SINGLE_ACTIVE_NODE = "single_active_node"
    """For a pending instance, the process at current_node_index is pending
    and every process below it is decided.  Enforced by the transition
    planner and the single mutator path in WorkflowInstanceService."""

    POINTER_BOUNDS = "pointer_bounds"
    """current_node_index stays within [0, node_count - 1].  Enforced by the
    planner and a DB check constraint."""

    ONE_PENDING_INSTANCE = "one_pending_instance"
    """At most one pending instance per (business_type, business_id).
    Enforced by WorkflowInstanceService and a partial unique index."""

    NO_DOUBLE_DECISION = "no_double_decision"
    """A node decision is accepted once.  Enforced by the instance row lock,
    the populate_existing re-read, and the instance version column."""

    TERMINAL_IMMUTABILITY = "terminal_immutability"
    """Completed, rejected and cancelled instances never change.  Enforced
    by the planner and an ORM before_update listener."""

    APPEND_ONLY_LOG = "append_only_log"
    """Action log rows are never updated or deleted.  Enforced by ORM
    listeners."""


ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "workflow_services",
    "workflow_config",
    "workflow_engines",
)
