"""
Module: workflow_engines
Responsibility:
    Package entrypoint re-exporting the pure workflow engines: the
    node-processor state machine, assignee resolution and template routing.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import workflow_kernel/domain (and sibling engine modules).
    MUST NOT import workflow_services or workflow_config.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``.  Timestamps are
      applied by the kernel services that execute a plan.
    - Determinism: identical inputs always produce identical plans.
"""

from workflow_engines.assignment import (
    AssigneeResolution,
    AssigneeSource,
    resolve_assignee,
    resolve_assignees,
)
from workflow_engines.routing import matching_routing_rules
from workflow_engines.transitions import (
    advance_from,
    backable_node_indices,
    check_transition,
    instance_invariant_violations,
    plan_start,
    plan_transition,
)

__all__ = [
    "AssigneeResolution",
    "AssigneeSource",
    "resolve_assignee",
    "resolve_assignees",
    "advance_from",
    "backable_node_indices",
    "check_transition",
    "instance_invariant_violations",
    "plan_start",
    "plan_transition",
    "matching_routing_rules",
]
