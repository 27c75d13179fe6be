"""
workflow_engines.assignment -- Node assignee resolution.

Responsibility:
    Turn a node's ``AssigneeRule`` (or an explicit caller override) into a
    concrete user id at Start time.

Architecture position:
    Engines -- pure calculation layer.  The user directory is an injected
    collaborator (``UserDirectory`` protocol); this module holds no state
    and performs no storage access of its own.

Invariants enforced:
    - An explicit assignee for a node always wins over the node's rule.
    - Candidate pools (fixed rules with several users, or a role held by
      several users) resolve to the first candidate, in directory order.
    - Resolution never raises for an unresolvable rule; the process is
      created unassigned and the caller logs a warning.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from workflow_kernel.domain.workflow import (
    DynamicAssignee,
    FixedAssignee,
    NodeSpec,
    RoleAssignee,
    UserDirectory,
)


class AssigneeSource(str, Enum):
    """Where a resolved assignee came from."""

    EXPLICIT = "explicit"
    FIXED = "fixed"
    ROLE = "role"
    DYNAMIC = "dynamic"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class AssigneeResolution:
    node_index: int
    assignee_id: UUID | None
    source: AssigneeSource


def resolve_assignee(
    node: NodeSpec,
    *,
    explicit: UUID | None,
    directory: UserDirectory,
    business_type: str,
    business_id: str,
) -> AssigneeResolution:
    """Resolve the assignee for a single node."""
    if explicit is not None:
        return AssigneeResolution(node.index, explicit, AssigneeSource.EXPLICIT)

    rule = node.assignee
    if isinstance(rule, FixedAssignee):
        return AssigneeResolution(node.index, rule.user_id, AssigneeSource.FIXED)

    if isinstance(rule, RoleAssignee):
        users = directory.users_with_role(rule.role_code)
        if users:
            return AssigneeResolution(node.index, users[0], AssigneeSource.ROLE)

    if isinstance(rule, DynamicAssignee):
        user_id = directory.resolve_dynamic(rule.resolver_key, business_type, business_id)
        if user_id is not None:
            return AssigneeResolution(node.index, user_id, AssigneeSource.DYNAMIC)

    return AssigneeResolution(node.index, None, AssigneeSource.UNRESOLVED)


def resolve_assignees(
    nodes: tuple[NodeSpec, ...],
    *,
    explicit: Mapping[int, UUID] | None,
    directory: UserDirectory,
    business_type: str,
    business_id: str,
) -> list[AssigneeResolution]:
    """Resolve every node of a template, in node order.

    Raises:
        ValueError: ``explicit`` has a key that is not an int node index,
            or names a node index the template lacks.
    """
    explicit = dict(explicit or {})
    bad_keys = [k for k in explicit if not isinstance(k, int) or isinstance(k, bool)]
    if bad_keys:
        raise ValueError(f"assignee keys must be int node indices, got {bad_keys!r}")
    unknown = sorted(i for i in explicit if not 0 <= i < len(nodes))
    if unknown:
        raise ValueError(
            f"assignees given for node indices {unknown}, template has "
            f"{len(nodes)} nodes"
        )
    return [
        resolve_assignee(
            node,
            explicit=explicit.get(node.index),
            directory=directory,
            business_type=business_type,
            business_id=business_id,
        )
        for node in nodes
    ]
