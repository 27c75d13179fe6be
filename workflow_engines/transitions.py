"""
workflow_engines.transitions -- Pure node-processor state machine.

Responsibility:
    Given a snapshot of an instance (status, pointer, per-node actions and
    auto-pass flags) and a requested action, decide whether the action is
    legal and, if so, compute exactly which process rows change and where
    the pointer ends up.  The kernel NodeProcessor applies the plan; this
    module never touches storage.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import workflow_kernel/domain types.

Invariants enforced:
    - Single active node: every plan leaves, for a pending instance, the
      process at ``current_node_index`` pending and every lower-index
      process decided.
    - Pointer bounds: ``current_node_index`` stays within
      ``[0, node_count - 1]``; completion leaves it on the last node.
    - Back targets are approved nodes strictly below the pointer; the
      target and every node up to and including the current one are reset.
    - Auto-pass chains: whenever the pointer lands on an ``auto_pass``
      node it is decided ``auto`` and the pointer moves on; running off
      the end completes the instance.

Failure modes:
    - ``check_transition`` returns a human-readable refusal reason instead
      of raising; the caller maps it to IllegalTransitionError.
    - ``plan_transition`` raises ValueError if called with an action that
      ``check_transition`` would refuse.
"""

from __future__ import annotations

from collections.abc import Sequence

from workflow_engines.tracer import traced_engine
from workflow_kernel.domain.workflow import (
    BACKABLE_ACTIONS,
    InstanceStatus,
    NodeState,
    ProcessAction,
    ProcessUpdate,
    TransitionPlan,
    WorkflowAction,
)


def check_transition(
    *,
    status: InstanceStatus,
    current_node_index: int,
    nodes: Sequence[NodeState],
    target_node_index: int,
    action: str,
    back_to_node_index: int | None = None,
) -> str | None:
    """Return None if the action is legal, else the reason it is not."""
    if status != InstanceStatus.PENDING:
        return f"instance is {status.value}"

    try:
        requested = WorkflowAction(action)
    except ValueError:
        return f"unknown action {action!r}"

    if target_node_index != current_node_index:
        return (
            f"node {target_node_index} is not the active node "
            f"(active node is {current_node_index})"
        )

    target = _node_at(nodes, target_node_index)
    if target.action != ProcessAction.PENDING:
        return f"node {target_node_index} was already decided ({target.action.value})"

    if requested == WorkflowAction.BACK:
        if back_to_node_index is None:
            return "back requires back_to_node_index"
        if isinstance(back_to_node_index, bool) or not isinstance(back_to_node_index, int):
            return "back_to_node_index must be an integer"
        if back_to_node_index < 0 or back_to_node_index >= current_node_index:
            return (
                f"back_to_node_index {back_to_node_index} must be in "
                f"[0, {current_node_index - 1}]"
            )
        back_target = _node_at(nodes, back_to_node_index)
        if back_target.action not in BACKABLE_ACTIONS:
            return (
                f"node {back_to_node_index} cannot be a back target "
                f"(action {back_target.action.value})"
            )
    elif back_to_node_index is not None:
        return "back_to_node_index is only valid with action 'back'"

    return None


@traced_engine(
    "transitions", "1.0",
    fingerprint_fields=("status", "current_node_index", "nodes", "action", "back_to_node_index"),
)
def plan_transition(
    *,
    status: InstanceStatus,
    current_node_index: int,
    nodes: Sequence[NodeState],
    action: str,
    back_to_node_index: int | None = None,
) -> TransitionPlan:
    """Plan the effects of ``action`` on the active node.

    Preconditions:
        ``check_transition`` returned None for the same arguments.
    """
    reason = check_transition(
        status=status,
        current_node_index=current_node_index,
        nodes=nodes,
        target_node_index=current_node_index,
        action=action,
        back_to_node_index=back_to_node_index,
    )
    if reason is not None:
        raise ValueError(reason)

    requested = WorkflowAction(action)

    if requested == WorkflowAction.REJECT:
        return TransitionPlan(
            status=InstanceStatus.REJECTED,
            current_node_index=current_node_index,
            updates=(
                ProcessUpdate(current_node_index, ProcessAction.REJECT, decided=True),
            ),
        )

    if requested == WorkflowAction.BACK:
        assert back_to_node_index is not None
        updates = [
            ProcessUpdate(
                index,
                ProcessAction.PENDING,
                reset=True,
                activate=(index == back_to_node_index),
            )
            for index in range(back_to_node_index, current_node_index + 1)
        ]
        return TransitionPlan(
            status=InstanceStatus.PENDING,
            current_node_index=back_to_node_index,
            updates=tuple(updates),
        )

    approve = ProcessUpdate(current_node_index, ProcessAction.APPROVE, decided=True)
    advance = advance_from(nodes=nodes, start_index=current_node_index + 1)
    return TransitionPlan(
        status=advance.status,
        current_node_index=advance.current_node_index,
        updates=(approve,) + advance.updates,
        auto_passed=advance.auto_passed,
    )


def plan_start(nodes: Sequence[NodeState]) -> TransitionPlan:
    """Initial activation: node 0 becomes active, or auto-passes onwards."""
    if len(nodes) < 2:
        raise ValueError("a workflow needs at least 2 nodes")
    return advance_from(nodes=nodes, start_index=0)


def advance_from(*, nodes: Sequence[NodeState], start_index: int) -> TransitionPlan:
    """Move the pointer to ``start_index``, auto-passing nodes as required."""
    last_index = len(nodes) - 1
    updates: list[ProcessUpdate] = []
    auto_passed: list[int] = []

    index = start_index
    while index <= last_index and _node_at(nodes, index).auto_pass:
        updates.append(ProcessUpdate(index, ProcessAction.AUTO, decided=True, activate=True))
        auto_passed.append(index)
        index += 1

    if index > last_index:
        return TransitionPlan(
            status=InstanceStatus.COMPLETED,
            current_node_index=last_index,
            updates=tuple(updates),
            auto_passed=tuple(auto_passed),
        )

    updates.append(ProcessUpdate(index, ProcessAction.PENDING, activate=True))
    return TransitionPlan(
        status=InstanceStatus.PENDING,
        current_node_index=index,
        updates=tuple(updates),
        auto_passed=tuple(auto_passed),
    )


def backable_node_indices(
    *,
    status: InstanceStatus,
    current_node_index: int,
    nodes: Sequence[NodeState],
) -> list[int]:
    """Indices below the pointer that an actor approved, ascending."""
    if status != InstanceStatus.PENDING:
        return []
    return [
        node.node_index for node in sorted(nodes, key=lambda n: n.node_index)
        if node.node_index < current_node_index and node.action in BACKABLE_ACTIONS
    ]


def instance_invariant_violations(
    *,
    status: InstanceStatus,
    current_node_index: int,
    nodes: Sequence[NodeState],
) -> list[str]:
    """Check the pointer/process invariants; an empty list means consistent."""
    problems: list[str] = []
    node_count = len(nodes)
    indices = sorted(n.node_index for n in nodes)
    if indices != list(range(node_count)):
        problems.append(f"process node indices {indices} are not 0..{node_count - 1}")
        return problems

    if not 0 <= current_node_index < node_count:
        problems.append(
            f"current_node_index {current_node_index} outside [0, {node_count - 1}]"
        )
        return problems

    if status != InstanceStatus.PENDING:
        return problems

    for node in nodes:
        if node.node_index < current_node_index and node.action == ProcessAction.PENDING:
            problems.append(f"node {node.node_index} below the pointer is still pending")
        if node.node_index == current_node_index and node.action != ProcessAction.PENDING:
            problems.append(
                f"active node {node.node_index} is not pending ({node.action.value})"
            )
        if node.node_index > current_node_index and node.action != ProcessAction.PENDING:
            problems.append(
                f"node {node.node_index} above the pointer is decided ({node.action.value})"
            )
    return problems


def _node_at(nodes: Sequence[NodeState], node_index: int) -> NodeState:
    for node in nodes:
        if node.node_index == node_index:
            return node
    raise ValueError(f"no node with index {node_index}")
