"""
workflow_kernel.domain.template_rules -- Template definition checks.

Responsibility:
    Report every problem with a raw template node array, not just the
    first.  Errors make a template unusable for Start; warnings are
    surfaced to operators but do not block.

Architecture position:
    Kernel > Domain -- pure logic, zero I/O.  Used by the template service
    on every write and by operator tooling through ``validate``.

Checks:
    - error: fewer than 2 nodes
    - error: a node that does not parse (missing name, unknown node type,
      malformed assignee rule)
    - error: non-positive time limit
    - warning: a non-auto node with no assignee rule
    - warning: duplicate node names
    - warning: every node auto-passes (instances complete at Start)
"""

from __future__ import annotations

from typing import Any

from workflow_kernel.domain.workflow import (
    NodeSpec,
    ProblemSeverity,
    TemplateProblem,
)

MIN_NODES = 2


def check_nodes(raw_nodes: Any) -> list[TemplateProblem]:
    """Validate a JSON/YAML node array; an empty result means clean."""
    problems: list[TemplateProblem] = []

    if not isinstance(raw_nodes, list):
        return [TemplateProblem(ProblemSeverity.ERROR, "nodes must be a list")]

    if len(raw_nodes) < MIN_NODES:
        problems.append(TemplateProblem(
            ProblemSeverity.ERROR,
            f"template has {len(raw_nodes)} node(s); at least {MIN_NODES} required",
        ))

    parsed: list[NodeSpec] = []
    for index, raw in enumerate(raw_nodes):
        try:
            node = NodeSpec.from_dict(index, raw)
        except (ValueError, TypeError) as exc:
            problems.append(TemplateProblem(ProblemSeverity.ERROR, str(exc), index))
            continue
        parsed.append(node)

        if node.time_limit_hours is not None and node.time_limit_hours <= 0:
            problems.append(TemplateProblem(
                ProblemSeverity.ERROR,
                f"node '{node.name}' has non-positive time limit {node.time_limit_hours}",
                index,
            ))
        if not node.auto_pass and node.assignee is None:
            problems.append(TemplateProblem(
                ProblemSeverity.WARNING,
                f"node '{node.name}' has no assignee rule",
                index,
            ))

    seen: set[str] = set()
    for node in parsed:
        if node.name in seen:
            problems.append(TemplateProblem(
                ProblemSeverity.WARNING,
                f"duplicate node name '{node.name}'",
                node.index,
            ))
        seen.add(node.name)

    if parsed and len(parsed) == len(raw_nodes) and all(n.auto_pass for n in parsed):
        problems.append(TemplateProblem(
            ProblemSeverity.WARNING,
            "every node auto-passes; instances complete immediately",
        ))

    return problems


def has_errors(problems: list[TemplateProblem]) -> bool:
    return any(p.is_error for p in problems)
