"""
workflow_engines.routing -- Business-type to template routing.

Responsibility:
    Pick the routing rule(s) that apply to a business entity.  An exact
    discriminant match beats the ``"*"`` wildcard; within the winning
    specificity every matching rule is returned so that the caller can
    refuse ambiguity instead of silently choosing one.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
"""

from __future__ import annotations

from collections.abc import Iterable

from workflow_kernel.domain.workflow import RoutingRule


def matching_routing_rules(
    rules: Iterable[RoutingRule],
    business_type: str,
    discriminant: str | None,
) -> list[RoutingRule]:
    """Rules at the most specific matching level, in declaration order."""
    candidates = [r for r in rules if r.business_type == business_type]

    if discriminant is not None:
        exact = [r for r in candidates if r.discriminant == str(discriminant)]
        if exact:
            return exact

    return [r for r in candidates if r.is_wildcard]
