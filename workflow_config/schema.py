"""
WorkflowConfigSet schema.

Defines the human-authored, reviewable configuration for the workflow
engine.  YAML files are parsed into these types by the loader, checked by
the validator, and handed out by ``get_active_config()``.

Nothing here is executable logic; routing selection lives in
``workflow_engines.routing`` and node parsing in the kernel domain.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from workflow_kernel.domain.workflow import (
    InstanceStatus,
    NodeSpec,
    RoutingRule,
    node_specs_from_list,
)


@dataclass(frozen=True)
class EngineSettings:
    """Per-deployment behaviour switches read from engine.yaml."""

    enforce_assignee: bool = False
    restrict_cancel_to_creator: bool = False


@dataclass(frozen=True)
class TemplateDef:
    """A template as written in ``templates/*.yaml``.

    ``raw_nodes`` is kept exactly as authored so validation can report
    every problem; ``nodes`` parses it on demand.
    """

    code: str
    name: str
    category: str
    raw_nodes: tuple[dict[str, Any], ...]
    description: str = ""
    is_active: bool = True

    @property
    def nodes(self) -> tuple[NodeSpec, ...]:
        return node_specs_from_list(list(self.raw_nodes))


@dataclass(frozen=True)
class BusinessStatusMap:
    """Instance status -> business-facing status label for one business type."""

    business_type: str
    labels: tuple[tuple[str, str], ...] = ()

    def label_for(self, status: InstanceStatus | str) -> str | None:
        key = status.value if isinstance(status, InstanceStatus) else str(status)
        for instance_status, label in self.labels:
            if instance_status == key:
                return label
        return None


@dataclass(frozen=True)
class WorkflowConfigSet:
    """One complete, validated configuration set."""

    name: str
    version: int
    settings: EngineSettings = field(default_factory=EngineSettings)
    templates: tuple[TemplateDef, ...] = ()
    routing: tuple[RoutingRule, ...] = ()
    status_maps: tuple[BusinessStatusMap, ...] = ()
    checksum: str = ""

    def template_def(self, code: str) -> TemplateDef | None:
        for template in self.templates:
            if template.code == code:
                return template
        return None

    def status_map(self, business_type: str) -> BusinessStatusMap | None:
        for status_map in self.status_maps:
            if status_map.business_type == business_type:
                return status_map
        return None

    def status_label(
        self,
        business_type: str,
        status: InstanceStatus | str,
    ) -> str | None:
        status_map = self.status_map(business_type)
        if status_map is None:
            return None
        return status_map.label_for(status)
