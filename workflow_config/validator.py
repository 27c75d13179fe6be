"""
Configuration Validator (``workflow_config.validator``).

Responsibility
--------------
Validates a ``WorkflowConfigSet`` before it is handed out, so that a bad
template or routing table is caught at load time instead of at the first
Start call that touches it.

Invariants enforced
-------------------
* Template codes are unique.
* Every template passes the kernel's node checks (errors block, warnings
  are reported).
* Every routing rule names a template in the set.
* No two routing rules share (business_type, discriminant) -- resolution
  would be ambiguous.
* Routing to an inactive template is a warning (resolution will refuse).
* Status maps only use known instance statuses.

Failure modes
-------------
* Validation errors (``ConfigValidationResult.errors``) -> the set MUST
  NOT be used; ``get_active_config`` raises ``ConfigValidationError``.
* Warnings do not block.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from workflow_config.schema import WorkflowConfigSet
from workflow_kernel.domain.template_rules import check_nodes
from workflow_kernel.domain.workflow import InstanceStatus, ProblemSeverity


class ConfigValidationError(ValueError):
    """A configuration set failed validation."""

    def __init__(self, set_name: str, errors: list[str]):
        self.set_name = set_name
        self.errors = list(errors)
        super().__init__(
            f"Configuration set '{set_name}' failed validation:\n"
            + "\n".join(f"  - {e}" for e in self.errors)
        )


@dataclass
class ConfigValidationResult:
    """``is_valid`` is True only when ``errors`` is empty."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: WorkflowConfigSet) -> ConfigValidationResult:
    result = ConfigValidationResult()

    _validate_template_uniqueness(config, result)
    _validate_template_nodes(config, result)
    _validate_routing_targets(config, result)
    _validate_routing_ambiguity(config, result)
    _validate_status_maps(config, result)

    return result


def _validate_template_uniqueness(
    config: WorkflowConfigSet, result: ConfigValidationResult
) -> None:
    counts = Counter(t.code for t in config.templates)
    for code, count in sorted(counts.items()):
        if count > 1:
            result.add_error(f"Template code '{code}' is defined {count} times")


def _validate_template_nodes(
    config: WorkflowConfigSet, result: ConfigValidationResult
) -> None:
    for template in config.templates:
        for problem in check_nodes(list(template.raw_nodes)):
            where = (
                f"template '{template.code}' node {problem.node_index}"
                if problem.node_index is not None
                else f"template '{template.code}'"
            )
            if problem.severity == ProblemSeverity.ERROR:
                result.add_error(f"{where}: {problem.message}")
            else:
                result.add_warning(f"{where}: {problem.message}")


def _validate_routing_targets(
    config: WorkflowConfigSet, result: ConfigValidationResult
) -> None:
    for rule in config.routing:
        template = config.template_def(rule.template_code)
        if template is None:
            result.add_error(
                f"Routing rule {rule.business_type}/{rule.discriminant} names "
                f"unknown template '{rule.template_code}'"
            )
        elif not template.is_active:
            result.add_warning(
                f"Routing rule {rule.business_type}/{rule.discriminant} names "
                f"inactive template '{rule.template_code}'"
            )


def _validate_routing_ambiguity(
    config: WorkflowConfigSet, result: ConfigValidationResult
) -> None:
    counts = Counter((r.business_type, r.discriminant) for r in config.routing)
    for (business_type, discriminant), count in sorted(counts.items()):
        if count > 1:
            result.add_error(
                f"Routing for {business_type}/{discriminant} is ambiguous "
                f"({count} rules)"
            )


def _validate_status_maps(
    config: WorkflowConfigSet, result: ConfigValidationResult
) -> None:
    known = {s.value for s in InstanceStatus}
    for status_map in config.status_maps:
        for status, _label in status_map.labels:
            if status not in known:
                result.add_error(
                    f"business_status.{status_map.business_type} uses unknown "
                    f"instance status '{status}'"
                )
