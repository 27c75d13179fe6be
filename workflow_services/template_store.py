"""
workflow_services.template_store -- Template Store coordinator.

Responsibility:
    Read side of templates at execution time (Get, ResolveForBusiness)
    and the operator-facing write side (create, replace nodes, activate,
    list, validate, sync from the YAML configuration set).

Architecture position:
    Services -- coordinates the kernel TemplateService / TemplateSelector,
    the pure routing engine and the active configuration.  Never commits;
    the WorkflowEngine facade owns the transaction.

Invariants enforced:
    - Routing ambiguity or absence is surfaced as TemplateNotResolvableError,
      never resolved by picking a default.
    - A routed template must exist and be active.

Failure modes:
    - TemplateNotFoundError for unknown ids / codes.
    - TemplateNotResolvableError from resolve_for_business.
    - InvalidTemplateError when a write carries error-level problems.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from workflow_config.schema import WorkflowConfigSet
from workflow_engines.routing import matching_routing_rules
from workflow_kernel.domain.clock import Clock
from workflow_kernel.domain.template_rules import check_nodes
from workflow_kernel.domain.workflow import TemplateProblem, WorkflowTemplate
from workflow_kernel.exceptions import TemplateNotResolvableError
from workflow_kernel.logging_config import get_logger
from workflow_kernel.selectors.template_selector import TemplateSelector
from workflow_kernel.services.template_service import (
    TemplateService,
    TemplateUpsertResult,
)

logger = get_logger("services.template_store")


class TemplateStore:
    """Template lookup, routing and management over one session."""

    def __init__(
        self,
        session: Session,
        config: WorkflowConfigSet,
        clock: Clock | None = None,
    ):
        self._config = config
        self._service = TemplateService(session, clock)
        self._selector = TemplateSelector(session)

    # -----------------------------------------------------------------
    # Execution-time reads
    # -----------------------------------------------------------------

    def get(self, template_id: UUID) -> WorkflowTemplate:
        return self._selector.get(template_id)

    def get_by_code(self, code: str) -> WorkflowTemplate:
        return self._selector.get_by_code(code)

    def resolve_for_business(
        self,
        business_type: str,
        discriminant: str | None = None,
    ) -> WorkflowTemplate:
        """Select the template for a business entity from the routing table."""
        rules = matching_routing_rules(self._config.routing, business_type, discriminant)
        if not rules:
            raise TemplateNotResolvableError(
                business_type, discriminant, "no routing rule matches",
            )
        if len(rules) > 1:
            codes = ", ".join(r.template_code for r in rules)
            raise TemplateNotResolvableError(
                business_type, discriminant, f"ambiguous routing ({codes})",
            )

        rule = rules[0]
        template = self._selector.find_by_code(rule.template_code)
        if template is None:
            raise TemplateNotResolvableError(
                business_type, discriminant,
                f"routed template '{rule.template_code}' is not installed",
            )
        if not template.is_active:
            raise TemplateNotResolvableError(
                business_type, discriminant,
                f"routed template '{rule.template_code}' is inactive",
            )

        logger.info(
            "template_resolved",
            extra={
                "business_type": business_type,
                "discriminant": discriminant,
                "matched_discriminant": rule.discriminant,
                "template_code": template.code,
                "template_version": template.version,
            },
        )
        return template

    # -----------------------------------------------------------------
    # Management
    # -----------------------------------------------------------------

    def create_template(
        self,
        code: str,
        name: str,
        category: str,
        nodes: list[dict[str, Any]],
        description: str = "",
        is_active: bool = True,
    ) -> WorkflowTemplate:
        return self._service.create_template(
            code, name, category, nodes,
            description=description, is_active=is_active,
        )

    def replace_nodes(
        self,
        template_id: UUID,
        nodes: list[dict[str, Any]],
    ) -> WorkflowTemplate:
        return self._service.replace_nodes(template_id, nodes)

    def activate(self, template_id: UUID) -> WorkflowTemplate:
        return self._service.set_active(template_id, True)

    def deactivate(self, template_id: UUID) -> WorkflowTemplate:
        return self._service.set_active(template_id, False)

    def list_templates(
        self,
        category: str | None = None,
        active_only: bool = False,
    ) -> list[WorkflowTemplate]:
        return self._selector.list_templates(category=category, active_only=active_only)

    @staticmethod
    def validate_template(nodes: Any) -> list[TemplateProblem]:
        """Every problem with a raw node array; an empty list means clean."""
        return check_nodes(nodes)

    def sync_from_config(self) -> list[TemplateUpsertResult]:
        """Upsert every template of the configuration set, matched by code."""
        results = []
        for template_def in self._config.templates:
            results.append(self._service.upsert_template(
                template_def.code,
                template_def.name,
                template_def.category,
                list(template_def.raw_nodes),
                description=template_def.description,
                is_active=template_def.is_active,
            ))

        logger.info(
            "templates_synced",
            extra={
                "config_set": self._config.name,
                "config_checksum": self._config.checksum,
                "template_count": len(results),
                "created_count": sum(1 for r in results if r.created),
                "updated_count": sum(1 for r in results if r.changed and not r.created),
            },
        )
        return results
