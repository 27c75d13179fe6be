"""
workflow_kernel.services.template_service -- Template store write side.

Responsibility:
    Create templates, replace their node lists, toggle them active, and
    upsert templates by code (used to sync YAML-defined templates into
    storage).  Every write is validated with the same checks operators see
    from ``validate``; error-level problems refuse the write.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Template codes are unique (DB constraint + check here).
    - Node edits bump ``version``; running instances are unaffected because
      every node attribute they need was copied onto their process rows.

Failure modes:
    - TemplateNotFoundError for an unknown template id.
    - InvalidTemplateError for a node array with error-level problems, or
      for a duplicate code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from workflow_kernel.domain.clock import Clock
from workflow_kernel.domain.template_rules import check_nodes
from workflow_kernel.domain.workflow import (
    NodeSpec,
    ProblemSeverity,
    TemplateProblem,
    WorkflowTemplate,
    node_specs_from_list,
    node_specs_to_list,
)
from workflow_kernel.exceptions import InvalidTemplateError, TemplateNotFoundError
from workflow_kernel.logging_config import get_logger
from workflow_kernel.models.workflow import WorkflowTemplateModel
from workflow_kernel.services.base import BaseService

logger = get_logger("services.template")


@dataclass(frozen=True)
class TemplateUpsertResult:
    template: WorkflowTemplate
    created: bool
    nodes_changed: bool
    metadata_changed: bool

    @property
    def changed(self) -> bool:
        return self.created or self.nodes_changed or self.metadata_changed


class TemplateService(BaseService[WorkflowTemplateModel]):
    """Write operations on workflow templates."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    def create_template(
        self,
        code: str,
        name: str,
        category: str,
        nodes: list[dict[str, Any]] | tuple[NodeSpec, ...],
        description: str = "",
        is_active: bool = True,
    ) -> WorkflowTemplate:
        """Create a template; ``nodes`` may be raw dicts or parsed NodeSpecs."""
        raw_nodes = self._raw_nodes(code, nodes)

        existing = self.session.execute(
            select(WorkflowTemplateModel.id).where(WorkflowTemplateModel.code == code)
        ).scalar_one_or_none()
        if existing is not None:
            raise InvalidTemplateError(code, "a template with this code already exists")

        now = self.clock.now()
        model = WorkflowTemplateModel(
            code=code,
            name=name,
            category=category,
            description=description,
            nodes=raw_nodes,
            is_active=is_active,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "template_created",
            extra={
                "template_id": str(model.id),
                "template_code": code,
                "node_count": len(raw_nodes),
                "is_active": is_active,
            },
        )
        return model.to_dto()

    def replace_nodes(
        self,
        template_id: UUID,
        nodes: list[dict[str, Any]] | tuple[NodeSpec, ...],
    ) -> WorkflowTemplate:
        model = self._load_template_model(template_id)
        raw_nodes = self._raw_nodes(model.code, nodes)

        model.nodes = raw_nodes
        model.version += 1
        model.updated_at = self.clock.now()
        self.session.flush()

        logger.info(
            "template_nodes_replaced",
            extra={
                "template_id": str(template_id),
                "template_code": model.code,
                "version": model.version,
                "node_count": len(raw_nodes),
            },
        )
        return model.to_dto()

    def set_active(self, template_id: UUID, is_active: bool) -> WorkflowTemplate:
        model = self._load_template_model(template_id)
        if model.is_active != is_active:
            model.is_active = is_active
            model.updated_at = self.clock.now()
            self.session.flush()
            logger.info(
                "template_activation_changed",
                extra={
                    "template_id": str(template_id),
                    "template_code": model.code,
                    "is_active": is_active,
                },
            )
        return model.to_dto()

    def upsert_template(
        self,
        code: str,
        name: str,
        category: str,
        nodes: list[dict[str, Any]] | tuple[NodeSpec, ...],
        description: str = "",
        is_active: bool = True,
    ) -> TemplateUpsertResult:
        """Create the template, or bring an existing one in line with the inputs."""
        model = self.session.execute(
            select(WorkflowTemplateModel).where(WorkflowTemplateModel.code == code)
        ).scalar_one_or_none()

        if model is None:
            template = self.create_template(
                code, name, category, nodes,
                description=description, is_active=is_active,
            )
            return TemplateUpsertResult(template, True, False, False)

        raw_nodes = self._raw_nodes(code, nodes)
        nodes_changed = list(model.nodes) != raw_nodes
        metadata_changed = (
            model.name != name
            or model.category != category
            or model.description != description
            or model.is_active != is_active
        )

        if nodes_changed:
            model.nodes = raw_nodes
            model.version += 1
        if metadata_changed:
            model.name = name
            model.category = category
            model.description = description
            model.is_active = is_active
        if nodes_changed or metadata_changed:
            model.updated_at = self.clock.now()
            self.session.flush()
            logger.info(
                "template_upserted",
                extra={
                    "template_code": code,
                    "version": model.version,
                    "nodes_changed": nodes_changed,
                    "metadata_changed": metadata_changed,
                },
            )

        return TemplateUpsertResult(
            model.to_dto(), False, nodes_changed, metadata_changed,
        )

    # -----------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------

    def _raw_nodes(
        self,
        template_ref: str,
        nodes: list[dict[str, Any]] | tuple[NodeSpec, ...],
    ) -> list[dict[str, Any]]:
        """Validate and normalize a node array to its persisted JSON form."""
        if isinstance(nodes, tuple) and all(isinstance(n, NodeSpec) for n in nodes):
            raw = node_specs_to_list(nodes)
        else:
            raw = list(nodes)

        problems: list[TemplateProblem] = check_nodes(raw)
        errors = [p for p in problems if p.severity == ProblemSeverity.ERROR]
        if errors:
            raise InvalidTemplateError(
                template_ref, "; ".join(p.message for p in errors),
            )
        # Round-trip through NodeSpec so stored JSON has one canonical shape.
        return node_specs_to_list(node_specs_from_list(raw))

    def _load_template_model(self, template_id: UUID) -> WorkflowTemplateModel:
        model = self.session.get(WorkflowTemplateModel, template_id)
        if model is None:
            raise TemplateNotFoundError(str(template_id))
        return model
