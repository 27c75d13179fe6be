"""Read access to workflow templates."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from workflow_kernel.domain.workflow import WorkflowTemplate
from workflow_kernel.exceptions import TemplateNotFoundError
from workflow_kernel.models.workflow import WorkflowTemplateModel
from workflow_kernel.selectors.base import BaseSelector


class TemplateSelector(BaseSelector[WorkflowTemplateModel]):
    """Template lookups by id, by code, and listing."""

    def get(self, template_id: UUID) -> WorkflowTemplate:
        model = self.session.get(WorkflowTemplateModel, template_id)
        if model is None:
            raise TemplateNotFoundError(str(template_id))
        return model.to_dto()

    def get_by_code(self, code: str) -> WorkflowTemplate:
        model = self.session.execute(
            select(WorkflowTemplateModel).where(WorkflowTemplateModel.code == code)
        ).scalar_one_or_none()
        if model is None:
            raise TemplateNotFoundError(code)
        return model.to_dto()

    def find_by_code(self, code: str) -> WorkflowTemplate | None:
        model = self.session.execute(
            select(WorkflowTemplateModel).where(WorkflowTemplateModel.code == code)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def list_templates(
        self,
        category: str | None = None,
        active_only: bool = False,
    ) -> list[WorkflowTemplate]:
        stmt = select(WorkflowTemplateModel)
        if category is not None:
            stmt = stmt.where(WorkflowTemplateModel.category == category)
        if active_only:
            stmt = stmt.where(WorkflowTemplateModel.is_active.is_(True))
        stmt = stmt.order_by(WorkflowTemplateModel.category, WorkflowTemplateModel.code)
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]
