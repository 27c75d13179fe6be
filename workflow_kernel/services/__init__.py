"""Write-side kernel services.  All of them flush; none of them commit."""

from workflow_kernel.services.base import BaseService
from workflow_kernel.services.instance_service import WorkflowInstanceService
from workflow_kernel.services.template_service import (
    TemplateService,
    TemplateUpsertResult,
)

__all__ = [
    "BaseService",
    "WorkflowInstanceService",
    "TemplateService",
    "TemplateUpsertResult",
]
