"""ORM models for the workflow kernel."""

from workflow_kernel.models.workflow import (
    WorkflowActionLogModel,
    WorkflowInstanceModel,
    WorkflowProcessModel,
    WorkflowTemplateModel,
)

__all__ = [
    "WorkflowTemplateModel",
    "WorkflowInstanceModel",
    "WorkflowProcessModel",
    "WorkflowActionLogModel",
]
