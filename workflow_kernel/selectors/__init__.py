"""Read-only selectors for the workflow kernel."""

from workflow_kernel.selectors.base import BaseSelector
from workflow_kernel.selectors.instance_selector import InstanceSelector
from workflow_kernel.selectors.task_selector import TaskSelector
from workflow_kernel.selectors.template_selector import TemplateSelector

__all__ = [
    "BaseSelector",
    "InstanceSelector",
    "TaskSelector",
    "TemplateSelector",
]
