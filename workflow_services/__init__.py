"""
workflow_services -- Stateful orchestration over the kernel and engines.

Coordinators (InstanceManager, NodeProcessor, TemplateStore) work inside a
caller-supplied session and only flush.  ``WorkflowEngine`` is the facade
that owns the unit of work.
"""

from workflow_services.business_status import (
    BusinessStatusBridge,
    BusinessStatusListener,
    project_status,
)
from workflow_services.instance_manager import InstanceManager
from workflow_services.node_processor import NodeProcessor
from workflow_services.template_store import TemplateStore
from workflow_services.workflow_engine import WorkflowEngine

__all__ = [
    "BusinessStatusBridge",
    "BusinessStatusListener",
    "InstanceManager",
    "NodeProcessor",
    "TemplateStore",
    "WorkflowEngine",
    "project_status",
]
