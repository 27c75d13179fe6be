"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from workflow_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from workflow_kernel.domain.workflow import (
    BACKABLE_ACTIONS,
    INSTANCE_TRANSITIONS,
    TERMINAL_INSTANCE_STATUSES,
    WILDCARD_DISCRIMINANT,
    ActionLogEntry,
    AssigneeRule,
    BackableNode,
    BusinessStatus,
    DiscriminantProvider,
    DynamicAssignee,
    FixedAssignee,
    InstanceStatus,
    LogAction,
    NodeSpec,
    NodeState,
    NodeType,
    PendingTask,
    ProblemSeverity,
    ProcessAction,
    ProcessUpdate,
    RoleAssignee,
    RoutingRule,
    StaticUserDirectory,
    TemplateProblem,
    TransitionPlan,
    UserDirectory,
    WorkflowAction,
    WorkflowInstance,
    WorkflowProcess,
    WorkflowTemplate,
    can_transition,
    node_specs_from_list,
    node_specs_to_list,
)

__all__ = [
    # Clock
    "Clock",
    "SystemClock",
    "DeterministicClock",
    # Lifecycle
    "InstanceStatus",
    "ProcessAction",
    "WorkflowAction",
    "NodeType",
    "LogAction",
    "INSTANCE_TRANSITIONS",
    "TERMINAL_INSTANCE_STATUSES",
    "BACKABLE_ACTIONS",
    "can_transition",
    # Nodes and rules
    "NodeSpec",
    "AssigneeRule",
    "FixedAssignee",
    "RoleAssignee",
    "DynamicAssignee",
    "node_specs_from_list",
    "node_specs_to_list",
    # DTOs
    "WorkflowTemplate",
    "WorkflowInstance",
    "WorkflowProcess",
    "ActionLogEntry",
    "BackableNode",
    "PendingTask",
    "BusinessStatus",
    # Planning, routing, validation
    "NodeState",
    "ProcessUpdate",
    "TransitionPlan",
    "RoutingRule",
    "WILDCARD_DISCRIMINANT",
    "TemplateProblem",
    "ProblemSeverity",
    # Collaborators
    "UserDirectory",
    "DiscriminantProvider",
    "StaticUserDirectory",
]
