"""
Typed Exception Hierarchy for the Workflow Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the engine (HTTP controllers, batch jobs, operator scripts) must
decide how to surface a refusal to the end user.  Parsing message strings
for that is fragile, so every refusal is:

  1. A TYPED exception class (catch by type, not message)
  2. Carrying a CODE attribute (machine-readable, API-safe)
  3. Carrying structured DATA (ids, indices, statuses)

Example - WRONG way to handle errors:
    try:
        engine.process(process_id, "approve", actor_id=user)
    except Exception as e:
        if "not active" in str(e):  # FRAGILE
            ...

Example - RIGHT way:
    try:
        engine.process(process_id, "approve", actor_id=user)
    except IllegalTransitionError as e:
        api_response(409, code=e.code, reason=e.reason)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    WorkflowKernelError (base)
    |
    +-- TemplateError
    |   +-- TemplateNotFoundError
    |   +-- TemplateNotResolvableError
    |   +-- InvalidTemplateError
    |
    +-- InstanceError
    |   +-- DuplicateActiveInstanceError
    |   +-- InstanceNotCancellableError
    |   +-- InstanceConflictError
    |
    +-- NotFoundError
    |   +-- InstanceNotFoundError
    |   +-- ProcessNotFoundError
    |
    +-- TransitionError
    |   +-- IllegalTransitionError
    |   |   +-- AlreadyProcessedError
    |   +-- UnauthorizedActorError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- StorageError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                       | When Raised
-------------|----------------------------|---------------------------------------
Template     | TEMPLATE_NOT_FOUND         | Template ID / code doesn't exist
             | TEMPLATE_NOT_RESOLVABLE    | No (or ambiguous) routing rule
             | INVALID_TEMPLATE           | < 2 nodes, inactive, malformed nodes
-------------|----------------------------|---------------------------------------
Instance     | DUPLICATE_ACTIVE_INSTANCE  | Pending instance already exists
             | INSTANCE_NOT_CANCELLABLE   | Cancel on a terminal instance
             | INSTANCE_CONFLICT          | Instance changed by a concurrent
             |                            | request mid-operation
-------------|----------------------------|---------------------------------------
Not found    | INSTANCE_NOT_FOUND         | Unknown instance_id
             | PROCESS_NOT_FOUND          | Unknown process_id
-------------|----------------------------|---------------------------------------
Transition   | ILLEGAL_TRANSITION         | Non-active node, terminal instance,
             |                            | bad action, bad back target
             | ALREADY_PROCESSED          | Lost a race on the same node
             | UNAUTHORIZED_ACTOR         | Actor not allowed (when enforced)
-------------|----------------------------|---------------------------------------
Immutability | IMMUTABILITY_VIOLATION     | UPDATE/DELETE of append-only rows or
             |                            | of a terminal instance
-------------|----------------------------|---------------------------------------
Storage      | STORAGE_ERROR              | Connection loss, constraint violation

===============================================================================
PROPAGATION POLICY
===============================================================================

Every engine error is recoverable by the caller.  The engine never retries;
each operation is one atomic attempt and any error leaves no partial
mutation behind (the WorkflowEngine facade rolls the unit of work back).
StorageError always chains the original driver exception as __cause__.
"""


class WorkflowKernelError(Exception):
    """Base exception for all workflow kernel errors."""

    code: str = "WORKFLOW_KERNEL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Template Errors
# =============================================================================


class TemplateError(WorkflowKernelError):
    """Base for template lookup and validation errors."""

    code: str = "TEMPLATE_ERROR"


class TemplateNotFoundError(TemplateError):
    """Template ID or code does not exist."""

    code: str = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_ref: str):
        self.template_ref = template_ref
        super().__init__(f"Workflow template not found: {template_ref}")


class TemplateNotResolvableError(TemplateError):
    """No routing rule (or more than one) selects a template for a business entity."""

    code: str = "TEMPLATE_NOT_RESOLVABLE"

    def __init__(
        self,
        business_type: str,
        discriminant: str | None,
        reason: str,
    ):
        self.business_type = business_type
        self.discriminant = discriminant
        self.reason = reason
        super().__init__(
            f"Cannot resolve workflow template for business_type={business_type!r} "
            f"discriminant={discriminant!r}: {reason}"
        )


class InvalidTemplateError(TemplateError):
    """Template cannot be used to start a workflow."""

    code: str = "INVALID_TEMPLATE"

    def __init__(self, template_ref: str, reason: str):
        self.template_ref = template_ref
        self.reason = reason
        super().__init__(f"Invalid workflow template {template_ref}: {reason}")


# =============================================================================
# Instance Errors
# =============================================================================


class InstanceError(WorkflowKernelError):
    """Base for instance lifecycle errors."""

    code: str = "INSTANCE_ERROR"


class DuplicateActiveInstanceError(InstanceError):
    """A pending instance already exists for this business entity."""

    code: str = "DUPLICATE_ACTIVE_INSTANCE"

    def __init__(
        self,
        business_type: str,
        business_id: str,
        existing_instance_id: str | None = None,
    ):
        self.business_type = business_type
        self.business_id = business_id
        self.existing_instance_id = existing_instance_id
        super().__init__(
            f"Business entity {business_type}/{business_id} already has a "
            f"pending workflow instance"
            + (f" ({existing_instance_id})" if existing_instance_id else "")
        )


class InstanceNotCancellableError(InstanceError):
    """Cancel requested on an instance that is already terminal."""

    code: str = "INSTANCE_NOT_CANCELLABLE"

    def __init__(self, instance_id: str, status: str):
        self.instance_id = instance_id
        self.status = status
        super().__init__(
            f"Workflow instance {instance_id} cannot be cancelled in status '{status}'"
        )


class InstanceConflictError(InstanceError):
    """A concurrent request changed the instance before this one could commit.

    Nothing was written.  The caller may re-read the instance and retry.
    """

    code: str = "INSTANCE_CONFLICT"

    def __init__(self, instance_id: str, operation: str):
        self.instance_id = instance_id
        self.operation = operation
        super().__init__(
            f"Workflow instance {instance_id} was changed by a concurrent request "
            f"during {operation}"
        )


# =============================================================================
# Not Found Errors
# =============================================================================


class NotFoundError(WorkflowKernelError):
    """Base for unknown identifiers."""

    code: str = "NOT_FOUND"


class InstanceNotFoundError(NotFoundError):
    """Instance ID does not exist."""

    code: str = "INSTANCE_NOT_FOUND"

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"Workflow instance not found: {instance_id}")


class ProcessNotFoundError(NotFoundError):
    """Process ID does not exist."""

    code: str = "PROCESS_NOT_FOUND"

    def __init__(self, process_id: str):
        self.process_id = process_id
        super().__init__(f"Workflow process not found: {process_id}")


# =============================================================================
# Transition Errors
# =============================================================================


class TransitionError(WorkflowKernelError):
    """Base for node-processing refusals."""

    code: str = "TRANSITION_ERROR"


class IllegalTransitionError(TransitionError):
    """The requested action is not legal in the current instance state.

    Covers acting on a non-active node, acting on a terminal instance,
    an unknown action value and an invalid back target.  No state is
    changed when this is raised.
    """

    code: str = "ILLEGAL_TRANSITION"

    def __init__(self, process_id: str, action: str, reason: str):
        self.process_id = process_id
        self.action = action
        self.reason = reason
        super().__init__(
            f"Illegal transition '{action}' on process {process_id}: {reason}"
        )


class AlreadyProcessedError(IllegalTransitionError):
    """Another actor decided this node first (concurrent double-submit)."""

    code: str = "ALREADY_PROCESSED"

    def __init__(self, process_id: str, action: str):
        super().__init__(
            process_id, action, "node was already processed by a concurrent request",
        )


class UnauthorizedActorError(TransitionError):
    """Actor is not permitted to perform the action (enforcement is configurable)."""

    code: str = "UNAUTHORIZED_ACTOR"

    def __init__(self, actor_id: str, target_id: str, reason: str):
        self.actor_id = actor_id
        self.target_id = target_id
        self.reason = reason
        super().__init__(f"Actor {actor_id} may not act on {target_id}: {reason}")


# =============================================================================
# Immutability Errors
# =============================================================================


class ImmutabilityError(WorkflowKernelError):
    """Base for attempts to mutate frozen records."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempt to modify an append-only log row or a terminal instance."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# =============================================================================
# Storage Errors
# =============================================================================


class StorageError(WorkflowKernelError):
    """The storage layer failed; the unit of work was rolled back."""

    code: str = "STORAGE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage failure during {operation}: {detail}")
