"""
workflow_services.business_status -- Business-Status Bridge.

Responsibility:
    Read-only projection that lets a business entity (a case, a contract)
    ask "what is my current workflow status" without depending on engine
    internals, plus the listener protocol through which business modules
    are told about committed changes.

Architecture position:
    Services layer.  Reads through the kernel InstanceSelector; labels come
    from the configuration set's business-status maps.

Invariants enforced:
    - "No instance" is a normal result (``BusinessStatus.instance is None``),
      never an error.
    - Pure read: nothing is written.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from sqlalchemy.orm import Session

from workflow_config.schema import WorkflowConfigSet
from workflow_kernel.domain.workflow import BusinessStatus, WorkflowInstance
from workflow_kernel.selectors.instance_selector import InstanceSelector


@runtime_checkable
class BusinessStatusListener(Protocol):
    """Called after a Start, Process or Cancel has committed.

    Implementations typically copy ``status.status_label`` onto the
    business record.  A listener that raises is logged and ignored; the
    workflow change stays committed.
    """

    def on_status_changed(self, status: BusinessStatus) -> None:
        ...


def project_status(
    config: WorkflowConfigSet,
    instance: WorkflowInstance,
) -> BusinessStatus:
    return BusinessStatus(
        business_type=instance.business_type,
        business_id=instance.business_id,
        instance=instance,
        status_label=config.status_label(instance.business_type, instance.status),
    )


class BusinessStatusBridge:
    """Latest-instance lookup per business entity."""

    def __init__(self, session: Session, config: WorkflowConfigSet):
        self._config = config
        self._selector = InstanceSelector(session)

    def get_business_status(
        self,
        business_type: str,
        business_id: str | int,
    ) -> BusinessStatus:
        instance = self._selector.latest_for_business(business_type, str(business_id))
        if instance is None:
            return BusinessStatus(business_type=business_type, business_id=str(business_id))
        return project_status(self._config, instance)

    def history_for_business(
        self,
        business_type: str,
        business_id: str | int,
    ) -> list[WorkflowInstance]:
        """Every instance that ever ran for the entity, oldest first."""
        return self._selector.instances_for_business(business_type, str(business_id))
