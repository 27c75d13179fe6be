"""
ORM-level protections on workflow tables.

Covers:
- Terminal instances refuse any column change
- The action log refuses UPDATE and DELETE
- The partial unique index allows one pending instance per business entity
  while keeping any number of terminal ones
- Pointer bounds check constraint
"""

from datetime import UTC, datetime
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from tests.conftest import review_node
from workflow_engines.transitions import plan_start, plan_transition
from workflow_kernel.domain.workflow import (
    InstanceStatus,
    LogAction,
    NodeState,
    ProcessAction,
)
from workflow_kernel.exceptions import ImmutabilityViolationError
from workflow_kernel.models.workflow import (
    WorkflowActionLogModel,
    WorkflowInstanceModel,
)


@pytest.fixture
def template(template_service):
    approver = uuid4()
    return template_service.create_template(
        "IMM_FLOW", "Immutability", "case",
        [review_node("A", approver), review_node("B", approver)],
    )


@pytest.fixture
def start(instance_service, template):
    def _start(business_id="1"):
        plan = plan_start([NodeState(n.index, ProcessAction.PENDING) for n in template.nodes])
        return instance_service.create_instance(
            template, "case", business_id, "Case", uuid4(),
            [None] * template.node_count, plan,
        )
    return _start


def _reject_first_node(instance_service, instance):
    plan = plan_transition(
        status=InstanceStatus.PENDING,
        current_node_index=0,
        nodes=[NodeState(0, ProcessAction.PENDING), NodeState(1, ProcessAction.PENDING)],
        action="reject",
    )
    instance_service.apply_transition(
        instance.instance_id, instance.processes[0].process_id,
        LogAction.REJECT, plan, actor_id=uuid4(),
        expected_version=instance.version,
    )


class TestTerminalInstanceImmutability:

    def test_terminal_instance_refuses_update(self, session, instance_service, start):
        instance = start()
        _reject_first_node(instance_service, instance)

        model = session.get(WorkflowInstanceModel, instance.instance_id)
        assert model.status == InstanceStatus.REJECTED.value
        model.business_title = "tampered"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "WorkflowInstance"

    def test_reopening_terminal_instance_refused(self, session, instance_service, start):
        instance = start()
        _reject_first_node(instance_service, instance)

        model = session.get(WorkflowInstanceModel, instance.instance_id)
        model.status = InstanceStatus.PENDING.value
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_pending_instance_is_writable(self, session, start):
        instance = start()
        model = session.get(WorkflowInstanceModel, instance.instance_id)
        version_before = model.version
        model.business_title = "Renamed"
        session.flush()
        assert model.version == version_before + 1


class TestActionLogAppendOnly:

    def test_update_refused(self, session, start):
        instance = start()
        entry = session.execute(
            select(WorkflowActionLogModel).where(
                WorkflowActionLogModel.instance_id == instance.instance_id,
            )
        ).scalars().first()
        entry.comment = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_refused(self, session, start):
        instance = start()
        entry = session.execute(
            select(WorkflowActionLogModel).where(
                WorkflowActionLogModel.instance_id == instance.instance_id,
            )
        ).scalars().first()
        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestPendingUniqueness:

    def test_second_pending_row_violates_index(self, session, start, template):
        start("7")
        now = datetime(2024, 1, 1, tzinfo=UTC)
        session.add(WorkflowInstanceModel(
            business_type="case",
            business_id="7",
            business_title="dup",
            template_id=template.template_id,
            template_code=template.code,
            template_version=1,
            status=InstanceStatus.PENDING.value,
            current_node_index=0,
            node_count=2,
            creator_id=uuid4(),
            created_at=now,
            updated_at=now,
        ))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_terminal_rows_do_not_count(self, instance_service, start):
        first = start("8")
        _reject_first_node(instance_service, first)
        second = start("8")
        assert second.status == InstanceStatus.PENDING
        assert second.instance_id != first.instance_id


class TestPointerBounds:

    def test_pointer_past_last_node_violates_check(self, session, start):
        instance = start()
        model = session.get(WorkflowInstanceModel, instance.instance_id)
        model.current_node_index = 2
        with pytest.raises(IntegrityError):
            session.flush()
