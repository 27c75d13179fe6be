"""Tests for InstanceSelector -- instance, history and action-log reads."""

from uuid import uuid4

import pytest

from workflow_kernel.domain.workflow import InstanceStatus, LogAction, ProcessAction
from workflow_kernel.exceptions import InstanceNotFoundError


class TestLatestForBusiness:

    def test_none_when_never_started(self, instance_selector, db_engine):
        assert instance_selector.latest_for_business("case", "404") is None

    def test_most_recent_instance(self, workflow_engine, instance_selector, users,
                                  deterministic_clock):
        first = workflow_engine.start("case", 5, "Case 5", users.creator)
        workflow_engine.cancel(first.instance_id, users.creator)
        deterministic_clock.advance(60)
        second = workflow_engine.start("case", 5, "Case 5", users.creator)

        latest = instance_selector.latest_for_business("case", "5")
        assert latest.instance_id == second.instance_id
        assert [i.instance_id for i in instance_selector.instances_for_business("case", 5)] == [
            first.instance_id, second.instance_id,
        ]

    def test_pending_wins_a_creation_time_tie(self, workflow_engine, instance_selector, users):
        first = workflow_engine.start("case", 6, "Case 6", users.creator)
        workflow_engine.cancel(first.instance_id, users.creator)
        second = workflow_engine.start("case", 6, "Case 6", users.creator)
        assert first.created_at == second.created_at
        latest = instance_selector.latest_for_business("case", "6")
        assert latest.instance_id == second.instance_id
        assert latest.status == InstanceStatus.PENDING


class TestHistoryAndLog:

    def test_history_ordered_by_node(self, workflow_engine, instance_selector, users):
        instance = workflow_engine.start("case", 1, "Case 1", users.creator)
        workflow_engine.process(instance.processes[0].process_id, "approve", users.verifier)
        history = instance_selector.history(instance.instance_id)
        assert [p.node_index for p in history] == [0, 1, 2]
        assert [p.action for p in history] == [
            ProcessAction.APPROVE, ProcessAction.PENDING, ProcessAction.PENDING,
        ]

    def test_action_log_in_sequence(self, workflow_engine, instance_selector, users):
        instance = workflow_engine.start("case", 1, "Case 1", users.creator)
        workflow_engine.process(instance.processes[0].process_id, "approve", users.verifier)
        workflow_engine.process(
            instance.processes[1].process_id, "back", users.supervisor, back_to_node_index=0,
        )
        log = instance_selector.action_log(instance.instance_id)
        assert [e.action for e in log] == [LogAction.START, LogAction.APPROVE, LogAction.BACK]
        assert log[1].actor_id == users.verifier

    @pytest.mark.parametrize("method", ["history", "action_log", "get_instance"])
    def test_unknown_instance(self, instance_selector, method, db_engine):
        with pytest.raises(InstanceNotFoundError):
            getattr(instance_selector, method)(uuid4())
