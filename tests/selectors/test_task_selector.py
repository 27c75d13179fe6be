"""
Tests for the pending-task inbox (TaskSelector).

Covers:
- Only the active node of a pending instance is a task
- FIFO ordering across instances
- Tasks disappear when the instance turns terminal
- Task details carry business context and due date
"""

from datetime import timedelta

import pytest

from workflow_kernel.domain.workflow import WorkflowAction


@pytest.fixture
def start_case(workflow_engine, users, deterministic_clock):
    def _start(business_id):
        instance = workflow_engine.start(
            "case", business_id, f"Case {business_id}", users.creator,
        )
        deterministic_clock.advance(60)
        return instance
    return _start


class TestPendingTasks:

    def test_active_node_only(self, start_case, task_selector, users):
        instance = start_case(1)
        tasks = task_selector.pending_tasks(users.verifier)
        assert [t.process_id for t in tasks] == [instance.processes[0].process_id]
        assert task_selector.pending_tasks(users.supervisor) == []

    def test_fifo_across_instances(self, start_case, task_selector, users):
        first = start_case(1)
        second = start_case(2)
        third = start_case(3)
        tasks = task_selector.pending_tasks(users.verifier)
        assert [t.instance_id for t in tasks] == [
            first.instance_id, second.instance_id, third.instance_id,
        ]

    def test_ordering_is_stable(self, start_case, task_selector, users):
        for business_id in range(5):
            start_case(business_id)
        once = task_selector.pending_tasks(users.verifier)
        again = task_selector.pending_tasks(users.verifier)
        assert [t.process_id for t in once] == [t.process_id for t in again]

    def test_task_moves_with_pointer(self, start_case, workflow_engine, task_selector, users):
        instance = start_case(1)
        workflow_engine.process(
            instance.processes[0].process_id, WorkflowAction.APPROVE, users.verifier,
        )
        assert task_selector.pending_tasks(users.verifier) == []
        tasks = task_selector.pending_tasks(users.supervisor)
        assert [t.node_index for t in tasks] == [1]

    def test_rejected_instance_leaves_inbox(self, start_case, workflow_engine, task_selector, users):
        instance = start_case(1)
        workflow_engine.process(instance.processes[0].process_id, "reject", users.verifier)
        assert task_selector.pending_tasks(users.verifier) == []
        assert task_selector.pending_tasks(users.supervisor) == []

    def test_cancelled_instance_leaves_inbox(self, start_case, workflow_engine, task_selector, users):
        instance = start_case(1)
        workflow_engine.cancel(instance.instance_id, users.creator)
        assert task_selector.count_pending(users.verifier) == 0

    def test_count_matches_list(self, start_case, task_selector, users):
        start_case(1)
        start_case(2)
        assert task_selector.count_pending(users.verifier) == 2


class TestPendingTaskDetails:

    def test_business_context_and_due_date(self, start_case, task_selector, users):
        instance = start_case(7)
        [task] = task_selector.pending_task_details(users.verifier)
        assert task.business_type == "case"
        assert task.business_id == "7"
        assert task.business_title == "Case 7"
        assert task.template_code == "CASE_BUSINESS_FLOW"
        assert task.template_name == "Case filing approval"
        assert task.node_count == 3
        assert task.instance_created_at == instance.created_at
        assert task.due_at == task.process.activated_at + timedelta(hours=24)
