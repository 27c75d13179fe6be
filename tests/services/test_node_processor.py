"""
Tests for NodeProcessor -- approve / reject / back on the active node.

Covers:
- The three transitions and completion
- IllegalTransition for non-active nodes, terminal instances, bad
  actions, bad back targets; AlreadyProcessed for decided nodes
- No state change on refusal
- Assignee enforcement setting
- get_backable_nodes()
"""

from uuid import uuid4

import pytest

from workflow_config.schema import EngineSettings
from workflow_kernel.domain.workflow import InstanceStatus, ProcessAction, WorkflowAction
from workflow_kernel.exceptions import (
    AlreadyProcessedError,
    IllegalTransitionError,
    ProcessNotFoundError,
    UnauthorizedActorError,
)
from workflow_services.node_processor import NodeProcessor


@pytest.fixture
def case(instance_manager, users):
    return instance_manager.start("case", 42, "Case 42", users.creator)


@pytest.fixture
def contract(instance_manager, users):
    """CONTRACT_FLOW: auto start, four reviews, auto archive, auto end."""
    return instance_manager.start("contract", 7, "Contract 7", users.creator)


def pid(instance, node_index):
    return instance.processes[node_index].process_id


class TestTransitions:

    def test_approve_advances(self, node_processor, instance_selector, case, users):
        process = node_processor.process(pid(case, 0), "approve", users.verifier, "fine")
        assert process.action == ProcessAction.APPROVE
        assert process.processor_id == users.verifier
        assert process.comment == "fine"
        assert instance_selector.get_instance(case.instance_id).current_node_index == 1

    def test_approve_all_completes(self, node_processor, instance_selector, case, users):
        for index, actor in enumerate([users.verifier, users.supervisor, users.checker]):
            node_processor.process(pid(case, index), WorkflowAction.APPROVE, actor)
        instance = instance_selector.get_instance(case.instance_id)
        assert instance.status == InstanceStatus.COMPLETED
        assert instance.current_node_index == 2
        assert instance.progress_percentage() == 100

    def test_reject_is_terminal(self, node_processor, instance_selector, case, users):
        node_processor.process(pid(case, 0), "approve", users.verifier)
        node_processor.process(pid(case, 1), "reject", users.supervisor, "missing docs")
        instance = instance_selector.get_instance(case.instance_id)
        assert instance.status == InstanceStatus.REJECTED
        third = instance.processes[2]
        assert third.action == ProcessAction.PENDING
        assert third.activated_at is None
        assert third.processor_id is None

    def test_back_resets_downstream(self, node_processor, instance_selector, contract, users):
        # nodes 1..4 are reviews; approve 1, 2, 3 so the pointer sits on 4
        for index in (1, 2, 3):
            node_processor.process(pid(contract, index), "approve", uuid4())
        node_processor.process(pid(contract, 4), "back", users.manager, back_to_node_index=2)

        instance = instance_selector.get_instance(contract.instance_id)
        assert instance.current_node_index == 2
        actions = [p.action for p in instance.processes]
        assert actions[0] == ProcessAction.AUTO
        assert actions[1] == ProcessAction.APPROVE
        assert actions[2:5] == [ProcessAction.PENDING] * 3

    def test_auto_tail_completes_contract(self, node_processor, instance_selector, contract):
        for index in (1, 2, 3, 4):
            node_processor.process(pid(contract, index), "approve", uuid4())
        instance = instance_selector.get_instance(contract.instance_id)
        assert instance.status == InstanceStatus.COMPLETED
        assert instance.current_node_index == 6
        assert [p.action for p in instance.processes[5:]] == [ProcessAction.AUTO] * 2


class TestRefusals:

    def test_future_node(self, node_processor, case, users):
        with pytest.raises(IllegalTransitionError) as exc_info:
            node_processor.process(pid(case, 1), "approve", users.supervisor)
        assert not isinstance(exc_info.value, AlreadyProcessedError)

    def test_double_approve(self, node_processor, instance_selector, case, users):
        node_processor.process(pid(case, 0), "approve", users.verifier)
        before = instance_selector.get_instance(case.instance_id)
        with pytest.raises(AlreadyProcessedError) as exc_info:
            node_processor.process(pid(case, 0), "approve", users.verifier)
        assert exc_info.value.code == "ALREADY_PROCESSED"
        assert instance_selector.get_instance(case.instance_id) == before

    def test_completed_instance(self, node_processor, case, users):
        for index in range(3):
            node_processor.process(pid(case, index), "approve", users.verifier)
        for index in range(3):
            with pytest.raises(IllegalTransitionError):
                node_processor.process(pid(case, index), "approve", users.verifier)

    def test_rejected_instance_later_node(self, node_processor, case, users):
        node_processor.process(pid(case, 0), "reject", users.verifier)
        with pytest.raises(IllegalTransitionError, match="rejected"):
            node_processor.process(pid(case, 1), "approve", users.supervisor)

    def test_unknown_action(self, node_processor, case, users):
        with pytest.raises(IllegalTransitionError, match="unknown action"):
            node_processor.process(pid(case, 0), "escalate", users.verifier)

    @pytest.mark.parametrize("back_to", [None, 1, -1, 5])
    def test_bad_back_target(self, node_processor, instance_selector, case, users, back_to):
        node_processor.process(pid(case, 0), "approve", users.verifier)
        before = instance_selector.get_instance(case.instance_id)
        with pytest.raises(IllegalTransitionError):
            node_processor.process(pid(case, 1), "back", users.supervisor,
                                   back_to_node_index=back_to)
        assert instance_selector.get_instance(case.instance_id) == before

    def test_back_to_auto_node(self, node_processor, contract, users):
        node_processor.process(pid(contract, 1), "approve", users.verifier)
        with pytest.raises(IllegalTransitionError, match="back target"):
            node_processor.process(pid(contract, 2), "back", users.legal, back_to_node_index=0)

    def test_unknown_process(self, node_processor, users):
        with pytest.raises(ProcessNotFoundError):
            node_processor.process(uuid4(), "approve", users.verifier)

    def test_refusal_logged(self, node_processor, case, users, captured_logs):
        with pytest.raises(IllegalTransitionError):
            node_processor.process(pid(case, 2), "approve", users.checker)
        assert any(r["message"] == "transition_refused" for r in captured_logs())


class TestAssigneeEnforcement:

    def test_only_assignee_may_act(self, session, deterministic_clock, case, users):
        processor = NodeProcessor(session, EngineSettings(enforce_assignee=True),
                                  deterministic_clock)
        with pytest.raises(UnauthorizedActorError):
            processor.process(pid(case, 0), "approve", users.outsider)
        assert processor.process(pid(case, 0), "approve", users.verifier).action == (
            ProcessAction.APPROVE
        )

    def test_unassigned_node_open_to_anyone(self, session, deterministic_clock,
                                            contract, users):
        processor = NodeProcessor(session, EngineSettings(enforce_assignee=True),
                                  deterministic_clock)
        assert contract.processes[1].assignee_id is None
        processor.process(pid(contract, 1), "approve", users.outsider)

    def test_disabled_by_default(self, node_processor, case, users):
        node_processor.process(pid(case, 0), "approve", users.outsider)


class TestBackableNodes:

    def test_lists_approved_nodes_below_pointer(self, node_processor, contract, users):
        node_processor.process(pid(contract, 1), "approve", users.verifier)
        node_processor.process(pid(contract, 2), "approve", users.legal)
        nodes = node_processor.get_backable_nodes(contract.instance_id)
        assert [(n.node_index, n.node_name) for n in nodes] == [
            (1, "Supervisor review"), (2, "Legal review"),
        ]
        assert nodes[1].processor_id == users.legal
        assert nodes[1].processed_at is not None

    def test_empty_at_first_node(self, node_processor, case):
        assert node_processor.get_backable_nodes(case.instance_id) == []
