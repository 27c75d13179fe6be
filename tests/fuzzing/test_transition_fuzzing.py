"""
Hypothesis fuzzing of the node-processor state machine.

Random templates (2-8 nodes, any mix of auto-pass flags) are driven by
random action sequences aimed at random nodes.  After every step:

- a refused action changes nothing
- an accepted action leaves a consistent instance (single active node,
  pointer in bounds, nothing decided above the pointer)
- terminal instances refuse everything

The database-backed variant replays the same kind of sequence through
the WorkflowEngine facade and checks the stored instance after each call.
"""

from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from workflow_engines.transitions import (
    check_transition,
    instance_invariant_violations,
    plan_start,
    plan_transition,
)
from workflow_kernel.domain.workflow import (
    InstanceStatus,
    NodeState,
    ProcessAction,
)
from workflow_kernel.exceptions import IllegalTransitionError
from workflow_services.node_processor import node_states

from tests.conftest import auto_node, review_node

actions = st.sampled_from(["approve", "reject", "back", "escalate"])
steps = st.lists(
    st.tuples(actions, st.integers(0, 9), st.one_of(st.none(), st.integers(-1, 9))),
    max_size=25,
)
auto_flags = st.lists(st.booleans(), min_size=2, max_size=8)


class SimulatedInstance:
    """In-memory instance driven purely by the transition engine."""

    def __init__(self, flags):
        self.nodes = [NodeState(i, ProcessAction.PENDING, flag) for i, flag in enumerate(flags)]
        self.status = InstanceStatus.PENDING
        self.current = 0
        self.apply(plan_start(self.nodes))

    def apply(self, plan):
        for update in plan.updates:
            node = self.nodes[update.node_index]
            self.nodes[update.node_index] = NodeState(node.node_index, update.action, node.auto_pass)
        self.status = plan.status
        self.current = plan.current_node_index

    def snapshot(self):
        return self.status, self.current, list(self.nodes)

    def violations(self):
        return instance_invariant_violations(
            status=self.status, current_node_index=self.current, nodes=self.nodes,
        )


class TestPureStateMachine:

    @given(flags=auto_flags, sequence=steps)
    @settings(max_examples=300)
    def test_invariants_hold_after_every_step(self, flags, sequence):
        instance = SimulatedInstance(flags)
        assert instance.violations() == []

        for action, target, back_to in sequence:
            target = target % len(flags)
            before = instance.snapshot()
            reason = check_transition(
                status=instance.status,
                current_node_index=instance.current,
                nodes=instance.nodes,
                target_node_index=target,
                action=action,
                back_to_node_index=back_to,
            )
            if reason is not None:
                assert instance.snapshot() == before
                continue

            instance.apply(plan_transition(
                status=instance.status,
                current_node_index=instance.current,
                nodes=instance.nodes,
                action=action,
                back_to_node_index=back_to,
            ))
            assert instance.violations() == []
            assert 0 <= instance.current < len(flags)

    @given(flags=auto_flags)
    def test_all_auto_completes_at_start(self, flags):
        instance = SimulatedInstance([True] * len(flags))
        assert instance.status == InstanceStatus.COMPLETED
        assert instance.current == len(flags) - 1
        assert all(n.action == ProcessAction.AUTO for n in instance.nodes)

    @given(flags=auto_flags, sequence=steps)
    @settings(max_examples=200)
    def test_terminal_refuses_everything(self, flags, sequence):
        instance = SimulatedInstance(flags)
        if instance.status == InstanceStatus.PENDING:
            instance.apply(plan_transition(
                status=instance.status,
                current_node_index=instance.current,
                nodes=instance.nodes,
                action="reject",
            ))
        for action, target, back_to in sequence:
            assert check_transition(
                status=instance.status,
                current_node_index=instance.current,
                nodes=instance.nodes,
                target_node_index=target % len(flags),
                action=action,
                back_to_node_index=back_to,
            ) is not None

    @given(flags=auto_flags)
    def test_approving_every_active_node_completes(self, flags):
        instance = SimulatedInstance(flags)
        reviews = flags.count(False)
        for _ in range(reviews):
            if instance.status != InstanceStatus.PENDING:
                break
            instance.apply(plan_transition(
                status=instance.status,
                current_node_index=instance.current,
                nodes=instance.nodes,
                action="approve",
            ))
        assert instance.status == InstanceStatus.COMPLETED
        assert instance.current == len(flags) - 1
        assert ProcessAction.PENDING not in [n.action for n in instance.nodes]


class TestStoredInstanceFuzzing:

    @given(flags=auto_flags, sequence=steps)
    @settings(
        max_examples=25,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_engine_keeps_stored_instance_consistent(
        self, flags, sequence, workflow_engine, users,
    ):
        nodes = [
            auto_node(f"Auto {i}") if flag else review_node(f"Review {i}")
            for i, flag in enumerate(flags)
        ]
        template = workflow_engine.create_template(
            f"FUZZ_{uuid4().hex[:12].upper()}", "Fuzz", "fuzz", nodes,
        )
        instance = workflow_engine.start(
            "fuzz", uuid4().hex, "Fuzz", users.creator, template_id=template.template_id,
        )

        for action, target, back_to in sequence:
            before = workflow_engine.get_instance(instance.instance_id)
            process_id = before.processes[target % len(flags)].process_id
            try:
                workflow_engine.process(process_id, action, users.outsider,
                                        back_to_node_index=back_to)
            except IllegalTransitionError:
                after = workflow_engine.get_instance(instance.instance_id)
                assert node_states(after) == node_states(before)
                assert after.current_node_index == before.current_node_index
                continue

            after = workflow_engine.get_instance(instance.instance_id)
            assert instance_invariant_violations(
                status=after.status,
                current_node_index=after.current_node_index,
                nodes=node_states(after),
            ) == []
