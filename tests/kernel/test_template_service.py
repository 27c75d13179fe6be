"""
Tests for TemplateService -- template writes.

Covers:
- create_template(): canonical node storage, duplicate code, invalid nodes
- replace_nodes(): version bump
- set_active(): toggling
- upsert_template(): create, unchanged, nodes changed, metadata changed
"""

from uuid import uuid4

import pytest

from tests.conftest import auto_node, review_node
from workflow_kernel.domain.workflow import FixedAssignee, NodeSpec, NodeType
from workflow_kernel.exceptions import InvalidTemplateError, TemplateNotFoundError


@pytest.fixture
def approver():
    return uuid4()


@pytest.fixture
def two_nodes(approver):
    return [review_node("Review", approver), review_node("Sign off", approver)]


class TestCreateTemplate:

    def test_creates_version_one(self, template_service, two_nodes, approver):
        template = template_service.create_template("T1", "Template", "case", two_nodes)
        assert template.version == 1
        assert template.is_active
        assert template.node_count == 2
        assert template.nodes[0].assignee == FixedAssignee((approver,))
        assert template.nodes[1].node_type == NodeType.REVIEW

    def test_accepts_parsed_node_specs(self, template_service):
        nodes = (NodeSpec(0, "Start", NodeType.START, auto_pass=True), NodeSpec(1, "End"))
        template = template_service.create_template("T2", "Template", "case", nodes)
        assert template.nodes[0].auto_pass

    def test_duplicate_code_refused(self, template_service, two_nodes):
        template_service.create_template("T1", "Template", "case", two_nodes)
        with pytest.raises(InvalidTemplateError, match="already exists"):
            template_service.create_template("T1", "Other", "case", two_nodes)

    def test_single_node_refused(self, template_service, approver):
        with pytest.raises(InvalidTemplateError) as exc_info:
            template_service.create_template("T1", "T", "case", [review_node("A", approver)])
        assert exc_info.value.code == "INVALID_TEMPLATE"

    def test_malformed_node_refused(self, template_service, approver):
        with pytest.raises(InvalidTemplateError):
            template_service.create_template(
                "T1", "T", "case", [review_node("A", approver), {"node_type": "end"}],
            )

    def test_logs_creation(self, template_service, two_nodes, captured_logs):
        template_service.create_template("T1", "Template", "case", two_nodes)
        assert any(
            r["message"] == "template_created" and r["template_code"] == "T1"
            for r in captured_logs()
        )


class TestReplaceAndActivate:

    def test_replace_nodes_bumps_version(self, template_service, two_nodes, approver):
        template = template_service.create_template("T1", "Template", "case", two_nodes)
        updated = template_service.replace_nodes(
            template.template_id,
            two_nodes + [auto_node("Archive")],
        )
        assert updated.version == 2
        assert updated.node_count == 3

    def test_replace_unknown_template(self, template_service, two_nodes):
        with pytest.raises(TemplateNotFoundError):
            template_service.replace_nodes(uuid4(), two_nodes)

    def test_set_active(self, template_service, two_nodes):
        template = template_service.create_template("T1", "Template", "case", two_nodes)
        assert not template_service.set_active(template.template_id, False).is_active
        assert template_service.set_active(template.template_id, True).is_active


class TestUpsert:

    def test_creates_when_missing(self, template_service, two_nodes):
        result = template_service.upsert_template("T1", "Template", "case", two_nodes)
        assert result.created
        assert result.changed

    def test_unchanged(self, template_service, two_nodes):
        template_service.upsert_template("T1", "Template", "case", two_nodes)
        result = template_service.upsert_template("T1", "Template", "case", two_nodes)
        assert not result.changed
        assert result.template.version == 1

    def test_node_change_bumps_version(self, template_service, two_nodes):
        template_service.upsert_template("T1", "Template", "case", two_nodes)
        result = template_service.upsert_template(
            "T1", "Template", "case", list(reversed(two_nodes)),
        )
        assert result.nodes_changed
        assert not result.metadata_changed
        assert result.template.version == 2
        assert result.template.nodes[0].name == "Sign off"

    def test_metadata_change_keeps_version(self, template_service, two_nodes):
        template_service.upsert_template("T1", "Template", "case", two_nodes)
        result = template_service.upsert_template(
            "T1", "Renamed", "case", two_nodes, is_active=False,
        )
        assert result.metadata_changed
        assert not result.nodes_changed
        assert result.template.version == 1
        assert result.template.name == "Renamed"
        assert not result.template.is_active
