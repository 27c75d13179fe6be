"""Fixtures for coordinator tests: coordinators share one uncommitted session."""

import pytest

from workflow_services.instance_manager import InstanceManager
from workflow_services.node_processor import NodeProcessor
from workflow_services.template_store import TemplateStore


@pytest.fixture
def template_store(session, workflow_config, deterministic_clock) -> TemplateStore:
    return TemplateStore(session, workflow_config, deterministic_clock)


@pytest.fixture
def synced_templates(template_store):
    """The default config set's templates, installed."""
    return {r.template.code: r.template for r in template_store.sync_from_config()}


@pytest.fixture
def instance_manager(
    session, workflow_config, user_directory, deterministic_clock, synced_templates,
) -> InstanceManager:
    return InstanceManager(
        session, workflow_config, user_directory, clock=deterministic_clock,
    )


@pytest.fixture
def node_processor(session, workflow_config, deterministic_clock) -> NodeProcessor:
    return NodeProcessor(session, workflow_config.settings, deterministic_clock)
