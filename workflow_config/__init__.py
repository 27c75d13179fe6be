"""
workflow_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``: engine settings, template definitions,
    business-type routing rules and business-status maps.

Architecture position:
    Configuration -- YAML-driven, validated at load time.  Sits above
    ``workflow_kernel`` and below ``workflow_services``.  The kernel MUST
    NEVER import from ``workflow_config``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Load-time validation: a set with validation errors is never returned.
    - Deterministic checksum: the same YAML always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the requested set directory or one of its
      files does not exist.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``ConfigValidationError`` -- the set failed validation.

Audit relevance:
    Every successful call emits a ``WORKFLOW_CONFIG_TRACE`` log entry with
    the set name, version and checksum, tying engine behaviour to the
    exact configuration that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from workflow_config.loader import load_config_set
from workflow_config.schema import (
    BusinessStatusMap,
    EngineSettings,
    TemplateDef,
    WorkflowConfigSet,
)
from workflow_config.validator import (
    ConfigValidationError,
    ConfigValidationResult,
    validate_configuration,
)

_logger = logging.getLogger("workflow_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    config_dir: Path | None = None,
    set_name: str = "default",
) -> WorkflowConfigSet:
    """The ONLY public configuration entrypoint.

    Args:
        config_dir: Override path to the configuration sets directory.
            Defaults to workflow_config/sets/.
        set_name: Name of the set subdirectory to load.

    Returns:
        A validated, frozen ``WorkflowConfigSet``.

    Raises:
        FileNotFoundError: If the set or one of its files is missing.
        ConfigValidationError: If the set has validation errors.
    """
    sets_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    config = load_config_set(sets_dir / set_name)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ConfigValidationError(config.name, validation.errors)

    for warning in validation.warnings:
        _logger.warning(
            "workflow_config_warning",
            extra={"config_set": config.name, "warning": warning},
        )

    _logger.info(
        "WORKFLOW_CONFIG_TRACE",
        extra={
            "trace_type": "WORKFLOW_CONFIG_TRACE",
            "config_set": config.name,
            "config_version": config.version,
            "checksum": config.checksum,
            "template_count": len(config.templates),
            "routing_rule_count": len(config.routing),
            "enforce_assignee": config.settings.enforce_assignee,
            "restrict_cancel_to_creator": config.settings.restrict_cancel_to_creator,
        },
    )

    return config


__all__ = [
    "get_active_config",
    "WorkflowConfigSet",
    "EngineSettings",
    "TemplateDef",
    "BusinessStatusMap",
    "ConfigValidationError",
    "ConfigValidationResult",
    "validate_configuration",
]
