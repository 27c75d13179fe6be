"""
Configuration Loader (``workflow_config.loader``).

Responsibility
--------------
Loads the YAML files of one configuration set directory and parses them
into typed ``workflow_config.schema`` dataclasses.  This is tooling used by
``get_active_config()``; no service should call it directly.

Layout of a set directory::

    <set>/engine.yaml            name, version, settings
    <set>/routing.yaml           business_type/discriminant -> template_code
    <set>/business_status.yaml   business_type -> {instance status: label}
    <set>/templates/*.yaml       one template per file

Invariants enforced
-------------------
* Required keys raise ``KeyError``/``ValueError`` with a descriptive
  message; there are no silent defaults for required fields.
* ``compute_checksum`` is a deterministic SHA-256 over all loaded data.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from workflow_config.schema import (
    BusinessStatusMap,
    EngineSettings,
    TemplateDef,
    WorkflowConfigSet,
)
from workflow_kernel.domain.workflow import WILDCARD_DISCRIMINANT, RoutingRule


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    return EngineSettings(
        enforce_assignee=bool(data.get("enforce_assignee", False)),
        restrict_cancel_to_creator=bool(data.get("restrict_cancel_to_creator", False)),
    )


def parse_template(data: dict[str, Any], source: str = "") -> TemplateDef:
    """Parse a template file.  Node contents are validated later, not here."""
    try:
        code = data["code"]
        name = data["name"]
        category = data["category"]
    except KeyError as exc:
        raise KeyError(f"{source or 'template'}: missing required key {exc}") from exc

    nodes = data.get("nodes")
    if not isinstance(nodes, list):
        raise ValueError(f"{source or code}: 'nodes' must be a list")

    return TemplateDef(
        code=str(code),
        name=str(name),
        category=str(category),
        raw_nodes=tuple(nodes),
        description=str(data.get("description") or ""),
        is_active=bool(data.get("is_active", True)),
    )


def parse_routing_rule(data: dict[str, Any]) -> RoutingRule:
    discriminant = data.get("discriminant", WILDCARD_DISCRIMINANT)
    return RoutingRule(
        business_type=str(data["business_type"]),
        template_code=str(data["template_code"]),
        discriminant=str(discriminant),
    )


def parse_status_maps(data: dict[str, Any]) -> tuple[BusinessStatusMap, ...]:
    maps = []
    for business_type, labels in sorted((data or {}).items()):
        if not isinstance(labels, dict):
            raise ValueError(f"business_status.{business_type} must be a mapping")
        maps.append(BusinessStatusMap(
            business_type=str(business_type),
            labels=tuple(sorted((str(k), str(v)) for k, v in labels.items())),
        ))
    return tuple(maps)


def load_config_set(set_dir: Path) -> WorkflowConfigSet:
    """Load and parse every file of a configuration set directory."""
    if not set_dir.is_dir():
        raise FileNotFoundError(f"Configuration set directory not found: {set_dir}")

    engine_data = load_yaml_file(set_dir / "engine.yaml")
    routing_data = load_yaml_file(set_dir / "routing.yaml")
    status_data = load_yaml_file(set_dir / "business_status.yaml")

    template_files = sorted((set_dir / "templates").glob("*.yaml"))
    template_data = [(p.name, load_yaml_file(p)) for p in template_files]

    checksum = compute_checksum({
        "engine": engine_data,
        "routing": routing_data,
        "business_status": status_data,
        "templates": {name: data for name, data in template_data},
    })

    return WorkflowConfigSet(
        name=str(engine_data.get("name", set_dir.name)),
        version=int(engine_data.get("version", 1)),
        settings=parse_settings(engine_data.get("settings") or {}),
        templates=tuple(parse_template(data, name) for name, data in template_data),
        routing=tuple(parse_routing_rule(r) for r in routing_data.get("rules") or []),
        status_maps=parse_status_maps(status_data.get("business_status") or {}),
        checksum=checksum,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
