"""Cluster configuration loading and validation.

Turns the k8s-libvirt.yaml mapping into ClusterConfig dataclasses after
checking it against schema/config.schema.json.
"""

import ipaddress
import json
from pathlib import Path
from typing import Any

from jsonschema import ValidationError, validate
from jsonschema.exceptions import SchemaError

from k8s_libvirt.models.cluster import (
    ClusterConfig,
    ClusterSettings,
    LibvirtSettings,
    NodePool,
    SSHSettings,
    ValidationSettings,
)

# Get project root to find schema
PROJECT_ROOT = Path(__file__).parent.parent

# Module-level schema cache
_SCHEMA_CACHE: dict[str, dict] = {}


def _load_config_schema() -> dict:
    """
    Load and cache the configuration JSON schema.

    Raises:
        FileNotFoundError: If schema file doesn't exist
    """
    schema_name = "config"
    if schema_name not in _SCHEMA_CACHE:
        schema_file = PROJECT_ROOT / "schema/config.schema.json"
        if not schema_file.exists():
            raise FileNotFoundError(
                f"Configuration schema file not found: {schema_file}\n"
                f"This indicates an incomplete installation. Please reinstall k8s-libvirt:\n"
                f"  pip install --force-reinstall k8s-libvirt"
            )
        _SCHEMA_CACHE[schema_name] = json.loads(schema_file.read_text())
    return _SCHEMA_CACHE[schema_name]


def validate_config(config_data: Any) -> tuple[bool, list[str]]:
    """
    Validate configuration data against the JSON schema and CIDR syntax.

    Args:
        config_data: Configuration as loaded from YAML

    Returns:
        tuple: (is_valid, error_messages)
    """
    try:
        schema = _load_config_schema()
        validate(instance=config_data, schema=schema)
    except ValidationError as e:
        path = ".".join(str(p) for p in e.path) if e.path else "root"
        errors = [f"Configuration error at '{path}': {e.message}"]

        if e.validator == "enum":
            errors.append(f"  Allowed values: {', '.join(str(v) for v in e.validator_value)}")
        elif e.validator == "type":
            errors.append(f"  Expected type: {e.validator_value}")
            errors.append(f"  Got: {type(e.instance).__name__}")

        return (False, errors)
    except SchemaError as e:
        return (False, [f"Invalid configuration schema: {e}"])
    except FileNotFoundError as e:
        return (False, [str(e)])

    errors = []
    for section, key in [
        ("cluster", "pod_network_cidr"),
        ("cluster", "service_cidr"),
        ("libvirt", "network_cidr"),
    ]:
        value = config_data.get(section, {}).get(key)
        if value is None:
            continue
        try:
            ipaddress.ip_network(value)
        except ValueError:
            errors.append(f"Configuration error at '{section}.{key}': {value!r} is not a CIDR")

    return (not errors, errors)


def _parse_node_pool(data: dict, default: NodePool) -> NodePool:
    """Parse a node pool, falling back to the default sizing."""
    return NodePool(
        count=data.get("count", default.count),
        vcpu=data.get("vcpu", default.vcpu),
        memory_mb=data.get("memory_mb", default.memory_mb),
        disk_gb=data.get("disk_gb", default.disk_gb),
    )


def load_cluster_config(config_data: dict) -> ClusterConfig:
    """
    Parse a validated configuration mapping into ClusterConfig.

    Missing sections and keys take the dataclass defaults.

    Args:
        config_data: Configuration mapping (already schema-validated)

    Returns:
        ClusterConfig instance
    """
    defaults = ClusterConfig()
    nodes = config_data.get("nodes", {})

    return ClusterConfig(
        cluster=ClusterSettings(**config_data.get("cluster", {})),
        libvirt=LibvirtSettings(**config_data.get("libvirt", {})),
        control_plane=_parse_node_pool(nodes.get("control_plane", {}), defaults.control_plane),
        workers=_parse_node_pool(nodes.get("workers", {}), defaults.workers),
        ssh=SSHSettings(**config_data.get("ssh", {})),
        validation=ValidationSettings(**config_data.get("validation", {})),
    )
