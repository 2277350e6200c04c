"""
Ansible inventory generation and parsing.

VM names decide the role: names containing ``k8scpnode`` belong to the
control plane group, names containing ``k8swrknode`` to the worker group.
"""

import logging
import re
import shlex
from pathlib import Path

from k8s_libvirt.exceptions import InventoryError, InventoryNotFoundError
from k8s_libvirt.models.cluster import (
    CONTROL_PLANE_PREFIX,
    WORKER_PREFIX,
    Host,
    Inventory,
    SSHSettings,
)
from k8s_libvirt.util.files import write_text

logger = logging.getLogger(__name__)

CONTROL_PLANE_GROUP = "k8s_control_plane"
WORKER_GROUP = "k8s_workers"
CLUSTER_GROUP = "k8s_cluster"

ROLE_CONTROL_PLANE = "control_plane"
ROLE_WORKER = "worker"


def classify_node(name: str) -> str | None:
    """
    Return the role implied by a VM name.

    Returns:
        "control_plane", "worker", or None for names matching neither pattern
    """
    if CONTROL_PLANE_PREFIX in name:
        return ROLE_CONTROL_PLANE
    if WORKER_PREFIX in name:
        return ROLE_WORKER
    return None


def _natural_key(name: str) -> list:
    # k8scpnode2 sorts before k8scpnode10
    return [int(part) if part.isdigit() else part for part in re.split(r"(\d+)", name)]


def build_inventory(node_ips: dict[str, str], ssh: SSHSettings) -> Inventory:
    """
    Group VM addresses into an Inventory.

    Args:
        node_ips: VM name -> IPv4 address (Terraform node_ips output)
        ssh: SSH settings supplying the connection variables

    Returns:
        Inventory with hosts sorted naturally inside each group

    Raises:
        InventoryError: On unknown VM names, missing addresses, or no control plane
    """
    inventory = Inventory(
        variables={
            "ansible_user": ssh.user,
            "ansible_ssh_private_key_file": str(ssh.private_key_path),
            "ansible_ssh_common_args": "-o StrictHostKeyChecking=no",
        }
    )

    unknown = []
    for name in sorted(node_ips, key=_natural_key):
        address = node_ips[name]
        if not address:
            raise InventoryError(f"VM {name} has no IP address yet")

        role = classify_node(name)
        if role == ROLE_CONTROL_PLANE:
            inventory.control_plane.append(Host(name, address))
        elif role == ROLE_WORKER:
            inventory.workers.append(Host(name, address))
        else:
            unknown.append(name)

    if unknown:
        raise InventoryError(
            f"Cannot assign a role to VM(s): {', '.join(unknown)}",
            f"VM names must contain '{CONTROL_PLANE_PREFIX}' or '{WORKER_PREFIX}'.",
        )

    if not inventory.control_plane:
        raise InventoryError("No control plane VM found in Terraform outputs")

    return inventory


def render_inventory(inventory: Inventory) -> str:
    """Render an Inventory as inventory.ini text."""
    lines = ["# Generated by k8s-libvirt", f"[{CONTROL_PLANE_GROUP}]"]
    lines.extend(f"{host.name} ansible_host={host.address}" for host in inventory.control_plane)

    lines.extend(["", f"[{WORKER_GROUP}]"])
    lines.extend(f"{host.name} ansible_host={host.address}" for host in inventory.workers)

    lines.extend(["", f"[{CLUSTER_GROUP}:children]", CONTROL_PLANE_GROUP, WORKER_GROUP])

    if inventory.variables:
        lines.extend(["", "[all:vars]"])
        for key, value in inventory.variables.items():
            if " " in value:
                value = f"'{value}'"
            lines.append(f"{key}={value}")

    return "\n".join(lines) + "\n"


def write_inventory(inventory: Inventory, path: Path) -> None:
    """Write inventory.ini."""
    write_text(path, render_inventory(inventory))
    logger.info(
        f"Wrote {path} ({len(inventory.control_plane)} control plane, "
        f"{len(inventory.workers)} worker)"
    )


def parse_inventory(text: str) -> Inventory:
    """
    Parse inventory.ini text.

    Only the control plane, worker and all:vars sections are read; other
    groups are ignored.

    Raises:
        InventoryError: If no control plane host is listed
    """
    inventory = Inventory()
    section = None

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith(("#", ";")):
            continue

        if line.startswith("[") and line.endswith("]"):
            section = line[1:-1].strip()
            continue

        if section == "all:vars":
            key, sep, value = line.partition("=")
            if not sep:
                raise InventoryError(f"inventory.ini line {lineno}: expected key=value: {line}")
            inventory.variables[key.strip()] = value.strip().strip("'\"")
            continue

        if section not in (CONTROL_PLANE_GROUP, WORKER_GROUP):
            continue

        tokens = shlex.split(line)
        name = tokens[0]
        host_vars = dict(token.split("=", 1) for token in tokens[1:] if "=" in token)
        host = Host(name, host_vars.get("ansible_host", name))

        if section == CONTROL_PLANE_GROUP:
            inventory.control_plane.append(host)
        else:
            inventory.workers.append(host)

    if not inventory.control_plane:
        raise InventoryError(f"inventory.ini lists no hosts under [{CONTROL_PLANE_GROUP}]")

    return inventory


def load_inventory(path: Path) -> Inventory:
    """
    Read inventory.ini from disk.

    Raises:
        InventoryNotFoundError: If the file does not exist
    """
    if not path.exists():
        raise InventoryNotFoundError(str(path))
    return parse_inventory(path.read_text())
