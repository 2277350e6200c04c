"""
Prerequisite checks run before deployment.
"""

import json
import logging

from k8s_libvirt.generate.ansible_project import REQUIRED_COLLECTIONS
from k8s_libvirt.models.cluster import SSHSettings
from k8s_libvirt.util.process import CommandRunner, require_tool, run_command

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = ["terraform", "ansible", "ansible-playbook", "ansible-galaxy", "ssh"]


def check_tools(tools: list[str] = REQUIRED_TOOLS) -> None:
    """
    Verify that every external tool is installed.

    Raises:
        MissingToolError: For the first tool not found on PATH
    """
    for tool in tools:
        require_tool(tool)
        logger.debug(f"Found {tool}")


def installed_collections(runner: CommandRunner = run_command) -> set[str]:
    """Names of the Ansible collections ansible-galaxy can see."""
    result = runner(["ansible-galaxy", "collection", "list", "--format", "json"])
    if not result.ok:
        return set()

    try:
        listing = json.loads(result.stdout)
    except json.JSONDecodeError:
        return set()

    # {"<collections path>": {"community.general": {"version": "8.6.0"}, ...}, ...}
    return {name for collections in listing.values() for name in collections}


def ensure_collections(
    collections: dict[str, str] = REQUIRED_COLLECTIONS,
    runner: CommandRunner = run_command,
) -> list[str]:
    """
    Install the Ansible collections the playbooks use when they are missing.

    ansible-core ships only ansible.builtin; the firewall tasks need
    community.general.

    Returns:
        Names of the collections that were installed
    """
    missing = sorted(set(collections) - installed_collections(runner))
    if not missing:
        return []

    logger.warning(f"Installing Ansible collections: {', '.join(missing)}")
    runner(
        ["ansible-galaxy", "collection", "install"]
        + [f"{name}:{collections[name]}" for name in missing],
        check=True,
    )
    return missing


def ensure_ssh_key(ssh: SSHSettings, runner: CommandRunner = run_command) -> bool:
    """
    Generate an RSA key pair when the configured private key is missing.

    Returns:
        True if a new key was generated
    """
    key_path = ssh.private_key_path
    if key_path.exists():
        return False

    logger.warning(f"SSH private key not found at {key_path}; generating a new key pair")
    key_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    runner(
        ["ssh-keygen", "-t", "rsa", "-b", "4096", "-f", str(key_path), "-N", ""],
        check=True,
    )
    return True


def check_prerequisites(ssh: SSHSettings, runner: CommandRunner = run_command) -> bool:
    """
    Run every prerequisite check.

    Returns:
        True if an SSH key had to be generated
    """
    check_tools()
    ensure_collections(runner=runner)
    return ensure_ssh_key(ssh, runner)
