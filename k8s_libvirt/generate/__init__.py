"""
Project rendering.

Produces everything Terraform and Ansible need inside a workspace.

Modules:
- terraform: tf_libvirt/ (libvirt network, volumes, cloud-init, domains)
- ansible_project: ansible.cfg, group_vars and bootstrap playbooks
"""

from pathlib import Path

from k8s_libvirt.generate.ansible_project import generate_ansible_project
from k8s_libvirt.generate.terraform import generate_terraform
from k8s_libvirt.util.templates import TemplateLoader
from k8s_libvirt.workspace import Workspace


def render_project(workspace: Workspace) -> list[Path]:
    """
    Render the Terraform and Ansible projects for a workspace.

    Args:
        workspace: Initialized workspace

    Returns:
        Paths of every file written
    """
    config = workspace.cluster_config()
    loader = TemplateLoader(workspace.root)

    written = generate_terraform(config, loader, workspace.tf_dir)
    written.extend(generate_ansible_project(config, loader, workspace))
    return written
