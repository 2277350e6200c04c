"""Terraform project rendering.

Writes the libvirt Terraform configuration into the workspace tf_libvirt/
directory. Templates carry the resource layout; terraform.tfvars.json
carries the VM names and sizes taken from k8s-libvirt.yaml.
"""

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

from k8s_libvirt.models.cluster import ClusterConfig
from k8s_libvirt.util.templates import TemplateLoader

TERRAFORM_TEMPLATES = [
    ("terraform/main.tf.j2", "main.tf"),
    ("terraform/variables.tf.j2", "variables.tf"),
    ("terraform/outputs.tf.j2", "outputs.tf"),
    ("terraform/cloud_init.cfg.j2", "cloud_init.cfg"),
]

TFVARS_FILENAME = "terraform.tfvars.json"


def build_tfvars(config: ClusterConfig) -> dict[str, Any]:
    """
    Build the Terraform variable values for a cluster.

    Args:
        config: Cluster configuration

    Returns:
        Mapping serialized to terraform.tfvars.json
    """
    return {
        "libvirt_uri": config.libvirt.uri,
        "pool": config.libvirt.pool,
        "network_name": config.libvirt.network_name,
        "network_cidr": config.libvirt.network_cidr,
        "base_image": config.libvirt.base_image,
        "cluster_name": config.cluster.name,
        "ssh_user": config.ssh.user,
        "ssh_public_key": str(config.ssh.public_key_path),
        "nodes": config.vm_definitions(),
    }


def build_template_context(config: ClusterConfig) -> dict[str, Any]:
    """Template variables shared by Terraform and Ansible templates."""
    return {
        "cluster": asdict(config.cluster),
        "libvirt": asdict(config.libvirt),
        "ssh": asdict(config.ssh),
        "control_plane_names": config.control_plane_names(),
        "worker_names": config.worker_names(),
    }


def generate_terraform(config: ClusterConfig, loader: TemplateLoader, tf_dir: Path) -> list[Path]:
    """
    Render the Terraform project.

    Args:
        config: Cluster configuration
        loader: Template loader (workspace overrides first)
        tf_dir: Target directory (workspace tf_libvirt/)

    Returns:
        Paths of the files written
    """
    tf_dir.mkdir(parents=True, exist_ok=True)
    context = build_template_context(config)

    written = []
    for template_name, filename in TERRAFORM_TEMPLATES:
        output_file = tf_dir / filename
        loader.render_template(template_name, context, output_file)
        written.append(output_file)

    tfvars_file = tf_dir / TFVARS_FILENAME
    tfvars_file.write_text(json.dumps(build_tfvars(config), indent=2) + "\n")
    written.append(tfvars_file)

    return written
