"""Ansible project rendering for the kubeadm bootstrap.

This module writes:
- ansible.cfg in the workspace root (inventory = inventory.ini)
- requirements.yml listing the Ansible collections the playbooks use
- group_vars/all.yml with the cluster settings the playbooks consume
- playbooks/prepare-nodes.yml, setup-control-plane.yml, setup-workers.yml,
  verify-cluster.yml and the site.yml that imports them in order
"""

from pathlib import Path
from typing import Any

import yaml

from k8s_libvirt.generate.terraform import build_template_context
from k8s_libvirt.models.cluster import ClusterConfig
from k8s_libvirt.util.files import write_text
from k8s_libvirt.util.templates import TemplateLoader
from k8s_libvirt.workspace import Workspace

JOIN_COMMAND_FILE = "/tmp/k8s_join_command.sh"
CONTROL_PLANE_JOIN_COMMAND_FILE = "/tmp/k8s_control_plane_join_command.sh"

# Collections outside ansible-core, with the versions the playbooks are written against
REQUIRED_COLLECTIONS = {"community.general": ">=8.0.0"}

# Bootstrap order; site.yml imports them in this sequence
PLAYBOOKS = [
    "prepare-nodes.yml",
    "setup-control-plane.yml",
    "setup-workers.yml",
    "verify-cluster.yml",
]
SITE_PLAYBOOK = "site.yml"

CNI_MANIFESTS = {
    "flannel": "https://github.com/flannel-io/flannel/releases/latest/download/kube-flannel.yml",
    "calico": "https://raw.githubusercontent.com/projectcalico/calico/v3.28.0/manifests/calico.yaml",
}

CONTROL_PLANE_PORTS = [
    {"port": "6443", "proto": "tcp"},  # API server
    {"port": "2379:2380", "proto": "tcp"},  # etcd
    {"port": "10250", "proto": "tcp"},  # kubelet
    {"port": "10257", "proto": "tcp"},  # controller-manager
    {"port": "10259", "proto": "tcp"},  # scheduler
]

WORKER_PORTS = [
    {"port": "10250", "proto": "tcp"},
    {"port": "30000:32767", "proto": "tcp"},  # NodePort services
]

CNI_PORTS = {
    "flannel": [{"port": "8472", "proto": "udp"}],  # VXLAN
    "calico": [
        {"port": "179", "proto": "tcp"},  # BGP
        {"port": "4789", "proto": "udp"},  # VXLAN
        {"port": "5473", "proto": "tcp"},  # Typha
    ],
}

# CNIs whose encapsulation is not port based; their nodes accept any protocol from each other
CNI_TRUSTS_NODE_PEERS = {"flannel": False, "calico": True}


def playbook_paths(playbooks_dir: Path) -> list[Path]:
    """All rendered playbooks, site.yml last."""
    return [playbooks_dir / name for name in PLAYBOOKS + [SITE_PLAYBOOK]]


def build_group_vars(config: ClusterConfig, summary_file: Path) -> dict[str, Any]:
    """
    Build group_vars/all.yml for the bootstrap playbooks.

    Args:
        config: Cluster configuration
        summary_file: Where the control plane writes the setup summary back

    Returns:
        Variables shared by every host
    """
    cni = config.cluster.cni
    return {
        "cluster_name": config.cluster.name,
        "kubernetes_version": config.cluster.kubernetes_version,
        "cni": cni,
        "cni_manifest_url": CNI_MANIFESTS[cni],
        "pod_network_cidr": config.cluster.pod_network_cidr,
        "service_cidr": config.cluster.service_cidr,
        "join_command_file": JOIN_COMMAND_FILE,
        "control_plane_join_command_file": CONTROL_PLANE_JOIN_COMMAND_FILE,
        "summary_file": str(summary_file.resolve()),
        "firewall_ports_control_plane": CONTROL_PLANE_PORTS,
        "firewall_ports_worker": WORKER_PORTS,
        "firewall_ports_cni": CNI_PORTS[cni],
        "firewall_allow_node_peers": CNI_TRUSTS_NODE_PEERS[cni],
    }


def generate_ansible_project(
    config: ClusterConfig,
    loader: TemplateLoader,
    workspace: Workspace,
) -> list[Path]:
    """
    Render ansible.cfg, requirements.yml, group_vars and the bootstrap playbooks.

    Args:
        config: Cluster configuration
        loader: Template loader (workspace overrides first)
        workspace: Target workspace

    Returns:
        Paths of the files written
    """
    context = build_template_context(config)
    context["playbooks"] = PLAYBOOKS
    context["collections"] = REQUIRED_COLLECTIONS

    written = [
        loader.render_template("ansible/ansible.cfg.j2", context, workspace.ansible_cfg),
        loader.render_template(
            "ansible/requirements.yml.j2", context, workspace.requirements_file
        ),
    ]

    group_vars = build_group_vars(config, workspace.summary_file)
    written.append(
        write_text(
            workspace.group_vars_file,
            "# Rendered by k8s-libvirt; edit k8s-libvirt.yaml and re-render instead.\n"
            + yaml.dump(group_vars, default_flow_style=False, sort_keys=False),
        )
    )

    for playbook in playbook_paths(workspace.playbooks_dir):
        written.append(loader.render_template(f"ansible/{playbook.name}.j2", context, playbook))

    return written
