"""Cluster configuration dataclasses.

This module defines the structure parsed from k8s-libvirt.yaml: the VM sizes
Terraform provisions, the kubeadm settings Ansible applies, and the SSH and
validation knobs used while waiting on and checking the cluster.
"""

from dataclasses import dataclass, field
from pathlib import Path

CONTROL_PLANE_PREFIX = "k8scpnode"
WORKER_PREFIX = "k8swrknode"


@dataclass
class NodePool:
    """Sizing for one group of identical VMs."""

    count: int
    vcpu: int = 2
    memory_mb: int = 2048
    disk_gb: int = 20

    def node_names(self, prefix: str) -> list[str]:
        return [f"{prefix}{i}" for i in range(1, self.count + 1)]


@dataclass
class ClusterSettings:
    """Kubernetes settings passed to kubeadm and the CNI install."""

    name: str = "k8s"
    kubernetes_version: str = "1.30"
    cni: str = "flannel"  # flannel | calico
    pod_network_cidr: str = "10.244.0.0/16"
    service_cidr: str = "10.96.0.0/12"


@dataclass
class LibvirtSettings:
    """Hypervisor connection and base image used by Terraform."""

    uri: str = "qemu:///system"
    pool: str = "default"
    network_name: str = "k8s-net"
    network_cidr: str = "192.168.150.0/24"
    base_image: str = (
        "https://cloud-images.ubuntu.com/jammy/current/jammy-server-cloudimg-amd64.img"
    )


@dataclass
class SSHSettings:
    """How the VMs are reached before and during bootstrap."""

    user: str = "ubuntu"
    private_key: str = "~/.ssh/id_rsa"
    connect_timeout: int = 5
    wait_interval: float = 10.0
    wait_timeout: float = 900.0

    @property
    def private_key_path(self) -> Path:
        return Path(self.private_key).expanduser()

    @property
    def public_key_path(self) -> Path:
        return self.private_key_path.with_name(self.private_key_path.name + ".pub")


@dataclass
class ValidationSettings:
    """Smoke test parameters."""

    smoke_wait: float = 30.0
    nginx_replicas: int = 2


@dataclass
class ClusterConfig:
    """Complete cluster definition."""

    cluster: ClusterSettings = field(default_factory=ClusterSettings)
    libvirt: LibvirtSettings = field(default_factory=LibvirtSettings)
    control_plane: NodePool = field(default_factory=lambda: NodePool(count=1, memory_mb=4096))
    workers: NodePool = field(default_factory=lambda: NodePool(count=2))
    ssh: SSHSettings = field(default_factory=SSHSettings)
    validation: ValidationSettings = field(default_factory=ValidationSettings)

    def control_plane_names(self) -> list[str]:
        return self.control_plane.node_names(CONTROL_PLANE_PREFIX)

    def worker_names(self) -> list[str]:
        return self.workers.node_names(WORKER_PREFIX)

    def vm_definitions(self) -> dict[str, dict[str, int]]:
        """VM name -> sizing, in the shape Terraform consumes as var.nodes."""
        vms = {}
        for pool, names in (
            (self.control_plane, self.control_plane_names()),
            (self.workers, self.worker_names()),
        ):
            for name in names:
                vms[name] = {
                    "vcpu": pool.vcpu,
                    "memory_mb": pool.memory_mb,
                    "disk_gb": pool.disk_gb,
                }
        return vms


@dataclass
class Host:
    """An inventory host."""

    name: str
    address: str


@dataclass
class Inventory:
    """Ansible inventory split by role."""

    control_plane: list[Host] = field(default_factory=list)
    workers: list[Host] = field(default_factory=list)
    variables: dict[str, str] = field(default_factory=dict)

    @property
    def hosts(self) -> list[Host]:
        return self.control_plane + self.workers

    @property
    def primary_control_plane(self) -> Host:
        """First control plane host; kubectl commands run there."""
        return self.control_plane[0]
