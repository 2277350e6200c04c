"""
Workspace management for k8s-libvirt.
"""

from pathlib import Path
from typing import Any

import yaml

from k8s_libvirt.config import load_cluster_config, validate_config
from k8s_libvirt.exceptions import InvalidConfigError, WorkspaceNotFoundError
from k8s_libvirt.models.cluster import ClusterConfig


class Workspace:
    """Manages the k8s-libvirt workspace structure and configuration."""

    CONFIG_FILENAME = "k8s-libvirt.yaml"

    REQUIRED_DIRS = [
        "tf_libvirt",
        "playbooks",
        "runs",
        "reports",
    ]

    DEFAULT_CONFIG = {
        "cluster": {
            "name": "k8s",
            "kubernetes_version": "1.30",
            "cni": "flannel",
            "pod_network_cidr": "10.244.0.0/16",
            "service_cidr": "10.96.0.0/12",
        },
        "libvirt": {
            "uri": "qemu:///system",
            "pool": "default",
            "network_name": "k8s-net",
            "network_cidr": "192.168.150.0/24",
            "base_image": (
                "https://cloud-images.ubuntu.com/jammy/current/jammy-server-cloudimg-amd64.img"
            ),
        },
        "nodes": {
            "control_plane": {"count": 1, "vcpu": 2, "memory_mb": 4096, "disk_gb": 20},
            "workers": {"count": 2, "vcpu": 2, "memory_mb": 2048, "disk_gb": 20},
        },
        "ssh": {
            "user": "ubuntu",
            "private_key": "~/.ssh/id_rsa",
            "connect_timeout": 5,
            "wait_interval": 10,  # seconds between SSH probes
            "wait_timeout": 900,
        },
        "validation": {
            "smoke_wait": 30,
            "nginx_replicas": 2,
        },
    }

    def __init__(self, root: Path):
        self.root = Path(root)
        self.config_file = self.root / self.CONFIG_FILENAME
        self._config_cache: dict[str, Any] | None = None

    @property
    def tf_dir(self) -> Path:
        return self.root / "tf_libvirt"

    @property
    def playbooks_dir(self) -> Path:
        return self.root / "playbooks"

    @property
    def runs_dir(self) -> Path:
        return self.root / "runs"

    @property
    def reports_dir(self) -> Path:
        return self.root / "reports"

    @property
    def inventory_file(self) -> Path:
        return self.root / "inventory.ini"

    @property
    def summary_file(self) -> Path:
        return self.root / "cluster-setup-summary.txt"

    @property
    def ansible_cfg(self) -> Path:
        return self.root / "ansible.cfg"

    @property
    def requirements_file(self) -> Path:
        return self.root / "requirements.yml"

    @property
    def group_vars_file(self) -> Path:
        return self.root / "group_vars" / "all.yml"

    def exists(self) -> bool:
        return self.config_file.exists()

    def require(self) -> "Workspace":
        """Raise WorkspaceNotFoundError unless the workspace is initialized."""
        if not self.exists():
            raise WorkspaceNotFoundError(str(self.root))
        return self

    def initialize(self) -> None:
        """Initialize workspace directory structure and config."""
        for dir_path in self.REQUIRED_DIRS:
            (self.root / dir_path).mkdir(parents=True, exist_ok=True)

        if not self.config_file.exists():
            with open(self.config_file, "w") as f:
                yaml.dump(self.DEFAULT_CONFIG, f, default_flow_style=False, sort_keys=False)

    def load_config(self) -> dict[str, Any]:
        """Load and validate workspace configuration (cached)."""
        if self._config_cache is not None:
            return self._config_cache

        self.require()

        try:
            with open(self.config_file) as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise InvalidConfigError(f"YAML syntax error: {e}") from e

        if config is None:
            raise InvalidConfigError(f"Config file is empty: {self.config_file}")

        if not isinstance(config, dict):
            raise InvalidConfigError(f"expected a mapping, got {type(config).__name__}")

        is_valid, errors = validate_config(config)
        if not is_valid:
            raise InvalidConfigError("\n".join(errors))

        self._config_cache = config
        return config

    def cluster_config(self) -> ClusterConfig:
        """Load configuration as ClusterConfig dataclasses."""
        return load_cluster_config(self.load_config())
