"""
Cluster health checks.

kubectl runs on the primary control plane node through Ansible ad-hoc shell
commands as the SSH user, whose ~/.kube/config the bootstrap installed.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from k8s_libvirt.ansible.runner import AnsibleRunner
from k8s_libvirt.models.cluster import ClusterConfig, Inventory

logger = logging.getLogger(__name__)

CONTROL_PLANE_RUNNING = "Kubernetes control plane is running"
TEST_POD_MESSAGE = "Hello Kubernetes"
TEST_IMAGE = "busybox:1.36"

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")


class CheckStatus(str, Enum):
    """Outcome of a single check."""

    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


@dataclass
class CheckResult:
    """One validation finding."""

    name: str
    status: CheckStatus
    detail: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "status": self.status.value, "detail": self.detail}


@dataclass
class HealthReport:
    """Ordered check results."""

    results: list[CheckResult] = field(default_factory=list)

    def add(self, name: str, status: CheckStatus, detail: str = "") -> CheckResult:
        result = CheckResult(name, status, detail)
        self.results.append(result)
        log = logger.error if status == CheckStatus.FAIL else logger.info
        log(f"{status.value} {name}: {detail}")
        return result

    def extend(self, other: "HealthReport") -> None:
        self.results.extend(other.results)

    @property
    def has_failures(self) -> bool:
        return any(r.status == CheckStatus.FAIL for r in self.results)

    @property
    def has_warnings(self) -> bool:
        return any(r.status == CheckStatus.WARN for r in self.results)

    def counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in CheckStatus}
        for result in self.results:
            counts[result.status.value] += 1
        return counts


@dataclass
class NodeStatus:
    """A row of ``kubectl get nodes --no-headers``."""

    name: str
    status: str
    roles: str = ""
    age: str = ""
    version: str = ""

    @property
    def ready(self) -> bool:
        # "Ready,SchedulingDisabled" is still Ready; "NotReady" is not
        return self.status.split(",")[0] == "Ready"


@dataclass
class PodStatus:
    """A row of ``kubectl get pods --no-headers``."""

    name: str
    ready: str
    status: str
    restarts: str = ""

    @property
    def running(self) -> bool:
        return self.status == "Running"

    @property
    def healthy(self) -> bool:
        return self.status in ("Running", "Completed", "Succeeded")


def strip_ansi(text: str) -> str:
    return _ANSI_ESCAPE.sub("", text)


def parse_nodes(output: str) -> list[NodeStatus]:
    """Parse ``kubectl get nodes --no-headers`` output."""
    nodes = []
    for line in strip_ansi(output).splitlines():
        fields = line.split()
        if len(fields) < 2:
            continue
        nodes.append(NodeStatus(*fields[:5]))
    return nodes


def parse_pods(output: str) -> list[PodStatus]:
    """
    Parse ``kubectl get pods --no-headers`` output for a single namespace.

    Restart counts such as ``2 (5m ago)`` contain spaces, so only the leading
    columns are split.
    """
    pods = []
    for line in strip_ansi(output).splitlines():
        fields = line.split(None, 3)
        if len(fields) < 3:
            continue
        restarts = fields[3].rsplit(None, 1)[0] if len(fields) > 3 else ""
        pods.append(PodStatus(fields[0], fields[1], fields[2], restarts))
    return pods


class ClusterValidator:
    """Runs kubectl checks against the cluster described by an inventory."""

    def __init__(self, ansible: AnsibleRunner, inventory: Inventory, config: ClusterConfig):
        self.ansible = ansible
        self.inventory = inventory
        self.config = config

    @property
    def control_plane_host(self) -> str:
        return self.inventory.primary_control_plane.name

    def kubectl(self, args: str, timeout: float | None = None):
        """Run kubectl on the primary control plane as the SSH user."""
        return self.ansible.shell_on(
            self.control_plane_host,
            f"kubectl {args}",
            become_user=self.config.ssh.user,
            timeout=timeout,
        )

    def check_connectivity(self, report: HealthReport) -> bool:
        results = self.ansible.ping("all")
        expected = [host.name for host in self.inventory.hosts]
        unreachable = [name for name in expected if name not in results or not results[name].ok]

        if unreachable:
            report.add(
                "Node connectivity",
                CheckStatus.FAIL,
                f"Some nodes are not accessible: {', '.join(unreachable)}",
            )
            return False

        report.add("Node connectivity", CheckStatus.PASS, f"All {len(expected)} nodes are accessible")
        return True

    def check_control_plane(self, report: HealthReport) -> bool:
        result = self.kubectl("cluster-info")
        if result.ok and CONTROL_PLANE_RUNNING in strip_ansi(result.output):
            report.add("Control plane", CheckStatus.PASS, "Kubernetes control plane is running")
            return True

        report.add(
            "Control plane",
            CheckStatus.FAIL,
            f"Kubernetes control plane is not running ({result.status})",
        )
        return False

    def check_nodes(self, report: HealthReport) -> None:
        result = self.kubectl("get nodes --no-headers")
        if not result.ok:
            report.add("Nodes Ready", CheckStatus.WARN, f"kubectl get nodes failed: {result.output}")
            return

        nodes = parse_nodes(result.output)
        ready = sum(1 for node in nodes if node.ready)
        total = len(nodes)

        if total > 0 and ready == total:
            report.add("Nodes Ready", CheckStatus.PASS, f"All nodes are Ready ({ready}/{total})")
        else:
            not_ready = [node.name for node in nodes if not node.ready]
            detail = f"Some nodes are not Ready ({ready}/{total})"
            if not_ready:
                detail += f": {', '.join(not_ready)}"
            report.add("Nodes Ready", CheckStatus.WARN, detail)

    def check_system_pods(self, report: HealthReport) -> None:
        result = self.kubectl("get pods -n kube-system --no-headers")
        if not result.ok:
            report.add("System pods", CheckStatus.WARN, f"kubectl get pods failed: {result.output}")
            return

        pods = parse_pods(result.output)
        healthy = sum(1 for pod in pods if pod.healthy)
        total = len(pods)

        if total > 0 and healthy == total:
            report.add(
                "System pods", CheckStatus.PASS, f"All system pods are Running ({healthy}/{total})"
            )
        else:
            report.add(
                "System pods",
                CheckStatus.WARN,
                f"Some system pods are not Running ({healthy}/{total})",
            )

    def check_pod_creation(self, report: HealthReport) -> None:
        result = self.kubectl(
            f"run k8s-libvirt-test-pod --image={TEST_IMAGE} --rm -i --restart=Never "
            f"--pod-running-timeout=60s -- echo '{TEST_POD_MESSAGE}'",
            timeout=180,
        )
        if result.ok and TEST_POD_MESSAGE in result.output:
            report.add("Pod creation", CheckStatus.PASS, "Pod creation test successful")
        else:
            report.add("Pod creation", CheckStatus.WARN, "Pod creation test failed")

    def check_cluster_health(self) -> HealthReport:
        """
        Run the health checks in order.

        Connectivity and control plane failures stop the run: nothing after
        them can succeed.
        """
        report = HealthReport()

        if not self.check_connectivity(report):
            return report
        if not self.check_control_plane(report):
            return report

        self.check_nodes(report)
        self.check_system_pods(report)
        self.check_pod_creation(report)
        return report
