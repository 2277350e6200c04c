"""
Smoke tests: deploy a small nginx application and resolve cluster DNS.
"""

import logging
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from k8s_libvirt.util.retry import wait_until
from k8s_libvirt.validate.health import (
    TEST_IMAGE,
    CheckStatus,
    ClusterValidator,
    HealthReport,
    parse_pods,
)

logger = logging.getLogger(__name__)

NGINX_APP = "nginx-test"
REMOTE_MANIFEST = "/tmp/nginx-test.yaml"
CLUSTER_DNS_NAME = "kubernetes.default.svc.cluster.local"
POLL_INTERVAL = 5.0


def build_nginx_manifest(replicas: int, namespace: str = "default") -> list[dict[str, Any]]:
    """Deployment plus ClusterIP Service for the nginx smoke test."""
    labels = {"app": NGINX_APP}
    deployment = {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": NGINX_APP, "namespace": namespace},
        "spec": {
            "replicas": replicas,
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "containers": [
                        {
                            "name": "nginx",
                            "image": "nginx:latest",
                            "ports": [{"containerPort": 80}],
                        }
                    ]
                },
            },
        },
    }
    service = {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": f"{NGINX_APP}-service", "namespace": namespace},
        "spec": {
            "selector": labels,
            "ports": [{"port": 80, "targetPort": 80}],
            "type": "ClusterIP",
        },
    }
    return [deployment, service]


def render_manifest(documents: list[dict[str, Any]]) -> str:
    return yaml.safe_dump_all(documents, default_flow_style=False, sort_keys=False)


class SmokeTests:
    """Runs the smoke tests through a ClusterValidator's kubectl access."""

    def __init__(
        self,
        validator: ClusterValidator,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.validator = validator
        self.settings = validator.config.validation
        self.sleep = sleep
        self.clock = clock

    def running_nginx_pods(self) -> int:
        result = self.validator.kubectl(f"get pods -l app={NGINX_APP} --no-headers")
        if not result.ok:
            return 0
        return sum(1 for pod in parse_pods(result.output) if pod.running)

    def test_nginx_deployment(self, report: HealthReport) -> None:
        replicas = self.settings.nginx_replicas
        host = self.validator.control_plane_host

        with tempfile.TemporaryDirectory() as tmpdir:
            manifest = Path(tmpdir) / "nginx-test.yaml"
            manifest.write_text(render_manifest(build_nginx_manifest(replicas)))
            self.validator.ansible.copy(host, manifest, REMOTE_MANIFEST)

        applied = self.validator.kubectl(f"apply -f {REMOTE_MANIFEST}")
        try:
            if not applied.ok:
                report.add(
                    "Nginx deployment",
                    CheckStatus.WARN,
                    f"kubectl apply failed: {applied.output}",
                )
                return

            running = 0

            def all_running() -> bool:
                nonlocal running
                running = self.running_nginx_pods()
                return running >= replicas

            wait_until(
                all_running,
                timeout=self.settings.smoke_wait,
                interval=POLL_INTERVAL,
                sleep=self.sleep,
                clock=self.clock,
            )

            if running == replicas:
                report.add(
                    "Nginx deployment",
                    CheckStatus.PASS,
                    f"Nginx test deployment successful ({running}/{replicas} pods running)",
                )
            else:
                report.add(
                    "Nginx deployment",
                    CheckStatus.WARN,
                    f"Nginx test deployment failed ({running}/{replicas} pods running)",
                )
        finally:
            deleted = self.validator.kubectl(f"delete -f {REMOTE_MANIFEST} --ignore-not-found")
            if not deleted.ok:
                logger.warning(f"Failed to clean up {NGINX_APP}: {deleted.output}")

    def test_dns(self, report: HealthReport) -> None:
        result = self.validator.kubectl(
            f"run dns-test --image={TEST_IMAGE} --rm -i --restart=Never "
            f"--pod-running-timeout=30s -- nslookup {CLUSTER_DNS_NAME}",
            timeout=120,
        )
        if result.ok and CLUSTER_DNS_NAME in result.output:
            report.add("DNS resolution", CheckStatus.PASS, "DNS resolution test successful")
        else:
            report.add("DNS resolution", CheckStatus.WARN, "DNS resolution test failed")

    def run(self) -> HealthReport:
        report = HealthReport()
        self.test_nginx_deployment(report)
        self.test_dns(report)
        return report
