"""
Tests for the nginx and DNS smoke tests.
"""

import pytest
import yaml
from conftest import FakeRunner, adhoc

from k8s_libvirt.ansible.runner import AnsibleRunner
from k8s_libvirt.validate.health import CheckStatus, ClusterValidator
from k8s_libvirt.validate.smoke import (
    REMOTE_MANIFEST,
    SmokeTests,
    build_nginx_manifest,
    render_manifest,
)

TWO_RUNNING = """\
nginx-test-5d8f7c9b6-abcde   1/1   Running   0   20s
nginx-test-5d8f7c9b6-fghij   1/1   Running   0   20s
"""

ONE_PENDING = """\
nginx-test-5d8f7c9b6-abcde   1/1   Running             0   20s
nginx-test-5d8f7c9b6-fghij   0/1   ContainerCreating   0   20s
"""


def shell(body: str, rc: int = 0) -> str:
    return adhoc("k8scpnode1", "CHANGED" if rc == 0 else "FAILED", body, rc=rc)


@pytest.fixture
def runner():
    return FakeRunner(default_stdout=shell(""))


@pytest.fixture
def smoke(tmp_path, runner, inventory, cluster_config, clock):
    validator = ClusterValidator(AnsibleRunner(tmp_path, runner=runner), inventory, cluster_config)
    return SmokeTests(validator, sleep=clock.sleep, clock=clock)


def test_nginx_manifest():
    deployment, service = build_nginx_manifest(3)

    assert deployment["kind"] == "Deployment"
    assert deployment["spec"]["replicas"] == 3
    assert deployment["spec"]["template"]["spec"]["containers"][0]["image"] == "nginx:latest"
    assert service["spec"]["type"] == "ClusterIP"
    assert service["spec"]["selector"] == {"app": "nginx-test"}


def test_render_manifest_is_multi_document_yaml():
    documents = list(yaml.safe_load_all(render_manifest(build_nginx_manifest(2))))

    assert [d["kind"] for d in documents] == ["Deployment", "Service"]


def test_nginx_deployment_passes(smoke, runner, clock):
    runner.add("app=nginx-test", stdout=shell(TWO_RUNNING))

    report = smoke.run()

    nginx, dns = report.results
    assert nginx.status == CheckStatus.PASS
    assert nginx.detail == "Nginx test deployment successful (2/2 pods running)"
    assert clock.sleeps == []


def test_nginx_manifest_copied_applied_and_deleted(smoke, runner):
    runner.add("app=nginx-test", stdout=shell(TWO_RUNNING))

    smoke.run()

    copy_cmd = runner.commands("-m copy")[0]
    assert f"dest={REMOTE_MANIFEST}" in copy_cmd[-1]
    lines = [" ".join(cmd) for cmd in runner.commands("kubectl")]
    assert any(f"kubectl apply -f {REMOTE_MANIFEST}" in line for line in lines)
    assert any(f"kubectl delete -f {REMOTE_MANIFEST} --ignore-not-found" in line for line in lines)


def test_nginx_polls_until_running(smoke, runner, clock):
    runner.add("app=nginx-test", stdout=shell(ONE_PENDING), times=2)
    runner.add("app=nginx-test", stdout=shell(TWO_RUNNING))

    report = smoke.run()

    assert report.results[0].status == CheckStatus.PASS
    assert clock.sleeps == [5.0, 5.0]


def test_nginx_not_all_running_warns_after_wait(smoke, runner, clock):
    runner.add("app=nginx-test", stdout=shell(ONE_PENDING))

    report = smoke.run()

    nginx = report.results[0]
    assert nginx.status == CheckStatus.WARN
    assert nginx.detail == "Nginx test deployment failed (1/2 pods running)"
    assert sum(clock.sleeps) == pytest.approx(30.0)
    assert any("delete" in " ".join(cmd) for cmd in runner.commands("kubectl"))


def test_nginx_apply_failure_still_cleans_up(smoke, runner):
    runner.add("kubectl apply", returncode=2, stdout=shell("error: no objects passed", rc=1))

    report = smoke.run()

    assert report.results[0].status == CheckStatus.WARN
    assert "kubectl apply failed" in report.results[0].detail
    assert runner.commands("kubectl delete")


def test_dns_lookup(smoke, runner):
    runner.add("app=nginx-test", stdout=shell(TWO_RUNNING))
    runner.add(
        "nslookup",
        stdout=shell(
            "Server:    10.96.0.10\n"
            "Name:      kubernetes.default.svc.cluster.local\n"
            "Address:   10.96.0.1\n"
        ),
    )

    report = smoke.run()

    assert report.results[1].status == CheckStatus.PASS


def test_dns_failure_is_a_warning(smoke, runner):
    runner.add("nslookup", returncode=2, stdout=shell("timed out waiting for the condition", rc=1))

    report = smoke.run()

    assert report.results[1].status == CheckStatus.WARN
    assert not report.has_failures
