"""
Tests for deploy / destroy / status orchestration.
"""

import json
from unittest.mock import patch

import pytest
import yaml
from conftest import FakeRunner, adhoc, ping_ok

from k8s_libvirt.deploy import Deployment
from k8s_libvirt.exceptions import (
    CommandFailedError,
    PlaybookFailedError,
    RetryableError,
    WorkspaceNotFoundError,
)
from k8s_libvirt.workspace import Workspace

HOSTS = ("k8scpnode1", "k8swrknode1", "k8swrknode2")

NODE_IPS_OUTPUT = json.dumps(
    {
        "node_ips": {
            "value": {
                "k8scpnode1": "192.168.150.10",
                "k8swrknode1": "192.168.150.11",
                "k8swrknode2": "192.168.150.12",
            }
        }
    }
)


@pytest.fixture
def workspace(temp_workspace, tmp_path):
    key = tmp_path / "id_rsa"
    key.write_text("key")
    config = temp_workspace.load_config()
    config["ssh"]["private_key"] = str(key)
    temp_workspace.config_file.write_text(yaml.dump(config))
    return Workspace(temp_workspace.root)


@pytest.fixture
def runner():
    runner = FakeRunner()
    runner.add("terraform output", stdout=NODE_IPS_OUTPUT)
    runner.add("ssh -o", stdout="VM is ready\n")
    runner.add("-m ping", stdout=ping_ok(*HOSTS))
    return runner


@pytest.fixture
def join_files(tmp_path):
    return [tmp_path / "k8s_join_command.sh", tmp_path / "k8s_control_plane_join_command.sh"]


@pytest.fixture
def deployment(workspace, runner, clock, join_files):
    with patch("k8s_libvirt.deploy.check_prerequisites", return_value=False):
        yield Deployment(
            workspace,
            runner=runner,
            sleep=clock.sleep,
            clock=clock,
            stream=False,
            join_command_files=join_files,
        )


def run_metadata(workspace: Workspace) -> dict:
    (metadata_file,) = workspace.runs_dir.glob("*/deploy.json")
    return json.loads(metadata_file.read_text())


def test_deploy_runs_pipeline_in_order(deployment, runner, workspace):
    inventory = deployment.deploy()

    sequence = [" ".join(cmd[:2]) for cmd, _ in runner.calls]
    assert sequence[:4] == ["terraform init", "terraform plan", "terraform apply", "terraform output"]
    assert sequence[4:7] == ["ssh -o"] * 3
    assert sequence[7] == "ansible all"
    assert runner.calls[-1][0][0] == "ansible-playbook"
    assert runner.calls[-1][0][-2:] == [str(workspace.playbooks_dir / "site.yml"), "-v"]
    assert inventory.primary_control_plane.address == "192.168.150.10"


def test_deploy_writes_inventory_and_rendered_files(deployment, workspace):
    deployment.deploy()

    text = workspace.inventory_file.read_text()
    assert "[k8s_control_plane]\nk8scpnode1 ansible_host=192.168.150.10" in text
    assert "k8swrknode2 ansible_host=192.168.150.12" in text
    assert (workspace.tf_dir / "main.tf").exists()
    assert (workspace.playbooks_dir / "site.yml").exists()


def test_deploy_records_run_metadata(deployment, workspace):
    deployment.deploy()

    metadata = run_metadata(workspace)
    assert metadata["status"] == "succeeded"
    assert metadata["cluster"] == "k8s"
    assert [step["name"] for step in metadata["steps"]] == [
        "Checking prerequisites",
        "Rendering Terraform and Ansible files",
        "Deploying infrastructure with Terraform",
        "Waiting for VMs to be ready",
        "Setting up Kubernetes cluster with Ansible",
        "Cleaning up temporary files",
    ]
    assert all(step["status"] == "ok" for step in metadata["steps"])


def test_deploy_removes_plan_file(deployment, workspace):
    (workspace.tf_dir / "tfplan").write_text("plan")

    deployment.deploy()

    assert not (workspace.tf_dir / "tfplan").exists()


def test_terraform_failure_stops_and_cleans_up(deployment, runner, workspace):
    runner.add("terraform apply", returncode=1, stderr="Error: pool 'default' not found")
    (workspace.tf_dir / "tfplan").write_text("plan")

    with pytest.raises(CommandFailedError):
        deployment.deploy()

    assert runner.commands("ansible") == []
    assert not workspace.inventory_file.exists()
    assert not (workspace.tf_dir / "tfplan").exists()
    metadata = run_metadata(workspace)
    assert metadata["status"] == "failed"
    assert metadata["steps"][-1] == {
        "name": "Deploying infrastructure with Terraform",
        "status": "failed",
        "duration_s": metadata["steps"][-1]["duration_s"],
    }


def test_playbook_failure_is_reported(deployment, runner, workspace):
    runner.add("ansible-playbook", returncode=2)

    with pytest.raises(PlaybookFailedError):
        deployment.deploy()

    assert run_metadata(workspace)["steps"][-1]["status"] == "failed"


def test_deploy_removes_join_command_files(deployment, join_files):
    for path in join_files:
        path.write_text("kubeadm join 192.168.150.10:6443 --token abc\n")

    deployment.deploy()

    assert not any(path.exists() for path in join_files)


def test_cleanup_error_keeps_deploy_failure(deployment, runner, workspace):
    runner.add("ansible-playbook", returncode=2)

    with patch.object(
        deployment.terraform, "remove_plan", side_effect=PermissionError("tfplan")
    ):
        with pytest.raises(PlaybookFailedError):
            deployment.deploy()

    assert run_metadata(workspace)["status"] == "failed"


def test_ping_is_retried(workspace, clock, join_files):
    runner = FakeRunner()
    runner.add("terraform output", stdout=NODE_IPS_OUTPUT)
    runner.add("ssh -o", stdout="VM is ready\n")
    runner.add(
        "-m ping",
        returncode=4,
        stdout=ping_ok("k8scpnode1", "k8swrknode1")
        + adhoc("k8swrknode2", "UNREACHABLE", '{"msg": "timed out", "unreachable": true}'),
        times=2,
    )
    runner.add("-m ping", stdout=ping_ok(*HOSTS))

    with patch("k8s_libvirt.deploy.check_prerequisites", return_value=False):
        Deployment(
            workspace,
            runner=runner,
            sleep=clock.sleep,
            clock=clock,
            stream=False,
            join_command_files=join_files,
        ).deploy()

    assert len(runner.commands("-m ping")) == 3
    assert clock.sleeps == [5.0, 10.0]


def test_ping_gives_up(deployment, runner):
    runner._rules = [r for r in runner._rules if r["pattern"] != "-m ping"]
    runner.add("-m ping", returncode=4, stdout=ping_ok("k8scpnode1"))

    with pytest.raises(RetryableError):
        deployment.deploy()

    assert len(runner.commands("-m ping")) == 5
    assert runner.commands("ansible-playbook") == []


def test_skip_provision_reuses_inventory(deployment, runner, workspace):
    workspace.inventory_file.write_text(
        "[k8s_control_plane]\nk8scpnode1 ansible_host=192.168.150.10\n"
    )

    deployment.deploy(skip_provision=True)

    assert runner.commands("terraform") == []
    assert runner.commands("ssh -o") == []
    assert runner.commands("ansible-playbook")
    assert len(run_metadata(workspace)["steps"]) == 4


def test_cluster_summary(deployment, workspace):
    assert deployment.cluster_summary() is None

    workspace.summary_file.write_text("Kubernetes cluster setup summary\n")

    assert deployment.cluster_summary().startswith("Kubernetes cluster setup summary")


def test_destroy_removes_generated_files(deployment, runner, workspace):
    workspace.inventory_file.write_text("[k8s_control_plane]\n")
    workspace.summary_file.write_text("summary")

    removed = deployment.destroy()

    assert runner.calls[0][0] == ["terraform", "destroy", "-auto-approve", "-input=false"]
    assert set(removed) == {workspace.inventory_file, workspace.summary_file}
    assert not workspace.inventory_file.exists()


def test_destroy_failure_keeps_inventory(deployment, runner, workspace):
    runner.add("terraform destroy", returncode=1, stderr="Error")
    workspace.inventory_file.write_text("[k8s_control_plane]\n")

    with pytest.raises(CommandFailedError):
        deployment.destroy()

    assert workspace.inventory_file.exists()


def test_status_without_inventory(deployment, runner):
    assert deployment.status() is None
    assert runner.calls == []


def test_status_runs_kubectl_on_primary(deployment, runner, workspace):
    workspace.inventory_file.write_text(
        "[k8s_control_plane]\nk8scpnode1 ansible_host=192.168.150.10\n"
    )
    runner.add(
        "kubectl get nodes -o wide",
        stdout=adhoc("k8scpnode1", "CHANGED", "NAME   STATUS\nk8scpnode1   Ready", rc=0),
    )

    result = deployment.status()

    assert result.ok
    assert "k8scpnode1   Ready" in result.output
    cmd = runner.commands("kubectl")[0]
    assert cmd[1] == "k8scpnode1"
    assert cmd[-1] == "--become-user=ubuntu"


def test_requires_workspace(tmp_path):
    with pytest.raises(WorkspaceNotFoundError):
        Deployment(Workspace(tmp_path))
