"""
Deployment orchestration: Terraform -> inventory.ini -> SSH wait -> Ansible.

Each stage hands off to an external tool and stops the run on the first
failure. Temporary files are cleaned up whatever the outcome.
"""

import json
import logging
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from k8s_libvirt.ansible.output import HostResult
from k8s_libvirt.ansible.runner import AnsibleRunner
from k8s_libvirt.exceptions import AnsibleError
from k8s_libvirt.generate import render_project
from k8s_libvirt.generate.ansible_project import (
    CONTROL_PLANE_JOIN_COMMAND_FILE,
    JOIN_COMMAND_FILE,
    SITE_PLAYBOOK,
)
from k8s_libvirt.inventory import build_inventory, load_inventory, write_inventory
from k8s_libvirt.models.cluster import Host, Inventory
from k8s_libvirt.provision.prerequisites import check_prerequisites
from k8s_libvirt.provision.ssh import SSHProbe
from k8s_libvirt.provision.terraform import Terraform
from k8s_libvirt.util.files import ensure_dir, remove_files, write_text
from k8s_libvirt.util.process import CommandRunner, run_command
from k8s_libvirt.util.progress import ProgressTracker, console, operation_status
from k8s_libvirt.util.retry import log_retry, retry_with_backoff
from k8s_libvirt.workspace import Workspace

logger = logging.getLogger(__name__)

PING_ATTEMPTS = 5
PING_INITIAL_DELAY = 5.0


class Deployment:
    """Drives deploy, destroy and status for one workspace."""

    def __init__(
        self,
        workspace: Workspace,
        runner: CommandRunner = run_command,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        stream: bool = True,
        join_command_files: list[Path] | None = None,
    ):
        self.workspace = workspace.require()
        self.config = workspace.cluster_config()
        self.runner = runner
        self.sleep = sleep
        self.terraform = Terraform(workspace.tf_dir, runner=runner, stream=stream)
        self.ansible = AnsibleRunner(workspace.root, workspace.inventory_file, runner=runner)
        self.ssh = SSHProbe(self.config.ssh, runner=runner, sleep=sleep, clock=clock)
        self.stream = stream
        # Written on the controller by setup-control-plane.yml
        self.join_command_files = join_command_files or [
            Path(JOIN_COMMAND_FILE),
            Path(CONTROL_PLANE_JOIN_COMMAND_FILE),
        ]

    def check_prerequisites(self) -> None:
        if check_prerequisites(self.config.ssh, runner=self.runner):
            console.print(
                f"[yellow]⚠ Generated SSH key pair at {self.config.ssh.private_key_path}[/yellow]"
            )

    def render(self) -> list[Path]:
        return render_project(self.workspace)

    def deploy_infrastructure(self) -> Inventory:
        """Create the VMs and write inventory.ini from their addresses."""
        self.terraform.init()
        self.terraform.plan()
        self.terraform.apply()

        node_ips = self.terraform.node_ips()
        for name, address in sorted(node_ips.items()):
            logger.info(f"{name}: {address}")

        inventory = build_inventory(node_ips, self.config.ssh)
        write_inventory(inventory, self.workspace.inventory_file)
        return inventory

    def wait_for_vms(self, inventory: Inventory) -> None:
        def report_ready(host: Host) -> None:
            console.print(f"  [green]✓ {host.name} ({host.address}) is accessible[/green]")

        self.ssh.wait_for_hosts(inventory.hosts, on_ready=report_ready)

    def _ping_all(self, inventory: Inventory) -> None:
        results = self.ansible.ping("all")
        failed = [
            host.name
            for host in inventory.hosts
            if host.name not in results or not results[host.name].ok
        ]
        if failed:
            raise AnsibleError(f"Hosts not answering ping: {', '.join(failed)}")

    def setup_kubernetes(self, inventory: Inventory, verbosity: int = 1) -> None:
        """Check Ansible connectivity, then run site.yml."""
        ping = retry_with_backoff(
            max_attempts=PING_ATTEMPTS,
            initial_delay=PING_INITIAL_DELAY,
            retryable_exceptions=(AnsibleError,),
            on_retry=log_retry,
            sleep=self.sleep,
        )(self._ping_all)
        ping(inventory)

        site = self.workspace.playbooks_dir / SITE_PLAYBOOK
        self.ansible.run_playbook(site, verbosity=verbosity, stream=self.stream)

    def cleanup(self) -> list[Path]:
        """Remove the saved plan and the join commands left on the controller."""
        removed = [self.terraform.plan_file] if self.terraform.remove_plan() else []
        removed.extend(remove_files(*self.join_command_files))
        for path in removed:
            logger.debug(f"Removed {path}")
        return removed

    def cluster_summary(self) -> str | None:
        """Contents of cluster-setup-summary.txt, if the bootstrap wrote it."""
        if self.workspace.summary_file.exists():
            return self.workspace.summary_file.read_text()
        return None

    def deploy(self, skip_provision: bool = False, verbosity: int = 1) -> Inventory:
        """
        Run the full deployment.

        Args:
            skip_provision: Reuse the existing inventory.ini instead of running Terraform
            verbosity: ansible-playbook -v level

        Returns:
            The cluster inventory
        """
        tracker = ProgressTracker("Kubernetes cluster deployment")
        tracker.start(4 if skip_provision else 6)
        started = datetime.now()
        status = "failed"

        try:
            with tracker.step("Checking prerequisites"):
                self.check_prerequisites()

            with tracker.step("Rendering Terraform and Ansible files"):
                self.render()

            if skip_provision:
                inventory = load_inventory(self.workspace.inventory_file)
            else:
                with tracker.step("Deploying infrastructure with Terraform"):
                    inventory = self.deploy_infrastructure()

                with tracker.step("Waiting for VMs to be ready"):
                    self.wait_for_vms(inventory)

            with tracker.step("Setting up Kubernetes cluster with Ansible"):
                self.setup_kubernetes(inventory, verbosity=verbosity)

            with tracker.step("Cleaning up temporary files"):
                self.cleanup()

            status = "succeeded"
            tracker.complete()
            return inventory
        finally:
            if status != "succeeded":
                try:
                    self.cleanup()
                except OSError as e:
                    logger.error(f"Cleanup after failed deployment did not finish: {e}")
            self._write_run_metadata(started, status, skip_provision, tracker)

    def _write_run_metadata(
        self,
        started: datetime,
        status: str,
        skip_provision: bool,
        tracker: ProgressTracker,
    ) -> Path:
        run_dir = ensure_dir(self.workspace.runs_dir / started.strftime("%Y-%m-%dT%H-%M-%S"))
        metadata = {
            "started": started.isoformat(timespec="seconds"),
            "finished": datetime.now().isoformat(timespec="seconds"),
            "status": status,
            "skip_provision": skip_provision,
            "cluster": self.config.cluster.name,
            "steps": tracker.steps,
        }
        metadata_file = run_dir / "deploy.json"
        write_text(metadata_file, json.dumps(metadata, indent=2))
        return metadata_file

    def destroy(self) -> list[Path]:
        """Destroy the VMs and remove generated cluster files."""
        with operation_status("Destroying infrastructure"):
            self.terraform.destroy()
        self.cleanup()
        return remove_files(self.workspace.inventory_file, self.workspace.summary_file)

    def status(self) -> HostResult | None:
        """
        kubectl get nodes -o wide on the primary control plane.

        Returns:
            The command result, or None when there is no inventory yet
        """
        if not self.workspace.inventory_file.exists():
            return None

        inventory = load_inventory(self.workspace.inventory_file)
        return self.ansible.shell_on(
            inventory.primary_control_plane.name,
            "kubectl get nodes -o wide",
            become_user=self.config.ssh.user,
        )
