"""
SSH readiness polling for newly created VMs.

cloud-init installs the SSH key a while after the domain starts, so each host
is probed until ``ssh user@ip echo`` succeeds.
"""

import logging
import time
from collections.abc import Callable

from k8s_libvirt.exceptions import NodeUnreachableError
from k8s_libvirt.models.cluster import Host, SSHSettings
from k8s_libvirt.util.process import CommandRunner, run_command
from k8s_libvirt.util.retry import is_retryable_error, wait_until

logger = logging.getLogger(__name__)

READY_MESSAGE = "VM is ready"


class SSHProbe:
    """Checks whether hosts accept non-interactive SSH logins."""

    def __init__(
        self,
        ssh: SSHSettings,
        runner: CommandRunner = run_command,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ssh = ssh
        self.runner = runner
        self.sleep = sleep
        self.clock = clock

    def command(self, address: str) -> list[str]:
        return [
            "ssh",
            "-o", f"ConnectTimeout={self.ssh.connect_timeout}",
            "-o", "StrictHostKeyChecking=no",
            "-o", "UserKnownHostsFile=/dev/null",
            "-o", "BatchMode=yes",
            "-o", "LogLevel=ERROR",
            "-i", str(self.ssh.private_key_path),
            f"{self.ssh.user}@{address}",
            f"echo '{READY_MESSAGE}'",
        ]  # fmt: skip

    def probe(self, address: str) -> bool:
        """Return True if one SSH login to address succeeds."""
        result = self.runner(self.command(address), timeout=self.ssh.connect_timeout + 10)
        if result.ok and READY_MESSAGE in result.stdout:
            return True

        detail = result.stderr.strip()
        if detail and not is_retryable_error(detail):
            # Polled until the deadline anyway; cloud-init may not have installed the key yet
            logger.warning(f"SSH to {address} failed: {detail}")
        else:
            logger.debug(f"{address} not accepting SSH yet")
        return False

    def wait_for_host(self, host: Host) -> None:
        """
        Block until host accepts SSH.

        Raises:
            NodeUnreachableError: After ssh.wait_timeout seconds
        """
        logger.info(f"Waiting for {host.name} ({host.address}) to be accessible")
        ready = wait_until(
            lambda: self.probe(host.address),
            timeout=self.ssh.wait_timeout,
            interval=self.ssh.wait_interval,
            sleep=self.sleep,
            clock=self.clock,
        )
        if not ready:
            raise NodeUnreachableError(host.name, host.address, self.ssh.wait_timeout)
        logger.info(f"{host.name} ({host.address}) is accessible")

    def wait_for_hosts(
        self,
        hosts: list[Host],
        on_ready: Callable[[Host], None] | None = None,
    ) -> None:
        """
        Wait for each host in turn.

        Args:
            hosts: Hosts to wait for
            on_ready: Called after each host becomes reachable
        """
        for host in hosts:
            self.wait_for_host(host)
            if on_ready is not None:
                on_ready(host)
