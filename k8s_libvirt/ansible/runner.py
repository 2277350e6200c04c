"""
ansible and ansible-playbook invocations against the workspace inventory.
"""

import logging
from pathlib import Path

from k8s_libvirt.ansible.output import UNREACHABLE, HostResult, parse_adhoc_output
from k8s_libvirt.exceptions import AnsibleError, PlaybookFailedError
from k8s_libvirt.util.process import CommandResult, CommandRunner, run_command

logger = logging.getLogger(__name__)


class AnsibleRunner:
    """Runs Ansible from the workspace root so ansible.cfg and group_vars apply."""

    ENV = {
        "ANSIBLE_NOCOLOR": "1",
        "ANSIBLE_FORCE_COLOR": "0",
        "ANSIBLE_HOST_KEY_CHECKING": "False",
        "ANSIBLE_RETRY_FILES_ENABLED": "False",
    }

    def __init__(
        self,
        workspace_root: Path,
        inventory_file: Path | None = None,
        runner: CommandRunner = run_command,
    ):
        self.workspace_root = Path(workspace_root)
        self.inventory_file = inventory_file or self.workspace_root / "inventory.ini"
        self.runner = runner
        # Ansible ignores ansible.cfg in a world-writable cwd, so name it explicitly
        self.env = {**self.ENV, "ANSIBLE_CONFIG": str(self.workspace_root / "ansible.cfg")}

    def _adhoc(
        self,
        pattern: str,
        module: str,
        args: str | None = None,
        become_user: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, HostResult]:
        cmd = ["ansible", pattern, "-i", str(self.inventory_file), "-m", module]
        if args is not None:
            cmd.extend(["-a", args])
        if become_user:
            cmd.extend(["-b", f"--become-user={become_user}"])

        result = self.runner(cmd, cwd=self.workspace_root, env=self.env, timeout=timeout)
        hosts = parse_adhoc_output(result.stdout)

        # Exit codes 2 (host failed) and 4 (unreachable) still carry per-host results
        if not hosts and not result.ok:
            detail = result.stderr.strip() or result.stdout.strip()
            raise AnsibleError(
                f"ansible {module} on '{pattern}' failed (exit {result.returncode}): {detail}"
            )
        return hosts

    def ping(self, pattern: str = "all") -> dict[str, HostResult]:
        """Run the ping module; returns per-host results."""
        return self._adhoc(pattern, "ping")

    def shell(
        self,
        pattern: str,
        command: str,
        become_user: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, HostResult]:
        """Run a shell command through the shell module."""
        return self._adhoc(pattern, "shell", command, become_user=become_user, timeout=timeout)

    def shell_on(
        self,
        host: str,
        command: str,
        become_user: str | None = None,
        timeout: float | None = None,
    ) -> HostResult:
        """
        Run a shell command on a single host.

        Returns:
            That host's result; UNREACHABLE when Ansible reported nothing for it
        """
        results = self.shell(host, command, become_user=become_user, timeout=timeout)
        return results.get(host, HostResult(host, UNREACHABLE, output="no result reported"))

    def copy(self, pattern: str, src: Path, dest: str) -> dict[str, HostResult]:
        """Copy a local file to the hosts."""
        return self._adhoc(pattern, "copy", f"src={src} dest={dest}")

    def run_playbook(self, playbook: Path, verbosity: int = 1, stream: bool = True) -> None:
        """
        Run a playbook with live output.

        Raises:
            PlaybookFailedError: On a non-zero exit status
        """
        cmd = ["ansible-playbook", "-i", str(self.inventory_file), str(playbook)]
        if verbosity > 0:
            cmd.append("-" + "v" * verbosity)

        logger.info(f"Running playbook {playbook.name}")
        result = self.runner(cmd, cwd=self.workspace_root, env=self.env, stream=stream)
        if not result.ok:
            raise PlaybookFailedError(playbook.name, result.returncode)

    def syntax_check(self, playbook: Path) -> CommandResult:
        """Run ansible-playbook --syntax-check; the result is returned, not raised."""
        # Before the first deploy there is no inventory; an implicit localhost one suffices
        inventory = str(self.inventory_file) if self.inventory_file.exists() else "localhost,"
        cmd = ["ansible-playbook", "-i", inventory, "--syntax-check", str(playbook)]
        return self.runner(cmd, cwd=self.workspace_root, env=self.env)
