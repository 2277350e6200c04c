"""
Terraform command wrapper for the tf_libvirt/ project.
"""

import json
import logging
from pathlib import Path
from typing import Any

from k8s_libvirt.exceptions import TerraformOutputError
from k8s_libvirt.util.process import CommandRunner, run_command

logger = logging.getLogger(__name__)

PLAN_FILENAME = "tfplan"
NODE_IPS_OUTPUT = "node_ips"


class Terraform:
    """Runs terraform subcommands inside one project directory."""

    # Keep terraform from prompting; every command here is non-interactive
    ENV = {"TF_IN_AUTOMATION": "1", "TF_INPUT": "0"}

    def __init__(self, tf_dir: Path, runner: CommandRunner = run_command, stream: bool = True):
        """
        Args:
            tf_dir: Directory holding main.tf
            runner: Command runner
            stream: Show init/plan/apply/destroy output live instead of capturing it
        """
        self.tf_dir = Path(tf_dir)
        self.runner = runner
        self.stream = stream

    @property
    def plan_file(self) -> Path:
        return self.tf_dir / PLAN_FILENAME

    def _run(self, *args: str, stream: bool | None = None):
        return self.runner(
            ["terraform", *args],
            cwd=self.tf_dir,
            env=self.ENV,
            check=True,
            stream=self.stream if stream is None else stream,
        )

    def init(self) -> None:
        self._run("init", "-input=false")

    def plan(self) -> None:
        """Write the execution plan to tfplan."""
        self._run("plan", "-input=false", f"-out={PLAN_FILENAME}")

    def apply(self) -> None:
        """Apply the saved plan."""
        self._run("apply", "-input=false", PLAN_FILENAME)

    def destroy(self) -> None:
        self._run("destroy", "-auto-approve", "-input=false")

    def output(self) -> dict[str, Any]:
        """
        Read all outputs.

        Returns:
            Output name -> value (the {"value": ...} wrappers removed)

        Raises:
            TerraformOutputError: If the output is not valid JSON
        """
        result = self._run("output", "-json", stream=False)
        try:
            raw = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise TerraformOutputError(f"terraform output -json is not JSON: {e}") from e

        if not isinstance(raw, dict):
            raise TerraformOutputError("terraform output -json did not return an object")

        return {name: entry.get("value") for name, entry in raw.items()}

    def node_ips(self) -> dict[str, str]:
        """
        VM name -> IP address from the node_ips output.

        Raises:
            TerraformOutputError: If node_ips is missing or not a mapping
        """
        outputs = self.output()
        node_ips = outputs.get(NODE_IPS_OUTPUT)
        if not isinstance(node_ips, dict) or not node_ips:
            raise TerraformOutputError(f"'{NODE_IPS_OUTPUT}' output is missing or empty")
        return {str(name): str(ip) for name, ip in node_ips.items()}

    def remove_plan(self) -> bool:
        """Delete tfplan; returns True if it existed."""
        if self.plan_file.exists():
            self.plan_file.unlink()
            logger.debug(f"Removed {self.plan_file}")
            return True
        return False
