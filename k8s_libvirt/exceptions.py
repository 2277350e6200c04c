"""
Custom exceptions for k8s-libvirt with helpful error messages.
"""

from rich.markup import escape


class K8sLibvirtError(Exception):
    """Base exception for k8s-libvirt errors."""

    def __init__(self, message: str, suggestion: str = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self.message)

    def __str__(self):
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


class WorkspaceError(K8sLibvirtError):
    """Errors related to workspace management."""

    pass


class WorkspaceNotFoundError(WorkspaceError):
    """Workspace not found or not initialized."""

    def __init__(self, path: str = None):
        message = "Not in a k8s-libvirt workspace."
        if path:
            message = f"No k8s-libvirt workspace found at: {path}"

        suggestion = (
            "Initialize a new workspace with:\n"
            "  k8s-libvirt --workspace <dir> init\n\n"
            "Or run from inside an existing workspace."
        )
        super().__init__(message, suggestion)


class ConfigurationError(K8sLibvirtError):
    """Configuration file errors."""

    pass


class InvalidConfigError(ConfigurationError):
    """Configuration file is invalid."""

    def __init__(self, error_details: str):
        message = f"Invalid configuration file: {error_details}"

        suggestion = (
            "Fix k8s-libvirt.yaml. You can regenerate the default configuration:\n"
            "  mv k8s-libvirt.yaml k8s-libvirt.yaml.backup\n"
            "  k8s-libvirt init\n\n"
            "Then merge your settings back from the backup."
        )
        super().__init__(message, suggestion)


class PrerequisiteError(K8sLibvirtError):
    """A required external tool or file is missing."""

    pass


class MissingToolError(PrerequisiteError):
    """Executable not found on PATH."""

    INSTALL_HINTS = {
        "terraform": "https://developer.hashicorp.com/terraform/install",
        "ansible": "pip install ansible",
        "ansible-playbook": "pip install ansible",
        "ansible-galaxy": "pip install ansible",
        "ansible-lint": "pip install ansible-lint",
        "ssh": "apt install openssh-client",
        "ssh-keygen": "apt install openssh-client",
    }

    def __init__(self, tool: str):
        self.tool = tool
        message = f"{tool} is not installed or not on PATH."
        hint = self.INSTALL_HINTS.get(tool)
        suggestion = f"Install {tool} first:\n  {hint}" if hint else f"Install {tool} first."
        super().__init__(message, suggestion)


class CommandFailedError(K8sLibvirtError):
    """External command exited with a non-zero status."""

    def __init__(self, command: list[str], returncode: int, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr

        message = f"Command failed with exit code {returncode}: {' '.join(command)}"
        tail = "\n".join(stderr.strip().splitlines()[-10:]) if stderr else ""
        if tail:
            message += f"\n{tail}"
        super().__init__(message)


class ProvisioningError(K8sLibvirtError):
    """Errors while provisioning virtual machines."""

    pass


class TerraformOutputError(ProvisioningError):
    """Terraform outputs are missing or malformed."""

    def __init__(self, error_details: str):
        message = f"Unexpected Terraform output: {error_details}"
        suggestion = (
            "Check that terraform apply completed and exposes the node_ips output:\n"
            "  terraform -chdir=tf_libvirt output -json"
        )
        super().__init__(message, suggestion)


class NodeUnreachableError(ProvisioningError):
    """A VM did not accept SSH connections in time."""

    def __init__(self, host: str, address: str, timeout: float):
        self.host = host
        self.address = address
        message = f"{host} ({address}) was not reachable over SSH after {timeout:.0f}s"
        suggestion = (
            "Check that the VM booted and received a DHCP lease:\n"
            "  virsh list --all\n"
            f"  virsh domifaddr {host}\n\n"
            "Or raise ssh.wait_timeout in k8s-libvirt.yaml."
        )
        super().__init__(message, suggestion)


class InventoryError(K8sLibvirtError):
    """Errors building or reading the Ansible inventory."""

    pass


class InventoryNotFoundError(InventoryError):
    """inventory.ini does not exist yet."""

    def __init__(self, path: str):
        message = f"inventory.ini not found: {path}"
        suggestion = "Deploy the cluster first:\n  k8s-libvirt deploy"
        super().__init__(message, suggestion)


class AnsibleError(K8sLibvirtError):
    """Errors while running Ansible."""

    pass


class PlaybookFailedError(AnsibleError):
    """ansible-playbook reported failures."""

    def __init__(self, playbook: str, returncode: int):
        message = f"Playbook {playbook} failed with exit code {returncode}"
        suggestion = (
            "Re-run with more verbosity to see the failing task:\n"
            "  k8s-libvirt deploy --skip-provision -v 3"
        )
        super().__init__(message, suggestion)


class ValidationError(K8sLibvirtError):
    """Cluster validation failed."""

    pass


class RetryableError(K8sLibvirtError):
    """Error that should be retried."""

    def __init__(self, original_error: Exception, attempt: int, max_attempts: int):
        self.original_error = original_error
        self.attempt = attempt
        self.max_attempts = max_attempts

        message = f"Operation failed (attempt {attempt}/{max_attempts}): " f"{str(original_error)}"
        super().__init__(message)


def format_error_for_cli(error: Exception) -> str:
    """
    Format an exception for CLI display with helpful information.

    Args:
        error: The exception to format

    Returns:
        Formatted error message string
    """
    if isinstance(error, K8sLibvirtError):
        output = f"[red]Error:[/red] {escape(error.message)}"
        if error.suggestion:
            output += f"\n\n[yellow]{escape(error.suggestion)}[/yellow]"
        return output
    else:
        return f"[red]Error:[/red] {escape(str(error))}"
