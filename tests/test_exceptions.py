"""
Tests for exception formatting.
"""

from k8s_libvirt.exceptions import (
    CommandFailedError,
    InventoryNotFoundError,
    K8sLibvirtError,
    MissingToolError,
    NodeUnreachableError,
    format_error_for_cli,
)


def test_str_includes_suggestion():
    error = K8sLibvirtError("Something broke", "Try again")

    assert str(error) == "Something broke\n\nSuggestion: Try again"


def test_str_without_suggestion():
    assert str(K8sLibvirtError("Something broke")) == "Something broke"


def test_missing_tool_has_install_hint():
    error = MissingToolError("terraform")

    assert error.message == "terraform is not installed or not on PATH."
    assert "developer.hashicorp.com" in error.suggestion


def test_missing_tool_without_hint():
    assert MissingToolError("virsh").suggestion == "Install virsh first."


def test_command_failed_error():
    error = CommandFailedError(["terraform", "apply", "tfplan"], 1, "Error: pool not found\n")

    assert error.message.startswith("Command failed with exit code 1: terraform apply tfplan")
    assert error.message.endswith("Error: pool not found")


def test_node_unreachable_error():
    error = NodeUnreachableError("k8swrknode1", "192.168.150.11", 900)

    assert "after 900s" in error.message
    assert "virsh domifaddr k8swrknode1" in error.suggestion


def test_format_error_for_cli_escapes_markup():
    formatted = format_error_for_cli(InventoryNotFoundError("/ws/[x]/inventory.ini"))

    assert formatted.startswith("[red]Error:[/red] inventory.ini not found: /ws/\\[x]/inventory.ini")
    assert "k8s-libvirt deploy" in formatted


def test_format_plain_exception():
    assert format_error_for_cli(ValueError("bad")) == "[red]Error:[/red] bad"
