"""
CLI entry point for k8s-libvirt.
"""

import logging
from functools import wraps
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from k8s_libvirt.exceptions import K8sLibvirtError, ValidationError, format_error_for_cli
from k8s_libvirt.workspace import Workspace

app = typer.Typer(
    name="k8s-libvirt",
    help="Kubernetes clusters on libvirt/KVM with Terraform and Ansible",
    add_completion=False,
)
console = Console()
logger = logging.getLogger(__name__)

STATUS_STYLES = {
    "PASS": "[green]✓ PASS[/green]",
    "WARN": "[yellow]⚠ WARN[/yellow]",
    "FAIL": "[red]✗ FAIL[/red]",
}


def handle_errors(func):
    """Decorator to handle exceptions in CLI commands with nice formatting."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (typer.Exit, typer.Abort):
            raise
        except K8sLibvirtError as e:
            console.print(format_error_for_cli(e))
            raise typer.Exit(1)
        except Exception as e:
            console.print(f"[red]Unexpected error:[/red] {escape(str(e))}")
            logger.debug("Unexpected error", exc_info=True)
            raise typer.Exit(1)

    return wrapper


validate_app = typer.Typer(help="Cluster validation commands (check, test, report, all)")
app.add_typer(validate_app, name="validate")


@app.callback()
def main(
    ctx: typer.Context,
    workspace_dir: Path = typer.Option(
        Path("."), "--workspace", "-w", help="Workspace directory (default: current directory)"
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logging"),
):
    """Provision libvirt VMs with Terraform and bootstrap Kubernetes with Ansible."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    ctx.obj = {"workspace": Workspace(workspace_dir.resolve())}


def _workspace(ctx: typer.Context) -> Workspace:
    return ctx.obj["workspace"]


@app.command()
def init(
    ctx: typer.Context,
    with_templates: bool = typer.Option(
        False, "--with-templates", help="Copy default templates for customization"
    ),
):
    """Initialize a new k8s-libvirt workspace."""
    workspace = _workspace(ctx)
    console.print(f"[bold blue]Initializing workspace:[/bold blue] {workspace.root}")

    workspace.initialize()

    console.print(f"[green]✓ Created directory structure in {workspace.root}[/green]")
    console.print(f"[green]✓ Wrote configuration to {Workspace.CONFIG_FILENAME}[/green]")

    if with_templates:
        _copy_templates(workspace)

    console.print("\n[dim]Next steps:[/dim]")
    console.print(f"  # Edit {Workspace.CONFIG_FILENAME} (node counts, sizes, network)")
    if with_templates:
        console.print("  # Customize templates in templates/ directory")
    console.print("  k8s-libvirt deploy")


def _copy_templates(workspace: Workspace) -> None:
    from k8s_libvirt.util.templates import TemplateLoader

    loader = TemplateLoader(workspace.root)
    try:
        loader.copy_default_templates_to_workspace()
        console.print("[green]✓ Copied default templates to templates/[/green]")
        console.print("[dim]  You can now customize templates for your environment[/dim]")
    except FileNotFoundError as e:
        console.print(f"[yellow]⚠ Template directory not found: {e}[/yellow]")
        logger.warning(f"Templates not found: {e}")
    except PermissionError as e:
        console.print(f"[red]✗ Permission denied copying templates: {e}[/red]")
        raise typer.Exit(1)


@app.command()
@handle_errors
def render(
    ctx: typer.Context,
    with_templates: bool = typer.Option(
        False, "--with-templates", help="Copy default templates into the workspace first"
    ),
):
    """Render the Terraform and Ansible files without deploying."""
    from k8s_libvirt.generate import render_project

    workspace = _workspace(ctx).require()
    if with_templates:
        _copy_templates(workspace)

    written = render_project(workspace)

    console.print(f"[green]✓ Rendered {len(written)} file(s)[/green]")
    for path in written:
        console.print(f"  [cyan]• {path.relative_to(workspace.root)}[/cyan]")


@app.command()
@handle_errors
def templates(ctx: typer.Context):
    """List templates and whether the workspace overrides them."""
    from k8s_libvirt.util.templates import TemplateLoader

    loader = TemplateLoader(_workspace(ctx).root)
    if not loader.has_custom_templates():
        console.print("[dim]No workspace templates; using built-in defaults[/dim]")
    for source, name in loader.list_available_templates():
        style = "green" if source == "workspace" else "dim"
        console.print(f"  [{style}]{source:9}[/{style}] {name}")


@app.command()
@handle_errors
def deploy(
    ctx: typer.Context,
    skip_provision: bool = typer.Option(
        False, "--skip-provision", help="Reuse the existing inventory.ini instead of running Terraform"
    ),
    verbosity: int = typer.Option(
        1, "--verbosity", "-v", min=0, max=4, help="ansible-playbook verbosity"
    ),
):
    """Provision the VMs and bootstrap the Kubernetes cluster."""
    from k8s_libvirt.deploy import Deployment
    from k8s_libvirt.util.progress import show_summary

    deployment = Deployment(_workspace(ctx))
    inventory = deployment.deploy(skip_provision=skip_provision, verbosity=verbosity)

    summary = deployment.cluster_summary()
    if summary:
        console.print("\n[bold]Cluster summary:[/bold]")
        console.print(escape(summary))

    show_summary(
        "Cluster",
        {
            "Name": deployment.config.cluster.name,
            "Control plane nodes": len(inventory.control_plane),
            "Worker nodes": len(inventory.workers),
            "Inventory": str(deployment.workspace.inventory_file),
        },
    )

    console.print("\n[bold]Control plane nodes:[/bold]")
    for host in inventory.control_plane:
        console.print(f"  {host.name} - {host.address}")

    console.print("\n[dim]Next steps:[/dim]")
    console.print("  k8s-libvirt validate all")


@app.command()
@handle_errors
def destroy(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Destroy the cluster VMs and remove generated cluster files."""
    from k8s_libvirt.deploy import Deployment

    if not yes:
        typer.confirm("Destroy all cluster VMs?", abort=True)

    deployment = Deployment(_workspace(ctx))
    removed = deployment.destroy()

    console.print("[green]✓ Infrastructure destroyed[/green]")
    for path in removed:
        console.print(f"  [dim]Removed {path.name}[/dim]")


@app.command()
@handle_errors
def status(ctx: typer.Context):
    """Show cluster node status."""
    from k8s_libvirt.deploy import Deployment

    deployment = Deployment(_workspace(ctx), stream=False)
    result = deployment.status()

    if result is None:
        console.print("[yellow]⚠ No inventory.ini found. Cluster may not be deployed.[/yellow]")
        console.print("\n[dim]Next steps:[/dim]")
        console.print("  k8s-libvirt deploy")
        return

    if not result.ok:
        console.print(f"[red]✗ kubectl failed on {result.host}: {escape(result.output)}[/red]")
        raise typer.Exit(1)

    console.print(escape(result.output))


@app.command()
@handle_errors
def inventory(
    ctx: typer.Context,
    refresh: bool = typer.Option(
        False, "--refresh", help="Regenerate inventory.ini from terraform output"
    ),
):
    """Show (or regenerate) the generated inventory.ini."""
    from k8s_libvirt.inventory import (
        build_inventory,
        load_inventory,
        render_inventory,
        write_inventory,
    )
    from k8s_libvirt.provision.terraform import Terraform

    workspace = _workspace(ctx).require()

    if refresh:
        node_ips = Terraform(workspace.tf_dir, stream=False).node_ips()
        inv = build_inventory(node_ips, workspace.cluster_config().ssh)
        write_inventory(inv, workspace.inventory_file)
        console.print(f"[green]✓ Wrote {workspace.inventory_file.name}[/green]")
    else:
        inv = load_inventory(workspace.inventory_file)

    console.print(escape(render_inventory(inv)))


@app.command(name="syntax-check")
@handle_errors
def syntax_check(ctx: typer.Context):
    """Run ansible-playbook --syntax-check on every playbook."""
    from k8s_libvirt.ansible.runner import AnsibleRunner
    from k8s_libvirt.generate import render_project
    from k8s_libvirt.generate.ansible_project import playbook_paths
    from k8s_libvirt.provision.prerequisites import ensure_collections

    workspace = _workspace(ctx).require()
    render_project(workspace)
    ensure_collections()

    ansible = AnsibleRunner(workspace.root, workspace.inventory_file)
    failed = []
    for playbook in playbook_paths(workspace.playbooks_dir):
        result = ansible.syntax_check(playbook)
        if result.ok:
            console.print(f"  [green]✓ {playbook.name}[/green]")
        else:
            failed.append(playbook.name)
            console.print(f"  [red]✗ {playbook.name}[/red]")
            detail = result.stderr.strip() or result.stdout.strip()
            if detail:
                console.print(f"[dim]{escape(detail)}[/dim]")

    if failed:
        console.print(f"\n[red]✗ Syntax errors in {len(failed)} playbook(s)[/red]")
        raise typer.Exit(1)

    console.print("\n[green]✓ All playbooks passed syntax check[/green]")


@app.command()
@handle_errors
def lint(
    ctx: typer.Context,
    strict: bool = typer.Option(False, "--strict", help="Treat warnings as errors"),
):
    """Run ansible-lint over the rendered playbooks and write reports/lint.md."""
    from k8s_libvirt.generate import render_project
    from k8s_libvirt.util.files import write_text
    from k8s_libvirt.util.linting import generate_lint_report, run_ansible_lint

    workspace = _workspace(ctx).require()
    render_project(workspace)

    result = run_ansible_lint(
        workspace.playbooks_dir,
        config_file=workspace.root / ".ansible-lint",
        strict=strict,
    )
    report_file = workspace.reports_dir / "lint.md"
    write_text(report_file, generate_lint_report(result))

    if result.success:
        console.print("[green]✓ ansible-lint passed[/green]")
    else:
        for level, violations in result.get_violations_by_severity().items():
            if violations:
                console.print(f"  {level}: {len(violations)}")
        console.print(f"[red]✗ ansible-lint found {result.violation_count} violation(s)[/red]")

    console.print(f"[dim]Report: {report_file}[/dim]")
    if not result.success:
        raise typer.Exit(1)


def _validator(workspace: Workspace):
    from k8s_libvirt.ansible.runner import AnsibleRunner
    from k8s_libvirt.inventory import load_inventory
    from k8s_libvirt.validate.health import ClusterValidator

    workspace.require()
    inv = load_inventory(workspace.inventory_file)
    ansible = AnsibleRunner(workspace.root, workspace.inventory_file)
    return ClusterValidator(ansible, inv, workspace.cluster_config())


def _print_results(report) -> None:
    for result in report.results:
        console.print(f"  {STATUS_STYLES[result.status.value]} {result.name}: {escape(result.detail)}")


def _finish(report) -> None:
    counts = report.counts()
    console.print(
        f"\n{counts['PASS']} passed, {counts['WARN']} warning(s), {counts['FAIL']} failed"
    )
    if report.has_failures:
        raise ValidationError(
            f"{counts['FAIL']} validation check(s) failed",
            "Inspect the cluster with:\n  k8s-libvirt status",
        )


def _run_checks(validator):
    console.print("[bold blue]Checking cluster health...[/bold blue]")
    report = validator.check_cluster_health()
    _print_results(report)
    return report


def _run_smoke_tests(validator, report) -> None:
    from k8s_libvirt.validate.smoke import SmokeTests

    console.print("\n[bold blue]Running smoke tests...[/bold blue]")
    smoke = SmokeTests(validator).run()
    _print_results(smoke)
    report.extend(smoke)


def _write_report(workspace, validator, report) -> None:
    from k8s_libvirt.report import generate_validation_report

    report_file = generate_validation_report(workspace, validator, report)
    console.print(f"\n[green]✓ Validation report saved to {report_file}[/green]")


@validate_app.command()
@handle_errors
def check(ctx: typer.Context):
    """Run the cluster health checks."""
    validator = _validator(_workspace(ctx))
    _finish(_run_checks(validator))


@validate_app.command(name="test")
@handle_errors
def test_cmd(ctx: typer.Context):
    """Run the health checks, then the nginx and DNS smoke tests."""
    validator = _validator(_workspace(ctx))
    report = _run_checks(validator)
    if not report.has_failures:
        _run_smoke_tests(validator, report)
    _finish(report)


@validate_app.command(name="report")
@handle_errors
def report_cmd(ctx: typer.Context):
    """Run the health checks and write validation-report.txt."""
    workspace = _workspace(ctx)
    validator = _validator(workspace)
    report = _run_checks(validator)
    if not report.has_failures:
        _write_report(workspace, validator, report)
    _finish(report)


@validate_app.command(name="all")
@handle_errors
def all_cmd(ctx: typer.Context):
    """Run the health checks, the smoke tests and write the report."""
    workspace = _workspace(ctx)
    validator = _validator(workspace)
    report = _run_checks(validator)
    if not report.has_failures:
        _run_smoke_tests(validator, report)
        _write_report(workspace, validator, report)
    _finish(report)


if __name__ == "__main__":
    app()
