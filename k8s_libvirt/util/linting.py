"""
Linting utilities for the rendered Ansible playbooks.

Integrates with ansible-lint; its JSON output uses the Code Climate layout.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from k8s_libvirt.exceptions import MissingToolError
from k8s_libvirt.util.process import CommandRunner, is_tool_available, run_command

logger = logging.getLogger(__name__)

# Code Climate severities folded into three buckets
SEVERITY_LEVELS = {
    "blocker": "error",
    "critical": "error",
    "major": "error",
    "minor": "warning",
    "info": "info",
}


@dataclass
class LintViolation:
    """A single ansible-lint finding."""

    rule: str
    message: str
    filename: str
    line: int | None = None
    level: str = "warning"


@dataclass
class AnsibleLintResult:
    """Result of ansible-lint execution."""

    success: bool
    violations: list[LintViolation] = field(default_factory=list)
    stdout: str = ""
    stderr: str = ""

    @property
    def violation_count(self) -> int:
        """Total number of violations."""
        return len(self.violations)

    def get_violations_by_severity(self) -> dict[str, list[LintViolation]]:
        """Group violations by error/warning/info."""
        by_severity: dict[str, list[LintViolation]] = {"error": [], "warning": [], "info": []}
        for violation in self.violations:
            by_severity.get(violation.level, by_severity["warning"]).append(violation)
        return by_severity

    def get_violations_by_file(self) -> dict[str, list[LintViolation]]:
        """Group violations by file."""
        by_file: dict[str, list[LintViolation]] = {}
        for violation in self.violations:
            by_file.setdefault(violation.filename, []).append(violation)
        return by_file


def is_ansible_lint_available() -> bool:
    """Check if ansible-lint is installed and available."""
    return is_tool_available("ansible-lint")


def parse_lint_output(stdout: str) -> list[LintViolation]:
    """
    Parse ansible-lint JSON output into violations.

    Args:
        stdout: Output of ansible-lint -f json

    Returns:
        List of LintViolation (empty when output is not JSON)
    """
    if not stdout.strip():
        return []

    try:
        data = json.loads(stdout)
    except json.JSONDecodeError:
        logger.warning("ansible-lint output is not valid JSON; ignoring it")
        return []

    if isinstance(data, dict):
        data = data.get("violations") or data.get("results") or []

    violations = []
    for entry in data:
        violations.append(_parse_violation(entry))
    return violations


def _parse_violation(entry: dict[str, Any]) -> LintViolation:
    location = entry.get("location", {})
    lines = location.get("lines", {}) if isinstance(location, dict) else {}
    line = lines.get("begin")
    if isinstance(line, dict):
        line = line.get("line")

    severity = str(entry.get("severity", "minor")).lower()
    return LintViolation(
        rule=entry.get("check_name", entry.get("tag", "unknown")),
        message=entry.get("description", entry.get("message", "No message")),
        filename=location.get("path", entry.get("filename", "unknown")),
        line=line,
        level=SEVERITY_LEVELS.get(severity, "warning"),
    )


def run_ansible_lint(
    path: Path,
    config_file: Path | None = None,
    strict: bool = False,
    runner: CommandRunner = run_command,
) -> AnsibleLintResult:
    """
    Run ansible-lint on a file or directory.

    Args:
        path: Path to lint
        config_file: Optional .ansible-lint config file
        strict: Treat warnings as errors
        runner: Command runner

    Returns:
        AnsibleLintResult with violations

    Raises:
        MissingToolError: If ansible-lint is not installed
        FileNotFoundError: If path does not exist
    """
    if not is_ansible_lint_available():
        raise MissingToolError("ansible-lint")

    if not path.exists():
        raise FileNotFoundError(f"Path does not exist: {path}")

    cmd = ["ansible-lint", "--format", "json", "--nocolor"]
    if config_file and config_file.exists():
        cmd.extend(["--config-file", str(config_file)])
    if strict:
        cmd.append("--strict")
    cmd.append(str(path))

    # Exit codes: 0 clean, 2 violations found, anything else a fatal error
    result = runner(cmd, cwd=path.parent if path.is_file() else path, timeout=300)
    violations = parse_lint_output(result.stdout)

    return AnsibleLintResult(
        success=result.ok,
        violations=violations,
        stdout=result.stdout,
        stderr=result.stderr,
    )


def generate_lint_report(result: AnsibleLintResult) -> str:
    """
    Generate human-readable lint report.

    Returns:
        Markdown-formatted lint report
    """
    lines = ["# Ansible Lint Report\n"]

    if result.success:
        lines.append("**Status**: PASSED\n")
        lines.append("No violations found\n")
    else:
        lines.append("**Status**: FAILED\n")
        lines.append(f"Found {result.violation_count} violation(s)\n")

    by_severity = result.get_violations_by_severity()
    for severity in ["error", "warning", "info"]:
        severity_violations = by_severity[severity]
        if not severity_violations:
            continue

        lines.append(f"\n## {severity.title()} ({len(severity_violations)})\n")
        for violation in severity_violations:
            location = violation.filename
            if violation.line is not None:
                location += f":{violation.line}"
            lines.append(f"### {violation.rule}\n")
            lines.append(f"**File**: `{location}`\n")
            lines.append(f"**Message**: {violation.message}\n")

    return "\n".join(lines)
