"""
Tests for utility modules.
"""

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest
from conftest import FakeRunner

from k8s_libvirt.exceptions import (
    CommandFailedError,
    K8sLibvirtError,
    MissingToolError,
    RetryableError,
)
from k8s_libvirt.util.files import ensure_dir, remove_files, write_text
from k8s_libvirt.util.linting import (
    AnsibleLintResult,
    LintViolation,
    generate_lint_report,
    parse_lint_output,
    run_ansible_lint,
)
from k8s_libvirt.util.process import run_command
from k8s_libvirt.util.progress import ProgressTracker, operation_status
from k8s_libvirt.util.retry import is_retryable_error, retry_with_backoff, wait_until
from k8s_libvirt.util.templates import TemplateLoader


class TestFiles:
    """Tests for file utilities."""

    def test_ensure_dir_with_parents(self, tmp_path):
        """Test creating nested directories."""
        result = ensure_dir(tmp_path / "a" / "b")

        assert result.is_dir()

    def test_write_text_creates_parent_dirs(self, tmp_path):
        """Test write_text creates parent directories."""
        target = tmp_path / "runs" / "x" / "deploy.json"

        write_text(target, "{}")

        assert target.read_text() == "{}"

    def test_remove_files_ignores_missing(self, tmp_path):
        present = tmp_path / "tfplan"
        present.write_text("plan")

        removed = remove_files(present, tmp_path / "missing", tmp_path)

        assert removed == [present]
        assert not present.exists()
        assert tmp_path.exists()


class TestRunCommand:
    """Tests for run_command."""

    def test_captures_output(self):
        completed = subprocess.CompletedProcess(["terraform"], 0, stdout="ok\n", stderr="")
        with patch("k8s_libvirt.util.process.subprocess.run", return_value=completed) as run:
            result = run_command(["terraform", "version"], cwd="/tmp", env={"TF_INPUT": "0"})

        assert result.ok
        assert result.stdout == "ok\n"
        kwargs = run.call_args.kwargs
        assert kwargs["capture_output"] is True
        assert kwargs["cwd"] == "/tmp"
        assert kwargs["env"]["TF_INPUT"] == "0"
        assert "PATH" in kwargs["env"]

    def test_stream_does_not_capture(self):
        completed = subprocess.CompletedProcess(["ansible-playbook"], 0, stdout=None, stderr=None)
        with patch("k8s_libvirt.util.process.subprocess.run", return_value=completed) as run:
            result = run_command(["ansible-playbook", "site.yml"], stream=True)

        assert run.call_args.kwargs["capture_output"] is False
        assert result.stdout == ""

    def test_missing_executable(self):
        with patch("k8s_libvirt.util.process.subprocess.run", side_effect=FileNotFoundError()):
            with pytest.raises(MissingToolError) as exc_info:
                run_command(["terraform", "init"])

        assert exc_info.value.tool == "terraform"

    def test_check_raises_with_stderr_tail(self):
        stderr = "\n".join(f"line {i}" for i in range(20))
        completed = subprocess.CompletedProcess(["terraform"], 1, stdout="", stderr=stderr)
        with patch("k8s_libvirt.util.process.subprocess.run", return_value=completed):
            with pytest.raises(CommandFailedError) as exc_info:
                run_command(["terraform", "apply"], check=True)

        assert "line 19" in exc_info.value.message
        assert "line 9\n" not in exc_info.value.message

    def test_non_zero_without_check(self):
        completed = subprocess.CompletedProcess(["ansible"], 4, stdout="", stderr="")
        with patch("k8s_libvirt.util.process.subprocess.run", return_value=completed):
            result = run_command(["ansible", "all", "-m", "ping"])

        assert result.returncode == 4
        assert not result.ok

    def test_timeout(self):
        error = subprocess.TimeoutExpired(["ssh"], 15)
        with patch("k8s_libvirt.util.process.subprocess.run", side_effect=error):
            result = run_command(["ssh", "host"], timeout=15)

        assert result.returncode == 124
        assert "timed out" in result.stderr


class TestRetry:
    """Tests for retry helpers."""

    def test_retry_succeeds_after_failures(self):
        calls = []
        sleeps = []

        @retry_with_backoff(max_attempts=3, initial_delay=1.0, sleep=sleeps.append)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise K8sLibvirtError("not yet")
            return "done"

        assert flaky() == "done"
        assert sleeps == [1.0, 2.0]

    def test_retry_exhausted(self):
        on_retry = MagicMock()

        @retry_with_backoff(max_attempts=2, on_retry=on_retry, sleep=lambda s: None)
        def always_fails():
            raise K8sLibvirtError("down")

        with pytest.raises(RetryableError) as exc_info:
            always_fails()

        assert "down" in str(exc_info.value)
        on_retry.assert_called_once()

    def test_non_retryable_exception_propagates(self):
        @retry_with_backoff(retryable_exceptions=(K8sLibvirtError,), sleep=lambda s: None)
        def broken():
            raise ValueError("bug")

        with pytest.raises(ValueError):
            broken()

    def test_max_delay_caps_sleep(self):
        sleeps = []

        @retry_with_backoff(
            max_attempts=4, initial_delay=10, backoff_factor=10, max_delay=30, sleep=sleeps.append
        )
        def always_fails():
            raise K8sLibvirtError("down")

        with pytest.raises(RetryableError):
            always_fails()

        assert sleeps == [10, 30, 30]

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("ssh: connect to host 192.168.150.10 port 22: Connection refused", True),
            ("kex_exchange_identification: read: Connection reset by peer", True),
            ("ssh: connect to host 192.168.150.10 port 22: No route to host", True),
            ("ubuntu@192.168.150.10: Permission denied (publickey).", False),
            ("Host key verification failed.", False),
            ("some other error", False),
        ],
    )
    def test_is_retryable_error(self, message, expected):
        assert is_retryable_error(message) is expected

    def test_wait_until_times_out(self, clock):
        assert not wait_until(lambda: False, timeout=25, interval=10, sleep=clock.sleep, clock=clock)
        assert clock.sleeps == [10, 10, 5]

    def test_wait_until_immediate(self, clock):
        assert wait_until(lambda: True, timeout=25, interval=10, sleep=clock.sleep, clock=clock)
        assert clock.sleeps == []


class TestLinting:
    """Tests for ansible-lint integration."""

    LINT_JSON = json.dumps(
        [
            {
                "type": "issue",
                "check_name": "name[casing]",
                "description": "All names should start with an uppercase letter.",
                "severity": "major",
                "location": {"path": "playbooks/setup-workers.yml", "lines": {"begin": 12}},
            },
            {
                "type": "issue",
                "check_name": "yaml[line-length]",
                "description": "Line too long (170 > 160 characters)",
                "severity": "minor",
                "location": {"path": "playbooks/prepare-nodes.yml", "lines": {"begin": 40}},
            },
        ]
    )

    def test_parse_lint_output(self):
        violations = parse_lint_output(self.LINT_JSON)

        assert [v.level for v in violations] == ["error", "warning"]
        assert violations[0].rule == "name[casing]"
        assert violations[0].line == 12
        assert violations[1].filename == "playbooks/prepare-nodes.yml"

    def test_parse_lint_output_not_json(self):
        assert parse_lint_output("Passed: 0 failure(s)") == []

    def test_run_ansible_lint(self, tmp_path):
        runner = FakeRunner().add("ansible-lint", returncode=2, stdout=self.LINT_JSON)

        with patch("k8s_libvirt.util.linting.is_ansible_lint_available", return_value=True):
            result = run_ansible_lint(tmp_path, strict=True, runner=runner)

        assert not result.success
        assert result.violation_count == 2
        cmd = runner.calls[0][0]
        assert cmd[:4] == ["ansible-lint", "--format", "json", "--nocolor"]
        assert "--strict" in cmd
        assert sorted(result.get_violations_by_file()) == [
            "playbooks/prepare-nodes.yml",
            "playbooks/setup-workers.yml",
        ]

    def test_run_ansible_lint_not_installed(self, tmp_path):
        with patch("k8s_libvirt.util.linting.is_ansible_lint_available", return_value=False):
            with pytest.raises(MissingToolError):
                run_ansible_lint(tmp_path)

    def test_lint_report(self):
        result = AnsibleLintResult(
            success=False,
            violations=[LintViolation("yaml[truthy]", "Truthy value", "site.yml", 3, "warning")],
        )

        report = generate_lint_report(result)

        assert "**Status**: FAILED" in report
        assert "## Warning (1)" in report
        assert "`site.yml:3`" in report

    def test_lint_report_passed(self):
        assert "**Status**: PASSED" in generate_lint_report(AnsibleLintResult(success=True))


class TestTemplates:
    """Tests for the template loader."""

    def test_default_templates_listed(self, tmp_path):
        names = [name for _, name in TemplateLoader(tmp_path).list_available_templates()]

        assert "terraform/main.tf.j2" in names
        assert "ansible/site.yml.j2" in names
        assert "report/validation-report.txt.j2" in names

    def test_copy_defaults_backs_up_existing(self, tmp_path):
        (tmp_path / "templates").mkdir()
        (tmp_path / "templates" / "mine.j2").write_text("x")
        loader = TemplateLoader(tmp_path)

        loader.copy_default_templates_to_workspace()

        assert (tmp_path / "templates.backup" / "mine.j2").exists()
        assert (tmp_path / "templates" / "terraform" / "main.tf.j2").exists()
        assert all(source == "workspace" for source, _ in loader.list_available_templates())

    def test_hcl_string_filter(self, tmp_path):
        template = TemplateLoader(tmp_path).env.from_string("{{ value | hcl_string }}")

        assert template.render(value='a "b"') == '"a \\"b\\""'

    def test_missing_template(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            TemplateLoader(tmp_path).load_template("terraform/nope.j2")


class TestProgress:
    """Tests for progress helpers."""

    def test_tracker_records_steps(self):
        tracker = ProgressTracker("deploy")
        tracker.start(2)

        with tracker.step("one"):
            pass
        with pytest.raises(RuntimeError):
            with tracker.step("two"):
                raise RuntimeError("boom")

        assert [s["status"] for s in tracker.steps] == ["ok", "failed"]
        assert all("duration_s" in s for s in tracker.steps)
        assert tracker.steps_completed == 1

    def test_operation_status_reraises(self):
        with pytest.raises(K8sLibvirtError):
            with operation_status("Destroying"):
                raise K8sLibvirtError("[bold]markup[/bold] in message")
