"""
Jinja2 templates for the Terraform, Ansible and report files.

A workspace may carry its own templates/ directory; any template found there
overrides the built-in copy with the same relative name.
"""

import json
import shutil
from datetime import datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, Template

from k8s_libvirt.util.files import write_text

# Built-in templates live at the repository root
PROJECT_ROOT = Path(__file__).parent.parent.parent


class TemplateLoader:
    """
    Renders the cluster templates for one workspace.

    Lookups go to <workspace>/templates first, then to the built-in set.
    """

    def __init__(self, workspace_root: Path):
        self.workspace_root = workspace_root
        self.workspace_templates = workspace_root / "templates"
        self.default_templates = PROJECT_ROOT / "templates"
        self._env: Environment | None = None
        self._template_cache: dict[str, Template] = {}

    def _search_path(self) -> list[tuple[str, Path]]:
        sources = [("workspace", self.workspace_templates), ("default", self.default_templates)]
        return [(source, path) for source, path in sources if path.is_dir()]

    def has_custom_templates(self) -> bool:
        """Check if workspace has custom templates."""
        return self.workspace_templates.exists()

    @property
    def env(self) -> Environment:
        """
        Jinja2 environment over the template search path (cached).

        Playbook templates wrap Ansible's own expressions in {% raw %} blocks;
        any other undefined name is an error.
        """
        if self._env is None:
            search_path = self._search_path()
            if not search_path:
                raise FileNotFoundError("No template directories found")

            self._env = Environment(
                loader=FileSystemLoader([str(path) for _, path in search_path]),
                trim_blocks=True,
                lstrip_blocks=True,
                keep_trailing_newline=True,
                undefined=StrictUndefined,
            )
            # HCL string literals share JSON's quoting rules
            self._env.filters["hcl_string"] = lambda value: json.dumps(str(value))

        return self._env

    def get_template_path(self, template_name: str) -> Path:
        """
        Resolve a template name to the file that will be used.

        Args:
            template_name: Template name (e.g., "terraform/main.tf.j2")

        Raises:
            FileNotFoundError: If neither the workspace nor the defaults have it
        """
        for _, directory in self._search_path():
            candidate = directory / template_name
            if candidate.exists():
                return candidate

        raise FileNotFoundError(f"Template '{template_name}' not found in workspace or defaults")

    def load_template(self, template_name: str) -> Template:
        if template_name not in self._template_cache:
            self.get_template_path(template_name)
            self._template_cache[template_name] = self.env.get_template(template_name)
        return self._template_cache[template_name]

    def render(self, template_name: str, context: dict) -> str:
        """Render a template to a string, stamping it with the render time."""
        context.setdefault("timestamp", datetime.now().isoformat(timespec="seconds"))
        return self.load_template(template_name).render(**context)

    def render_template(self, template_name: str, context: dict, output_file: Path) -> Path:
        """
        Render a template into output_file.

        Args:
            template_name: Template name (e.g., "ansible/site.yml.j2")
            context: Template variables
            output_file: Destination; parent directories are created

        Returns:
            The written file
        """
        return write_text(output_file, self.render(template_name, dict(context)))

    def copy_default_templates_to_workspace(self) -> None:
        """
        Copy the built-in templates into <workspace>/templates for editing.

        An existing templates/ directory is moved to templates.backup first.
        """
        if not self.default_templates.exists():
            raise FileNotFoundError(f"Default templates not found at {self.default_templates}")

        if self.workspace_templates.exists():
            backup_dir = self.workspace_root / "templates.backup"
            shutil.rmtree(backup_dir, ignore_errors=True)
            shutil.move(str(self.workspace_templates), str(backup_dir))

        shutil.copytree(self.default_templates, self.workspace_templates)
        self._env = None
        self._template_cache.clear()

    def list_available_templates(self) -> list[tuple[str, str]]:
        """
        Every template name with the source that will serve it.

        Returns:
            Sorted (source, template_name) pairs, source being "workspace" or "default"
        """
        found: dict[str, str] = {}
        for source, directory in self._search_path():
            for template_file in directory.rglob("*.j2"):
                found.setdefault(template_file.relative_to(directory).as_posix(), source)

        return [(source, name) for name, source in sorted(found.items())]
