"""
Validation report generation.

Writes validation-report.txt in the workspace root with the check results and
the current kubectl view of the cluster, plus a JSON copy of the check results
under reports/.
"""

import json
import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path

from k8s_libvirt.util.files import write_text
from k8s_libvirt.util.templates import TemplateLoader
from k8s_libvirt.validate.health import ClusterValidator, HealthReport, strip_ansi
from k8s_libvirt.workspace import Workspace

logger = logging.getLogger(__name__)

REPORT_FILENAME = "validation-report.txt"

# Report section -> kubectl arguments
REPORT_SECTIONS = {
    "cluster_info": "cluster-info",
    "nodes": "get nodes -o wide",
    "pods": "get pods -A",
    "services": "get svc -A",
}


def collect_sections(validator: ClusterValidator) -> dict[str, str]:
    """Run the kubectl commands shown in the report."""
    sections = {}
    for key, args in REPORT_SECTIONS.items():
        result = validator.kubectl(args)
        if result.ok:
            sections[key] = strip_ansi(result.output).rstrip()
        else:
            logger.warning(f"kubectl {args} failed on {validator.control_plane_host}")
            sections[key] = f"(kubectl {args} failed: {result.status})"
    return sections


def generate_validation_report(
    workspace: Workspace,
    validator: ClusterValidator,
    report: HealthReport,
    now: datetime | None = None,
) -> Path:
    """
    Write validation-report.txt and reports/validation-<timestamp>.json.

    Args:
        workspace: Workspace the report belongs to
        validator: Validator used for kubectl access
        report: Check results to include
        now: Report time (defaults to now)

    Returns:
        Path to validation-report.txt
    """
    now = now or datetime.now()
    config = validator.config

    context = {
        "generated": now.strftime("%a %b %d %H:%M:%S %Y"),
        "cluster": asdict(config.cluster),
        "checks": [result.to_dict() for result in report.results],
        "sections": collect_sections(validator),
    }

    loader = TemplateLoader(workspace.root)
    report_file = workspace.root / REPORT_FILENAME
    loader.render_template("report/validation-report.txt.j2", context, report_file)

    json_file = workspace.reports_dir / f"validation-{now.strftime('%Y%m%dT%H%M%S')}.json"
    write_text(
        json_file,
        json.dumps(
            {
                "generated": now.isoformat(timespec="seconds"),
                "cluster": config.cluster.name,
                "counts": report.counts(),
                "checks": context["checks"],
            },
            indent=2,
        ),
    )

    logger.info(f"Validation report saved to {report_file}")
    return report_file
