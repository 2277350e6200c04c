"""
Parsing of ansible ad-hoc output.

The default ad-hoc callback prints one header per host followed by either the
raw command output (``>>``) or a JSON result (``=>``)::

    k8scpnode1 | CHANGED | rc=0 >>
    Kubernetes control plane is running at https://192.168.150.10:6443
    k8swrknode1 | UNREACHABLE! => {
        "changed": false,
        "msg": "Failed to connect to the host via ssh",
        "unreachable": true
    }
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any

CHANGED = "CHANGED"
SUCCESS = "SUCCESS"
FAILED = "FAILED"
UNREACHABLE = "UNREACHABLE"

_HEADER = re.compile(
    r"^(?P<host>[^\s|]+) \| (?P<status>CHANGED|SUCCESS|FAILED|UNREACHABLE)!?"
    r"(?: \| rc=(?P<rc>-?\d+))? (?P<sep>>>|=>)\s?(?P<rest>.*)$"
)
_NON_ZERO_TRAILER = "non-zero return code"


@dataclass
class HostResult:
    """Result of an ad-hoc module run on one host."""

    host: str
    status: str
    rc: int | None = None
    output: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status in (CHANGED, SUCCESS)


def _finish(host: str, status: str, rc: str | None, sep: str, body: list[str]) -> HostResult:
    text = "\n".join(body).strip("\n")

    if sep == "=>":
        try:
            data = json.loads(text) if text else {}
        except json.JSONDecodeError:
            data = {}
        output = data.get("stdout") or data.get("msg") or ""
        if not isinstance(output, str):
            output = json.dumps(output)
        code = data.get("rc")
        return HostResult(host, status, code if isinstance(code, int) else None, output, data)

    if status == FAILED and text.endswith(_NON_ZERO_TRAILER):
        text = text[: -len(_NON_ZERO_TRAILER)].rstrip("\n")
    return HostResult(host, status, int(rc) if rc is not None else None, text)


def parse_adhoc_output(text: str) -> dict[str, HostResult]:
    """
    Split ad-hoc output into per-host results.

    Args:
        text: stdout of an ``ansible <pattern> -m <module>`` run

    Returns:
        Host name -> HostResult, in output order
    """
    results: dict[str, HostResult] = {}
    current: tuple[str, str, str | None, str] | None = None
    body: list[str] = []

    for line in text.splitlines():
        match = _HEADER.match(line)
        if match:
            if current is not None:
                results[current[0]] = _finish(*current, body)
            current = (match["host"], match["status"], match["rc"], match["sep"])
            body = [match["rest"]] if match["rest"] else []
        elif current is not None:
            body.append(line)

    if current is not None:
        results[current[0]] = _finish(*current, body)

    return results
