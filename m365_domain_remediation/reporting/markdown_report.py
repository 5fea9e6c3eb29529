"""
Markdown report — human-readable run record rendered from a Jinja2 template.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ..remediation.models import OutcomeStatus, RunSummary
from ..remediation.usage import DomainUsage

TEMPLATE_DIR = Path(__file__).parent / "templates"
TEMPLATE_NAME = "remediation_report.md.j2"

_STATUS_ICONS = {
    OutcomeStatus.SUCCESS: "✅",
    OutcomeStatus.PLANNED: "📝",
    OutcomeStatus.UNCHANGED: "⚪",
    OutcomeStatus.SKIPPED_CONFLICT: "⚠️",
    OutcomeStatus.FAILED: "❌",
}


def _md_cell(value: Any) -> str:
    return str(value).replace("|", "\\|").replace("\n", " ")


def render_markdown(
    summary: RunSummary,
    usage: Optional[DomainUsage],
    run_id: str,
    run_info: dict[str, Any],
) -> str:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape([]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["cell"] = _md_cell
    template = env.get_template(TEMPLATE_NAME)

    # Outcomes that need attention first
    attention = [
        o for o in summary.outcomes
        if o.status in (OutcomeStatus.FAILED, OutcomeStatus.SKIPPED_CONFLICT)
    ]
    changed = [
        o for o in summary.outcomes
        if o.status in (OutcomeStatus.SUCCESS, OutcomeStatus.PLANNED)
    ]
    return template.render(
        run_id=run_id,
        info=run_info,
        generated_utc=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
        summary=summary,
        usage=usage,
        attention=attention,
        changed=changed,
        icons={status.value: icon for status, icon in _STATUS_ICONS.items()},
    )


def export_markdown(
    summary: RunSummary,
    usage: Optional[DomainUsage],
    output_dir: Path,
    run_id: str,
    run_info: dict[str, Any],
) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    filepath = output_dir / f"remediation_report_{run_id}.md"
    content = render_markdown(summary, usage, run_id, run_info)
    with open(filepath, "w", encoding="utf-8") as fh:
        fh.write(content)
    return filepath
