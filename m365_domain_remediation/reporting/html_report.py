"""
HTML Report — single-file HTML record of a remediation run.

Self-contained with inline CSS: run header, summary tiles, identities that
need attention, then every change made (or planned).
"""

from __future__ import annotations

import html
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from ..remediation.models import OutcomeStatus, RemediationOutcome, RunSummary
from ..remediation.usage import DomainUsage


# ---------------------------------------------------------------------------
# Colour palette
# ---------------------------------------------------------------------------
_STATUS_COLOURS = {
    OutcomeStatus.SUCCESS:          {"bg": "#16a34a", "fg": "#fff"},
    OutcomeStatus.PLANNED:          {"bg": "#2563eb", "fg": "#fff"},
    OutcomeStatus.UNCHANGED:        {"bg": "#6b7280", "fg": "#fff"},
    OutcomeStatus.SKIPPED_CONFLICT: {"bg": "#d97706", "fg": "#fff"},
    OutcomeStatus.FAILED:           {"bg": "#dc2626", "fg": "#fff"},
}

_STATUS_ORDER = [
    OutcomeStatus.FAILED,
    OutcomeStatus.SKIPPED_CONFLICT,
    OutcomeStatus.SUCCESS,
    OutcomeStatus.PLANNED,
    OutcomeStatus.UNCHANGED,
]


def _esc(val: Any) -> str:
    if val is None:
        return ""
    return html.escape(str(val))


def _status_badge(status: OutcomeStatus) -> str:
    c = _STATUS_COLOURS[status]
    return (
        f'<span class="badge" style="background:{c["bg"]};color:{c["fg"]}">'
        f'{html.escape(status.value)}</span>'
    )


def _tile(label: str, value: int, status: Optional[OutcomeStatus] = None) -> str:
    colour = _STATUS_COLOURS[status]["bg"] if status else "#0f172a"
    return (
        f'<div class="tile"><div class="tile-value" style="color:{colour}">{value}</div>'
        f'<div class="tile-label">{_esc(label)}</div></div>'
    )


def _outcome_rows(outcomes: list[RemediationOutcome]) -> str:
    rows = []
    for o in outcomes:
        rows.append(
            "<tr>"
            f"<td>{_status_badge(o.status)}</td>"
            f"<td>{_esc(o.display_name)}</td>"
            f"<td><code>{_esc(o.old_upn)}</code></td>"
            f"<td><code>{_esc(o.new_upn)}</code></td>"
            f"<td class=\"num\">{o.proxies_removed}</td>"
            f"<td>{_esc(', '.join(o.changed_attributes))}</td>"
            f"<td>{_esc(o.reason)}</td>"
            "</tr>"
        )
    return "\n".join(rows)


def _usage_section(usage: Optional[DomainUsage]) -> str:
    if usage is None:
        return ""
    return f"""
  <section class="report-section">
    <h2>Domain usage before run</h2>
    <table>
      <thead><tr><th>Attribute</th><th>Identities</th></tr></thead>
      <tbody>
        <tr><td>userPrincipalName</td><td class="num">{usage.upn}</td></tr>
        <tr><td>mail</td><td class="num">{usage.mail}</td></tr>
        <tr><td>proxyAddresses</td><td class="num">{usage.proxy_identities} ({usage.proxy_entries} entries)</td></tr>
        <tr><th>Any attribute</th><th class="num">{usage.identities}</th></tr>
      </tbody>
    </table>
  </section>"""


def _render_html(
    summary: RunSummary,
    usage: Optional[DomainUsage],
    run_id: str,
    run_info: dict[str, Any],
    generated_at: str,
) -> str:
    ordered = sorted(summary.outcomes, key=lambda o: _STATUS_ORDER.index(o.status))
    visible = [o for o in ordered if o.status is not OutcomeStatus.UNCHANGED]
    unchanged = [o for o in ordered if o.status is OutcomeStatus.UNCHANGED]
    mode = "DRY RUN" if run_info.get("dry_run") else "REMEDIATION"

    tiles = "".join([
        _tile("Processed", summary.total),
        _tile("Succeeded", summary.succeeded, OutcomeStatus.SUCCESS),
        _tile("Planned", summary.planned, OutcomeStatus.PLANNED),
        _tile("Unchanged", summary.unchanged, OutcomeStatus.UNCHANGED),
        _tile("Conflicts", summary.skipped, OutcomeStatus.SKIPPED_CONFLICT),
        _tile("Failed", summary.failed, OutcomeStatus.FAILED),
    ])

    header_cells = (
        "<th>Status</th><th>Display Name</th><th>Old UPN</th><th>New UPN</th>"
        "<th>Proxies Removed</th><th>Attributes</th><th>Reason</th>"
    )

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Domain Remediation — {_esc(run_info.get("source_domain"))}</title>
<style>
*, *::before, *::after {{ box-sizing: border-box; margin: 0; padding: 0; }}
body {{
  font-family: "Segoe UI", -apple-system, BlinkMacSystemFont, Roboto, "Helvetica Neue", sans-serif;
  background: #f8fafc; color: #1e293b; line-height: 1.55; font-size: 15px;
}}
.page {{ max-width: 1200px; margin: 0 auto; padding: 2rem 1.5rem; }}
.report-header {{
  background: linear-gradient(135deg, #0f172a 0%, #1e3a5f 100%);
  color: #f1f5f9; padding: 2rem 2.5rem; border-radius: 12px; margin-bottom: 2rem;
}}
.report-header h1 {{ font-size: 1.6rem; margin-bottom: .3rem; }}
.report-header .meta {{ font-size: .8rem; opacity: .75; line-height: 1.7; }}
.tiles {{ display: flex; gap: 1rem; flex-wrap: wrap; margin-bottom: 2rem; }}
.tile {{ flex: 1 1 140px; background: #fff; border-radius: 10px; padding: 1rem 1.2rem;
  box-shadow: 0 1px 3px rgba(0,0,0,.08); }}
.tile-value {{ font-size: 1.8rem; font-weight: 800; }}
.tile-label {{ font-size: .8rem; color: #64748b; text-transform: uppercase; }}
.report-section {{ background: #fff; border-radius: 12px; padding: 1.5rem;
  box-shadow: 0 1px 3px rgba(0,0,0,.08); margin-bottom: 2rem; }}
.report-section h2 {{ font-size: 1.15rem; margin-bottom: 1rem; }}
table {{ width: 100%; border-collapse: collapse; font-size: .85rem; }}
th, td {{ text-align: left; padding: .5rem .6rem; border-bottom: 1px solid #e2e8f0; vertical-align: top; }}
th {{ background: #f1f5f9; font-weight: 600; }}
td.num, th.num {{ text-align: right; }}
code {{ font-size: .8rem; }}
.badge {{ display: inline-block; padding: .1rem .5rem; border-radius: 999px; font-size: .72rem; font-weight: 700; }}
.footer {{ text-align: center; font-size: .75rem; color: #94a3b8; }}
</style>
</head>
<body>
<div class="page">

  <div class="report-header">
    <h1>Domain Remediation Report</h1>
    <div class="meta">
      Tenant: {_esc(run_info.get("tenant", "Unknown Tenant"))}<br>
      Source domain: <code>{_esc(run_info.get("source_domain"))}</code> &rarr;
      fallback <code>{_esc(run_info.get("fallback_domain"))}</code><br>
      Mode: {mode} &middot; Run ID: {_esc(run_id)} &middot; {_esc(generated_at)}
    </div>
  </div>

  <div class="tiles">{tiles}</div>
{_usage_section(usage)}

  <section class="report-section">
    <h2>Identities ({len(visible)})</h2>
    <table>
      <thead><tr>{header_cells}</tr></thead>
      <tbody>
        {_outcome_rows(visible)}
      </tbody>
    </table>
  </section>

  <section class="report-section">
    <details>
      <summary>Unchanged identities ({len(unchanged)})</summary>
      <table>
        <thead><tr>{header_cells}</tr></thead>
        <tbody>{_outcome_rows(unchanged)}</tbody>
      </table>
    </details>
  </section>

  <div class="footer">
    M365 Domain Remediation &middot; {mode} &middot; {_esc(generated_at)}
  </div>

</div>
</body>
</html>"""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def export_html(
    summary: RunSummary,
    usage: Optional[DomainUsage],
    output_dir: Path,
    run_id: str,
    run_info: dict[str, Any],
) -> Path:
    """
    Generate a self-contained HTML run report.

    Returns the Path to the written file.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    generated_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    content = _render_html(summary, usage, run_id, run_info, generated_at)

    filepath = output_dir / f"remediation_report_{run_id}.html"
    filepath.write_text(content, encoding="utf-8")
    return filepath
