"""
JSON exporter — full machine-readable record of a remediation run.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .. import __version__
from ..config import REQUIRED_PERMISSIONS
from ..remediation.models import RunSummary
from ..remediation.usage import DomainUsage


def export_json(
    summary: RunSummary,
    usage: Optional[DomainUsage],
    output_dir: Path,
    run_id: str,
    run_info: dict[str, Any],
    audit: Optional[dict] = None,
) -> Path:
    """
    Write the run summary, outcomes, domain usage and write audit.

    Returns:
        Path to the created JSON file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    payload = {
        "metadata": {
            "tool": "M365 Domain Remediation",
            "version": __version__,
            "run_id": run_id,
            "generated_utc": datetime.now(timezone.utc).isoformat(),
            **run_info,
            "required_permissions": sorted(REQUIRED_PERMISSIONS),
        },
        "summary": summary.to_dict(),
        "domain_usage": usage.to_dict() if usage else None,
        "outcomes": [o.to_row() for o in summary.outcomes],
        "audit": audit or {},
    }

    filepath = output_dir / f"domain_remediation_{run_id}.json"
    with open(filepath, "w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str, ensure_ascii=False)

    return filepath
