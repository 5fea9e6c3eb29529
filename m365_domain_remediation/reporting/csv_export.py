"""
CSV exporter — one row per identity, plus a run summary.
"""

from __future__ import annotations

import csv
from pathlib import Path

from ..remediation.models import RunSummary

OUTCOME_FIELDS = [
    "DisplayName", "OldUPN", "NewUPN", "ProxiesRemoved", "Status",
    "Id", "ChangedAttributes", "Reason",
]


def export_csv(
    summary: RunSummary,
    output_dir: Path,
    run_id: str,
) -> list[Path]:
    """
    Write the outcome rows and the summary counts.

    Returns:
        List of created CSV file paths.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    created = []

    outcomes_path = output_dir / f"remediation_outcomes_{run_id}.csv"
    with open(outcomes_path, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=OUTCOME_FIELDS)
        writer.writeheader()
        for outcome in summary.outcomes:
            writer.writerow(outcome.to_row())
    created.append(outcomes_path)

    summary_path = output_dir / f"remediation_summary_{run_id}.csv"
    with open(summary_path, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.writer(fh)
        writer.writerow(["metric", "value"])
        for metric, value in summary.to_dict().items():
            writer.writerow([metric, value])
    created.append(summary_path)

    return created
