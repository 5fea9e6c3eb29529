import csv
import json

from m365_domain_remediation.remediation import OutcomeStatus, RemediationOutcome, aggregate_run
from m365_domain_remediation.remediation.usage import DomainUsage
from m365_domain_remediation.reporting import export_csv, export_html, export_json, export_markdown

RUN_INFO = {
    "tenant": "Contoso <Prod>",
    "source_domain": "contoso.com",
    "fallback_domain": "contoso.onmicrosoft.com",
    "dry_run": False,
}


def _summary():
    return aggregate_run([
        RemediationOutcome("1", "Alice", "alice@contoso.com", "alice@contoso.onmicrosoft.com",
                           1, OutcomeStatus.SUCCESS, ("userPrincipalName", "proxyAddresses")),
        RemediationOutcome("2", "Bob | Ops", "bob@contoso.com", "bob@contoso.com",
                           0, OutcomeStatus.SKIPPED_CONFLICT, (), "bob@contoso.onmicrosoft.com is taken"),
        RemediationOutcome("3", "Dave", "dave@alt.com", "dave@alt.com", 0, OutcomeStatus.UNCHANGED),
        RemediationOutcome("4", "Erin <script>", "erin@contoso.com", "erin@contoso.com",
                           0, OutcomeStatus.FAILED, (), "403 Forbidden"),
    ])


USAGE = DomainUsage("contoso.com", identities=3, upn=3, mail=1, proxy_identities=2, proxy_entries=2)


def test_csv_rows_match_export_shape(tmp_path):
    outcomes_path, summary_path = export_csv(_summary(), tmp_path, "run1")

    with open(outcomes_path, encoding="utf-8-sig", newline="") as fh:
        rows = list(csv.DictReader(fh))
    assert list(rows[0])[:5] == ["DisplayName", "OldUPN", "NewUPN", "ProxiesRemoved", "Status"]
    assert rows[0]["NewUPN"] == "alice@contoso.onmicrosoft.com"
    assert rows[0]["ChangedAttributes"] == "userPrincipalName;proxyAddresses"
    assert [r["Status"] for r in rows] == ["Success", "Skipped-Conflict", "Unchanged", "Failed"]

    with open(summary_path, encoding="utf-8-sig", newline="") as fh:
        metrics = dict(csv.reader(fh))
    assert metrics["total"] == "4"
    assert metrics["failed"] == "1"


def test_json_export(tmp_path):
    audit = {"write_guardian": {"writes_allowed": 2}}
    path = export_json(_summary(), USAGE, tmp_path, "run1", RUN_INFO, audit)
    payload = json.loads(path.read_text(encoding="utf-8"))

    assert payload["metadata"]["run_id"] == "run1"
    assert payload["metadata"]["source_domain"] == "contoso.com"
    assert payload["summary"]["skipped"] == 1
    assert payload["domain_usage"]["proxyAddresses"]["entries"] == 2
    assert len(payload["outcomes"]) == 4
    assert payload["audit"] == audit
    assert "Exchange.ManageAsApp" in payload["metadata"]["required_permissions"]


def test_markdown_report(tmp_path):
    text = export_markdown(_summary(), USAGE, tmp_path, "run1", RUN_INFO).read_text(encoding="utf-8")

    assert "# M365 Domain Remediation Report" in text
    assert "| Failed | 1 |" in text
    assert "## Needs Attention" in text
    assert "Bob \\| Ops" in text
    assert "alice@contoso.onmicrosoft.com" in text


def test_markdown_report_without_changes(tmp_path):
    summary = aggregate_run([])
    text = export_markdown(summary, None, tmp_path, "run2", {**RUN_INFO, "dry_run": True}).read_text(encoding="utf-8")
    assert "DRY RUN" in text
    assert "_No identity required changes._" in text


def test_html_report_escapes_values(tmp_path):
    text = export_html(_summary(), USAGE, tmp_path, "run1", RUN_INFO).read_text(encoding="utf-8")

    assert text.startswith("<!DOCTYPE html>")
    assert "Contoso &lt;Prod&gt;" in text
    assert "Erin &lt;script&gt;" in text
    assert "<script>" not in text
    assert "Unchanged identities (1)" in text
