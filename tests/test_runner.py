import asyncio

from m365_domain_remediation.remediation import (
    DomainRemediationEngine,
    OutcomeStatus,
    RemediationOutcome,
    RemediationPolicy,
    RemediationRunner,
    aggregate_run,
    static_lookup,
)

from conftest import FakeDirectory, make_identity

POLICY = RemediationPolicy("contoso.com", "contoso.onmicrosoft.com")


def _outcome(status):
    return RemediationOutcome(
        identity_id="x", display_name="X", old_upn="x@contoso.com",
        new_upn="x@contoso.onmicrosoft.com", proxies_removed=0, status=status,
    )


def test_aggregate_counts_each_status():
    outcomes = [
        _outcome(OutcomeStatus.SUCCESS),
        _outcome(OutcomeStatus.SUCCESS),
        _outcome(OutcomeStatus.SKIPPED_CONFLICT),
        _outcome(OutcomeStatus.UNCHANGED),
        _outcome(OutcomeStatus.FAILED),
    ]
    summary = aggregate_run(outcomes)
    assert summary.to_dict() == {
        "total": 5, "succeeded": 2, "skipped": 1,
        "unchanged": 1, "failed": 1, "planned": 0,
    }
    assert list(summary.outcomes) == outcomes


def test_aggregate_of_nothing():
    assert aggregate_run([]).total == 0


def test_static_lookup_ignores_case():
    carol = make_identity("carol@contoso.com")
    lookup = static_lookup({"Carol@Contoso.com": carol})
    assert lookup("carol@contoso.com") is carol
    assert lookup("dave@contoso.com") is None


def run(runner, identities):
    return asyncio.run(runner.run(identities))


def test_run_applies_plans_and_records_outcomes():
    alice = make_identity("alice@contoso.com", mail="alice@contoso.com",
                          proxies=("SMTP:alice@contoso.com",))
    dave = make_identity("dave@contoso.onmicrosoft.com",
                         proxies=("SMTP:dave@contoso.onmicrosoft.com",))
    directory = FakeDirectory([alice, dave])

    summary = run(RemediationRunner(DomainRemediationEngine(POLICY), directory, directory), [alice, dave])

    assert summary.succeeded == 1
    assert summary.unchanged == 1
    assert [uid for uid, _ in directory.updates] == [alice.id]
    assert directory.updates[0][1].to_graph_patch() == {
        "userPrincipalName": "alice@contoso.onmicrosoft.com",
        "mail": "alice@contoso.onmicrosoft.com",
    }
    assert directory.mailbox_updates == [(alice.id, ("SMTP:alice@contoso.onmicrosoft.com",))]
    row = summary.outcomes[0].to_row()
    assert row["OldUPN"] == "alice@contoso.com"
    assert row["NewUPN"] == "alice@contoso.onmicrosoft.com"
    assert row["Status"] == "Success"


def test_second_run_changes_nothing():
    alice = make_identity("alice@contoso.com", proxies=("SMTP:alice@contoso.com",))
    directory = FakeDirectory([alice])
    runner = RemediationRunner(DomainRemediationEngine(POLICY), directory, directory)

    run(runner, [alice])
    summary = run(runner, list(directory.users.values()))

    assert summary.unchanged == 1
    assert len(directory.updates) == 1
    assert len(directory.mailbox_updates) == 1


def test_failure_is_recorded_and_run_continues():
    a = make_identity("a@contoso.com", id="a-id")
    b = make_identity("b@contoso.com", id="b-id")
    directory = FakeDirectory([a, b], fail_for={"a-id"})

    summary = run(RemediationRunner(DomainRemediationEngine(POLICY), directory), [a, b])

    assert summary.failed == 1
    assert summary.succeeded == 1
    failed = summary.outcomes[0]
    assert failed.status is OutcomeStatus.FAILED
    assert "Insufficient privileges" in failed.reason
    # nothing was written, so the row shows the UPN the tenant still has
    assert failed.to_row()["NewUPN"] == "a@contoso.com"
    assert failed.changed_attributes == ()


def test_two_identities_racing_for_one_upn():
    # Both map to jo@contoso.onmicrosoft.com; only the first one may take it
    first = make_identity("jo@contoso.com", id="jo-1")
    second = make_identity("JO@Contoso.com", id="jo-2")
    directory = FakeDirectory([first, second])

    summary = run(RemediationRunner(DomainRemediationEngine(POLICY), directory), [first, second])

    assert [o.status for o in summary.outcomes] == [
        OutcomeStatus.SUCCESS,
        OutcomeStatus.SKIPPED_CONFLICT,
    ]


def test_dry_run_never_writes():
    alice = make_identity("alice@contoso.com", proxies=("SMTP:alice@contoso.com",))
    directory = FakeDirectory([alice])

    summary = run(
        RemediationRunner(DomainRemediationEngine(POLICY), directory, dry_run=True),
        [alice],
    )

    assert directory.updates == []
    assert summary.planned == 1
    assert summary.outcomes[0].status is OutcomeStatus.PLANNED


def test_lookup_failure_becomes_failed_outcome():
    class BrokenDirectory(FakeDirectory):
        async def find_user_by_upn(self, upn):
            raise ConnectionError("connection reset")

    alice = make_identity("alice@contoso.com")
    summary = run(RemediationRunner(DomainRemediationEngine(POLICY), BrokenDirectory([alice])), [alice])

    assert summary.failed == 1
    assert "connection reset" in summary.outcomes[0].reason


def test_rejected_proxy_write_keeps_the_upn_move():
    alice = make_identity("alice@contoso.com", mail="alice@contoso.com",
                          proxies=("SMTP:alice@contoso.com", "smtp:alice@alt.com"))
    directory = FakeDirectory([alice], mailbox_fail_for={alice.id})
    runner = RemediationRunner(DomainRemediationEngine(POLICY), directory, directory)

    summary = run(runner, [alice])

    outcome = summary.outcomes[0]
    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.reason.startswith(
        "proxyAddresses not updated (userPrincipalName, mail already written)"
    )
    row = outcome.to_row()
    assert row["NewUPN"] == "alice@contoso.onmicrosoft.com"
    assert row["ProxiesRemoved"] == 0
    assert row["ChangedAttributes"] == "userPrincipalName;mail"
    assert directory.users[alice.id].user_principal_name == "alice@contoso.onmicrosoft.com"

    # the next run only has the proxy edit left
    directory.mailbox_fail_for.clear()
    retry = run(runner, list(directory.users.values()))
    assert retry.succeeded == 1
    assert retry.outcomes[0].changed_attributes == ("proxyAddresses",)
    assert directory.users[alice.id].proxy_addresses == (
        "SMTP:alice@contoso.onmicrosoft.com",
        "smtp:alice@alt.com",
    )


def test_identity_without_proxies_never_touches_mailboxes():
    nora = make_identity("nora@contoso.com", mail="nora@contoso.com")
    directory = FakeDirectory([nora])

    summary = run(RemediationRunner(DomainRemediationEngine(POLICY), directory, directory), [nora])

    assert summary.succeeded == 1
    assert directory.mailbox_updates == []


def test_proxy_edit_without_mailbox_service_fails():
    erin = make_identity("erin@alt.com", proxies=("SMTP:erin@alt.com", "smtp:erin@contoso.com"))
    directory = FakeDirectory([erin])

    summary = run(RemediationRunner(DomainRemediationEngine(POLICY), directory), [erin])

    assert summary.failed == 1
    assert "no mailbox service connected" in summary.outcomes[0].reason
    assert directory.updates == []
