import pytest

from m365_domain_remediation.safety.guardian import SafetyViolation, WriteGuardian

USER_URL = "https://graph.microsoft.com/v1.0/users/6d1f-4a2b"


def test_reads_always_allowed():
    guardian = WriteGuardian(dry_run=True)
    assert guardian.validate_request("GET", "https://graph.microsoft.com/v1.0/users")
    assert guardian.checks_performed == 1


def test_patch_of_address_attributes_allowed_and_audited():
    guardian = WriteGuardian()
    body = {"userPrincipalName": "a@contoso.onmicrosoft.com", "mail": "a@contoso.onmicrosoft.com"}
    assert guardian.validate_request("PATCH", USER_URL, body)
    record = guardian.get_audit_record()["write_guardian"]
    assert record["writes_allowed"] == 1
    assert record["writes"][0]["fields"] == ["mail", "userPrincipalName"]
    assert record["status"] == "CLEAN"


def test_dry_run_blocks_every_write():
    guardian = WriteGuardian(dry_run=True)
    with pytest.raises(SafetyViolation):
        guardian.validate_request("PATCH", USER_URL, {"mail": "a@contoso.onmicrosoft.com"})
    assert guardian.get_audit_record()["write_guardian"]["status"] == "VIOLATIONS_DETECTED"


@pytest.mark.parametrize("body", [
    {"accountEnabled": False},
    {"proxyAddresses": ["SMTP:a@contoso.onmicrosoft.com"]},
    {"mail": "a@b.com", "passwordProfile": {}},
    {},
])
def test_patch_outside_allowed_attributes_blocked(body):
    with pytest.raises(SafetyViolation):
        WriteGuardian().validate_request("PATCH", USER_URL, body)


@pytest.mark.parametrize("method,url", [
    ("DELETE", USER_URL),
    ("POST", "https://graph.microsoft.com/v1.0/users"),
    ("PATCH", "https://graph.microsoft.com/v1.0/groups/abc"),
    ("PATCH", USER_URL + "/manager"),
])
def test_other_writes_blocked(method, url):
    with pytest.raises(SafetyViolation):
        WriteGuardian().validate_request(method, url, {"mail": "x@y.com"})


EXCHANGE_URL = "https://outlook.office365.com/adminapi/beta/contoso-tenant/InvokeCommand"


def _command(cmdlet, **parameters):
    return {"CmdletInput": {"CmdletName": cmdlet, "Parameters": parameters}}


def test_set_mailbox_email_addresses_allowed():
    guardian = WriteGuardian()
    body = _command("Set-Mailbox", Identity="alice-id", EmailAddresses=["SMTP:a@contoso.onmicrosoft.com"])
    assert guardian.validate_request("POST", EXCHANGE_URL, body)
    assert guardian.get_audit_record()["write_guardian"]["writes"][0]["fields"] == [
        "Set-Mailbox -EmailAddresses"
    ]


@pytest.mark.parametrize("url,body", [
    (EXCHANGE_URL, _command("Remove-Mailbox", Identity="alice-id")),
    (EXCHANGE_URL, _command("Set-Mailbox", Identity="alice-id", EmailAddresses=[], HiddenFromAddressListsEnabled=True)),
    (EXCHANGE_URL, _command("Set-Mailbox", Identity="alice-id")),
    (EXCHANGE_URL, {}),
    ("https://outlook.office365.com/adminapi/beta/contoso-tenant/Mailbox", _command("Set-Mailbox", Identity="a", EmailAddresses=[])),
])
def test_other_exchange_commands_blocked(url, body):
    with pytest.raises(SafetyViolation):
        WriteGuardian().validate_request("POST", url, body)
