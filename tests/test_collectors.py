import asyncio

import httpx
import pytest

from m365_domain_remediation.collectors import (
    DomainCollector,
    IdentityCollector,
    domain_filter,
    resolve_fallback_domain,
)
from m365_domain_remediation.graph.client import GraphClient
from m365_domain_remediation.remediation import InvalidConfiguration, measure_domain_usage
from m365_domain_remediation.safety.guardian import WriteGuardian

from conftest import make_identity

TENANT_DOMAINS = [
    {"id": "contoso.onmicrosoft.com", "isInitial": True, "isVerified": True},
    {"id": "contoso.com", "isDefault": True, "isVerified": True},
    {"id": "fabrikam.com", "isVerified": False},
]


def collect(collector_factory, handler):
    async def _run():
        async with GraphClient("t", WriteGuardian(), transport=httpx.MockTransport(handler)) as client:
            return await collector_factory(client).execute()
    return asyncio.run(_run())


def test_domain_filter_covers_all_attributes():
    f = domain_filter("contoso.com")
    assert "endswith(userPrincipalName,'@contoso.com')" in f
    assert "endswith(mail,'@contoso.com')" in f
    assert "proxyAddresses/any(p:endswith(p,'@contoso.com'))" in f


def test_identity_collector_queries_with_advanced_filter():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"value": [
            {"id": "1", "displayName": "Alice", "userPrincipalName": "alice@contoso.com",
             "mail": "alice@contoso.com", "proxyAddresses": ["SMTP:alice@contoso.com"]},
            {"id": "1", "displayName": "Alice", "userPrincipalName": "alice@contoso.com"},
            {"id": "2", "displayName": "Bob", "userPrincipalName": "bob@alt.com",
             "mail": None, "proxyAddresses": ["smtp:bob@contoso.com"]},
        ]})

    result = collect(lambda c: IdentityCollector(c, "contoso.com"), handler)

    params = seen[0].url.params
    assert params["$count"] == "true"
    assert params["$filter"] == domain_filter("contoso.com")
    identities = IdentityCollector.identities(result)
    assert [i.id for i in identities] == ["1", "2"]
    assert identities[1].mail is None
    assert result.metadata["warnings"]


def test_identity_collector_records_permission_error():
    def handler(request):
        return httpx.Response(403, json={"error": {"message": "Authorization_RequestDenied"}})

    result = collect(lambda c: IdentityCollector(c, "contoso.com"), handler)
    assert not result.ok
    assert IdentityCollector.identities(result) == []


def test_domain_collector():
    def handler(request):
        return httpx.Response(200, json={"value": TENANT_DOMAINS})

    result = collect(DomainCollector, handler)
    assert len(result.data["domains"]) == 3
    assert result.data["domains"][0]["isInitial"] is True


def test_fallback_defaults_to_initial_domain():
    assert resolve_fallback_domain(TENANT_DOMAINS, "contoso.com") == "contoso.onmicrosoft.com"


def test_explicit_fallback_is_normalized():
    domains = TENANT_DOMAINS + [{"id": "alt.com", "isVerified": True}]
    assert resolve_fallback_domain(domains, "contoso.com", "@ALT.com") == "alt.com"


@pytest.mark.parametrize("source,fallback", [
    ("contoso.onmicrosoft.com", None),       # initial domain cannot be removed
    ("contoso.com", "fabrikam.com"),         # unverified
    ("contoso.com", "northwind.com"),        # not in tenant
    ("contoso.com", "contoso.com"),
    ("", None),
])
def test_preflight_rejections(source, fallback):
    with pytest.raises(InvalidConfiguration):
        resolve_fallback_domain(TENANT_DOMAINS, source, fallback)


def test_domain_usage_counts():
    identities = [
        make_identity("a@contoso.com", mail="a@contoso.com",
                      proxies=("SMTP:a@contoso.com", "smtp:a2@contoso.com")),
        make_identity("b@alt.com", proxies=("SIP:b@Contoso.com",)),
        make_identity("c@alt.com", mail="c@alt.com"),
    ]
    usage = measure_domain_usage(identities, "@contoso.com")
    assert usage.identities == 2
    assert usage.upn == 1
    assert usage.mail == 1
    assert usage.proxy_identities == 2
    assert usage.proxy_entries == 3
