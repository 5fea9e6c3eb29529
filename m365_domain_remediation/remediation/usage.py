"""
Domain usage audit — how many identities still reference a domain, and where.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .models import Identity, domain_of
from .proxy_addresses import parse_all


@dataclass(frozen=True)
class DomainUsage:
    domain: str
    identities: int = 0
    upn: int = 0
    mail: int = 0
    proxy_identities: int = 0
    proxy_entries: int = 0

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "identities": self.identities,
            "userPrincipalName": self.upn,
            "mail": self.mail,
            "proxyAddresses": {
                "identities": self.proxy_identities,
                "entries": self.proxy_entries,
            },
        }


def measure_domain_usage(identities: Iterable[Identity], domain: str) -> DomainUsage:
    domain = domain.strip().lstrip("@").lower()
    total = upn = mail = proxy_identities = proxy_entries = 0

    for identity in identities:
        in_upn = identity.upn_domain == domain
        in_mail = domain_of(identity.mail) == domain
        matches = sum(
            1 for p in parse_all(identity.proxy_addresses) if p.domain == domain
        )
        upn += in_upn
        mail += in_mail
        if matches:
            proxy_identities += 1
            proxy_entries += matches
        if in_upn or in_mail or matches:
            total += 1

    return DomainUsage(
        domain=domain,
        identities=total,
        upn=upn,
        mail=mail,
        proxy_identities=proxy_identities,
        proxy_entries=proxy_entries,
    )
