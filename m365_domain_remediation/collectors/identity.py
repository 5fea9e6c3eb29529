"""
Identity Collector
Enumerates users whose UPN, mail or proxyAddresses reference a domain.
"""

from __future__ import annotations

import logging

from ..config import USER_SELECT_FIELDS
from ..graph.directory import odata_quote
from ..remediation.models import Identity
from .base import BaseCollector, CollectorResult

logger = logging.getLogger("m365_domain_remediation.collectors.identity")


def domain_filter(domain: str) -> str:
    """Advanced-query $filter matching any identity attribute in `domain`."""
    suffix = odata_quote(f"@{domain}")
    return (
        f"endswith(userPrincipalName,{suffix}) "
        f"or endswith(mail,{suffix}) "
        f"or proxyAddresses/any(p:endswith(p,{suffix}))"
    )


class IdentityCollector(BaseCollector):
    name = "identity"
    description = "Users referencing the source domain in UPN, mail or proxyAddresses"

    def __init__(self, graph, source_domain: str):
        super().__init__(graph)
        self.source_domain = source_domain

    async def collect(self, result: CollectorResult):
        users = await self.safe_get_all(
            "users",
            result,
            params={
                "$filter": domain_filter(self.source_domain),
                "$select": USER_SELECT_FIELDS,
                "$count": "true",
            },
        )

        seen = set()
        unique = []
        for user in users:
            if not user.get("id") or user["id"] in seen:
                continue
            seen.add(user["id"])
            unique.append({
                "id": user.get("id"),
                "displayName": user.get("displayName"),
                "userPrincipalName": user.get("userPrincipalName"),
                "mail": user.get("mail"),
                "proxyAddresses": user.get("proxyAddresses", []),
            })

        if len(unique) != len(users):
            result.add_warning(f"Dropped {len(users) - len(unique)} duplicate users")
        result.add_data("users", unique)

    @staticmethod
    def identities(result: CollectorResult) -> list[Identity]:
        return [Identity.from_graph(u) for u in result.data.get("users", [])]
