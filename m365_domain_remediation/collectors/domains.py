"""
Domain Collector
Reads tenant domains so the source/fallback pair can be checked before any
identity is touched.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..remediation.engine import InvalidConfiguration, normalize_domain
from .base import BaseCollector, CollectorResult

logger = logging.getLogger("m365_domain_remediation.collectors.domains")


class DomainCollector(BaseCollector):
    name = "domains"
    description = "Tenant domains and their verification status"

    async def collect(self, result: CollectorResult):
        domains = await self.safe_get_all("domains", result)
        result.add_data("domains", [
            {
                "id": d.get("id"),
                "isDefault": bool(d.get("isDefault")),
                "isInitial": bool(d.get("isInitial")),
                "isVerified": bool(d.get("isVerified")),
                "authenticationType": d.get("authenticationType"),
            }
            for d in domains
        ])


def resolve_fallback_domain(
    domains: list[dict],
    source_domain: str,
    fallback_domain: Optional[str] = None,
) -> str:
    """
    Check the domain pair against the tenant and return the fallback domain.

    With no fallback given, the tenant's initial onmicrosoft.com domain is
    used. Raises InvalidConfiguration on any mismatch.
    """
    by_name = {normalize_domain(d.get("id")): d for d in domains if d.get("id")}
    source = normalize_domain(source_domain)
    fallback = normalize_domain(fallback_domain)

    if not source:
        raise InvalidConfiguration("Source domain must not be empty.")
    if source not in by_name:
        logger.warning(f"Source domain {source} is not registered in the tenant")
    elif by_name[source].get("isInitial"):
        raise InvalidConfiguration(
            f"{source} is the tenant's initial domain and cannot be removed."
        )

    if not fallback:
        initial = [name for name, d in by_name.items() if d.get("isInitial")]
        if not initial:
            raise InvalidConfiguration(
                "No fallback domain given and the tenant reports no initial domain."
            )
        fallback = initial[0]
        logger.info(f"Using initial domain {fallback} as fallback")

    domain = by_name.get(fallback)
    if domain is None:
        raise InvalidConfiguration(f"Fallback domain {fallback} is not registered in the tenant.")
    if not domain.get("isVerified"):
        raise InvalidConfiguration(f"Fallback domain {fallback} is not verified.")
    if fallback == source:
        raise InvalidConfiguration(
            f"Fallback domain must differ from the source domain ({source})."
        )
    return fallback
