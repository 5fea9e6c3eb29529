"""
Domain Remediation Engine — decides, per identity, how to strip a retired
domain from userPrincipalName, mail and proxyAddresses.

Planning is pure: the engine reads the identity and a UPN lookup capability,
and returns a RemediationPlan. Applying the plan is the caller's job.

Decision model:
  - UPN at the source domain  -> move to <local>@<fallback>, unless another
    identity already owns that UPN (Skipped-Conflict, no edits at all).
  - mail at the source domain -> follow the new primary SMTP address.
  - any proxy at the source domain, or a UPN move -> rebuild proxyAddresses
    so that exactly one SMTP: primary remains. Identities without proxy
    addresses (no mailbox) never get one invented.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from .models import (
    AttributeEdits,
    Identity,
    OutcomeStatus,
    RemediationOutcome,
    RemediationPlan,
    RunSummary,
    domain_of,
)
from .proxy_addresses import ProxyKind, parse_all, rebuild_proxy_addresses

logger = logging.getLogger("m365_domain_remediation.remediation")

DirectoryLookup = Callable[[str], Optional[Identity]]

_ONMICROSOFT_SUFFIX = ".onmicrosoft.com"
_MAIL_ONMICROSOFT_SUFFIX = ".mail.onmicrosoft.com"


class RemediationError(Exception):
    """Base class for remediation errors."""
    pass


class InvalidConfiguration(RemediationError):
    """Raised when the domain pair cannot be used. Fatal for the run."""
    pass


def normalize_domain(domain: Optional[str]) -> str:
    return (domain or "").strip().lstrip("@").strip().lower()


@dataclass(frozen=True)
class RemediationPolicy:
    """Validated settings for one remediation run."""
    source_domain: str
    fallback_domain: str
    ensure_lowercase_alias: bool = False
    alias_domain: Optional[str] = None

    def __post_init__(self):
        source = normalize_domain(self.source_domain)
        fallback = normalize_domain(self.fallback_domain)
        if not source:
            raise InvalidConfiguration("Source domain must not be empty.")
        if not fallback:
            raise InvalidConfiguration("Fallback domain must not be empty.")
        if "@" in source or "@" in fallback:
            raise InvalidConfiguration(
                f"Domains must not contain '@': {self.source_domain!r}, {self.fallback_domain!r}"
            )
        if source == fallback:
            raise InvalidConfiguration(
                f"Fallback domain must differ from the source domain ({source})."
            )
        object.__setattr__(self, "source_domain", source)
        object.__setattr__(self, "fallback_domain", fallback)
        object.__setattr__(
            self, "alias_domain", normalize_domain(self.alias_domain) or None
        )

    def resolved_alias_domain(self) -> Optional[str]:
        """
        Domain used for the lowercase smtp: alias.
        Defaults to <tenant>.mail.onmicrosoft.com for an onmicrosoft fallback.
        """
        if self.alias_domain:
            return self.alias_domain
        fallback = self.fallback_domain
        if fallback.endswith(_ONMICROSOFT_SUFFIX) and not fallback.endswith(
            _MAIL_ONMICROSOFT_SUFFIX
        ):
            return fallback[: -len(_ONMICROSOFT_SUFFIX)] + _MAIL_ONMICROSOFT_SUFFIX
        return None


class DomainRemediationEngine:
    """Plans domain removal for identities under a fixed policy."""

    def __init__(self, policy: RemediationPolicy):
        self.policy = policy

    def target_upn(self, identity: Identity) -> str:
        return f"{identity.local_part}@{self.policy.fallback_domain}"

    def needs_upn_move(self, identity: Identity) -> bool:
        return identity.upn_domain == self.policy.source_domain

    def plan(
        self,
        identity: Identity,
        directory_lookup: DirectoryLookup,
    ) -> RemediationPlan:
        source = self.policy.source_domain
        target_upn = self.target_upn(identity)
        upn_edit = self.needs_upn_move(identity)

        if upn_edit:
            holder = directory_lookup(target_upn)
            if holder is not None and holder.id != identity.id:
                logger.warning(
                    f"Conflict: {target_upn} already belongs to {holder.id}; "
                    f"skipping {identity.user_principal_name}"
                )
                return RemediationPlan(
                    identity=identity,
                    target_upn=target_upn,
                    conflict=True,
                    conflicting_id=holder.id,
                )

        current = parse_all(identity.proxy_addresses)
        new_proxies = None
        new_primary = target_upn
        removed = 0

        # No proxies means no mailbox: there is no address list to maintain
        if current and (upn_edit or any(p.domain == source for p in current)):
            alias = None
            if self.policy.ensure_lowercase_alias:
                alias_domain = self.policy.resolved_alias_domain()
                if alias_domain:
                    alias = f"{identity.local_part}@{alias_domain}"
            rebuild = rebuild_proxy_addresses(
                current,
                source_domain=source,
                target_upn=target_upn,
                force_primary=upn_edit,
                lowercase_alias=alias,
            )
            removed = rebuild.removed
            rendered = rebuild.rendered()
            if rendered != tuple(identity.proxy_addresses):
                new_proxies = rendered
            new_primary = next(
                p.address for p in rebuild.addresses if p.kind is ProxyKind.PRIMARY
            )

        mail_edit = domain_of(identity.mail) == source

        edits = AttributeEdits(
            user_principal_name=target_upn if upn_edit else None,
            mail=new_primary if mail_edit else None,
            proxy_addresses=new_proxies,
        )
        return RemediationPlan(
            identity=identity,
            target_upn=target_upn,
            edits=edits,
            proxies_removed=removed,
        )


def plan_remediation(
    identity: Identity,
    source_domain: str,
    fallback_domain: str,
    directory_lookup: DirectoryLookup,
    ensure_lowercase_alias: bool = False,
    alias_domain: Optional[str] = None,
) -> RemediationPlan:
    """Plan one identity. Raises InvalidConfiguration for a bad domain pair."""
    policy = RemediationPolicy(
        source_domain=source_domain,
        fallback_domain=fallback_domain,
        ensure_lowercase_alias=ensure_lowercase_alias,
        alias_domain=alias_domain,
    )
    return DomainRemediationEngine(policy).plan(identity, directory_lookup)


def aggregate_run(outcomes: Iterable[RemediationOutcome]) -> RunSummary:
    """Fold per-identity outcomes into run counts."""
    records = tuple(outcomes)
    counts = Counter(o.status for o in records)
    return RunSummary(
        total=len(records),
        succeeded=counts[OutcomeStatus.SUCCESS],
        skipped=counts[OutcomeStatus.SKIPPED_CONFLICT],
        unchanged=counts[OutcomeStatus.UNCHANGED],
        failed=counts[OutcomeStatus.FAILED],
        planned=counts[OutcomeStatus.PLANNED],
        outcomes=records,
    )
