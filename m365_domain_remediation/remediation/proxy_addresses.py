"""
Proxy address parsing and rebuild.

Exchange stores aliases as `TAG:address`. The tag is case-sensitive:
`SMTP` marks the single primary address, `smtp` a secondary alias. Any other
tag (SIP, X500, SPO, ...) is carried through untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from .models import domain_of

PRIMARY_TAG = "SMTP"
ALIAS_TAG = "smtp"


class ProxyKind(Enum):
    PRIMARY = "primary"
    ALIAS = "alias"
    OTHER = "other"


@dataclass(frozen=True)
class ProxyAddress:
    kind: ProxyKind
    address: str
    tag: str = ""

    @classmethod
    def parse(cls, raw: str) -> "ProxyAddress":
        tag, sep, address = raw.partition(":")
        if not sep:
            return cls(ProxyKind.OTHER, raw, "")
        if tag == PRIMARY_TAG:
            return cls(ProxyKind.PRIMARY, address, PRIMARY_TAG)
        if tag == ALIAS_TAG:
            return cls(ProxyKind.ALIAS, address, ALIAS_TAG)
        return cls(ProxyKind.OTHER, address, tag)

    @classmethod
    def primary(cls, address: str) -> "ProxyAddress":
        return cls(ProxyKind.PRIMARY, address, PRIMARY_TAG)

    @classmethod
    def alias(cls, address: str) -> "ProxyAddress":
        return cls(ProxyKind.ALIAS, address, ALIAS_TAG)

    @property
    def domain(self) -> str:
        return domain_of(self.address)

    @property
    def is_smtp(self) -> bool:
        return self.kind in (ProxyKind.PRIMARY, ProxyKind.ALIAS)

    def same_address(self, address: str) -> bool:
        return self.address.lower() == address.lower()

    def __str__(self) -> str:
        if not self.tag:
            return self.address
        return f"{self.tag}:{self.address}"


@dataclass(frozen=True)
class ProxyRebuild:
    """Result of rebuilding one identity's proxy addresses."""
    addresses: tuple[ProxyAddress, ...]
    removed: int

    def rendered(self) -> tuple[str, ...]:
        return tuple(str(p) for p in self.addresses)


def parse_all(raw_addresses: Iterable[str]) -> list[ProxyAddress]:
    return [ProxyAddress.parse(raw) for raw in raw_addresses if raw]


def primary_count(addresses: Iterable[ProxyAddress]) -> int:
    return sum(1 for p in addresses if p.kind is ProxyKind.PRIMARY)


def rebuild_proxy_addresses(
    current: Iterable[ProxyAddress],
    source_domain: str,
    target_upn: str,
    force_primary: bool,
    lowercase_alias: Optional[str] = None,
) -> ProxyRebuild:
    """
    Drop every entry in `source_domain`, then make sure exactly one primary
    remains.

    When `force_primary` is set, or the removal did not leave exactly one
    primary, the primary becomes `SMTP:<target_upn>` and any other primary is discarded.
    `lowercase_alias`, if given, is appended as `smtp:` when the result has
    no secondary alias.
    """
    source_domain = source_domain.lower()
    survivors = []
    removed = 0
    for proxy in current:
        if proxy.domain == source_domain:
            removed += 1
            continue
        survivors.append(proxy)

    if force_primary or primary_count(survivors) != 1:
        target_primary = ProxyAddress.primary(target_upn)
        kept = [
            p for p in survivors
            if p.kind is not ProxyKind.PRIMARY
            and not (p.kind is ProxyKind.ALIAS and p.same_address(target_upn))
        ]
        addresses = [target_primary] + kept
    else:
        addresses = survivors

    if lowercase_alias and not any(
        p.kind is ProxyKind.ALIAS or p.same_address(lowercase_alias)
        for p in addresses
    ):
        addresses.append(ProxyAddress.alias(lowercase_alias))

    return ProxyRebuild(
        addresses=tuple(addresses),
        removed=removed,
    )
