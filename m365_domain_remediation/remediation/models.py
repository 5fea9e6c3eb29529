"""
Remediation data models — identities, plans, outcomes and run summaries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


def split_address(address: str) -> tuple[str, str]:
    """Split `local@domain` on the last '@'. Domain is '' when absent."""
    local, sep, domain = (address or "").rpartition("@")
    if not sep:
        return address or "", ""
    return local, domain


def domain_of(address: Optional[str]) -> str:
    """Lower-cased domain part of an address, or '' if there is none."""
    if not address:
        return ""
    return split_address(address)[1].strip().lower()


@dataclass(frozen=True)
class Identity:
    """A directory user as read from Microsoft Graph."""
    id: str
    display_name: str
    user_principal_name: str
    mail: Optional[str] = None
    proxy_addresses: tuple[str, ...] = ()

    @classmethod
    def from_graph(cls, user: dict[str, Any]) -> "Identity":
        return cls(
            id=user.get("id") or "",
            display_name=user.get("displayName") or "",
            user_principal_name=user.get("userPrincipalName") or "",
            mail=user.get("mail") or None,
            proxy_addresses=tuple(user.get("proxyAddresses") or ()),
        )

    @property
    def local_part(self) -> str:
        return split_address(self.user_principal_name)[0]

    @property
    def upn_domain(self) -> str:
        return domain_of(self.user_principal_name)


@dataclass(frozen=True)
class AttributeEdits:
    """
    Attribute values to write for one identity.
    A field left as None is not touched.
    """
    user_principal_name: Optional[str] = None
    mail: Optional[str] = None
    proxy_addresses: Optional[tuple[str, ...]] = None

    @property
    def is_empty(self) -> bool:
        return (
            self.user_principal_name is None
            and self.mail is None
            and self.proxy_addresses is None
        )

    @property
    def changed_attributes(self) -> list[str]:
        names = []
        if self.user_principal_name is not None:
            names.append("userPrincipalName")
        if self.mail is not None:
            names.append("mail")
        if self.proxy_addresses is not None:
            names.append("proxyAddresses")
        return names

    def to_graph_patch(self) -> dict[str, Any]:
        """
        Request body for PATCH /users/{id}. proxyAddresses is read-only in
        Graph and goes to Exchange separately.
        """
        body: dict[str, Any] = {}
        if self.user_principal_name is not None:
            body["userPrincipalName"] = self.user_principal_name
        if self.mail is not None:
            body["mail"] = self.mail
        return body

    def directory_part(self) -> "AttributeEdits":
        return AttributeEdits(user_principal_name=self.user_principal_name, mail=self.mail)

    def apply_to(self, identity: Identity) -> Identity:
        """Return the identity as it would look after these edits."""
        return Identity(
            id=identity.id,
            display_name=identity.display_name,
            user_principal_name=(
                self.user_principal_name
                if self.user_principal_name is not None
                else identity.user_principal_name
            ),
            mail=self.mail if self.mail is not None else identity.mail,
            proxy_addresses=(
                self.proxy_addresses
                if self.proxy_addresses is not None
                else identity.proxy_addresses
            ),
        )


class OutcomeStatus(str, Enum):
    SUCCESS = "Success"
    SKIPPED_CONFLICT = "Skipped-Conflict"
    UNCHANGED = "Unchanged"
    FAILED = "Failed"
    PLANNED = "Planned"    # dry run: plan ready but not applied


@dataclass(frozen=True)
class RemediationPlan:
    """Edits computed for a single identity. Never persisted."""
    identity: Identity
    target_upn: str
    edits: AttributeEdits = field(default_factory=AttributeEdits)
    conflict: bool = False
    conflicting_id: Optional[str] = None
    proxies_removed: int = 0

    @property
    def status(self) -> OutcomeStatus:
        if self.conflict:
            return OutcomeStatus.SKIPPED_CONFLICT
        if self.edits.is_empty:
            return OutcomeStatus.UNCHANGED
        return OutcomeStatus.SUCCESS

    def to_outcome(
        self,
        status: Optional[OutcomeStatus] = None,
        reason: str = "",
        applied: Optional[AttributeEdits] = None,
    ) -> "RemediationOutcome":
        """
        Export record for this plan. A Failed outcome reports only what was
        actually written (`applied`, nothing by default), so its row matches
        the tenant.
        """
        status = status or self.status
        if not reason and self.conflict:
            reason = f"{self.target_upn} is already assigned to {self.conflicting_id}"
        written = self.edits
        if status is OutcomeStatus.FAILED:
            written = applied or AttributeEdits()
        return RemediationOutcome(
            identity_id=self.identity.id,
            display_name=self.identity.display_name,
            old_upn=self.identity.user_principal_name,
            new_upn=written.user_principal_name or self.identity.user_principal_name,
            proxies_removed=self.proxies_removed if written.proxy_addresses is not None else 0,
            status=status,
            changed_attributes=tuple(written.changed_attributes),
            reason=reason,
        )


@dataclass(frozen=True)
class RemediationOutcome:
    """Per-identity result record, one export row."""
    identity_id: str
    display_name: str
    old_upn: str
    new_upn: str
    proxies_removed: int
    status: OutcomeStatus
    changed_attributes: tuple[str, ...] = ()
    reason: str = ""

    def to_row(self) -> dict[str, Any]:
        return {
            "DisplayName": self.display_name,
            "OldUPN": self.old_upn,
            "NewUPN": self.new_upn,
            "ProxiesRemoved": self.proxies_removed,
            "Status": self.status.value,
            "Id": self.identity_id,
            "ChangedAttributes": ";".join(self.changed_attributes),
            "Reason": self.reason,
        }


@dataclass(frozen=True)
class RunSummary:
    """Counts for a run plus the literal outcome records."""
    total: int = 0
    succeeded: int = 0
    skipped: int = 0
    unchanged: int = 0
    failed: int = 0
    planned: int = 0
    outcomes: tuple[RemediationOutcome, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "planned": self.planned,
        }
