"""
Remediation runner — walks identities one at a time: plan, apply, record.

The target UPN is looked up in the live directory right before each
identity is planned and applied, so two identities can never both be moved
onto the same fallback UPN. A failure on one identity is recorded and the
run moves on.

Applying is two writes: userPrincipalName and mail go to the directory,
then proxyAddresses go to the mailbox service. If the second write fails
the first one stands, and the outcome says so; the next run picks up the
remaining proxy edit.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol

from .engine import DirectoryLookup, DomainRemediationEngine, aggregate_run
from .models import (
    AttributeEdits,
    Identity,
    OutcomeStatus,
    RemediationOutcome,
    RemediationPlan,
    RunSummary,
)

logger = logging.getLogger("m365_domain_remediation.runner")


class Directory(Protocol):
    """What the runner needs from the directory service."""

    async def find_user_by_upn(self, upn: str) -> Optional[Identity]:
        ...

    async def update_user(self, user_id: str, edits: AttributeEdits) -> None:
        ...


class Mailboxes(Protocol):
    """What the runner needs from the mail service."""

    async def set_email_addresses(self, user_id: str, addresses: tuple[str, ...]) -> None:
        ...


def static_lookup(entries: dict[str, Optional[Identity]]) -> DirectoryLookup:
    """Lookup over already-resolved UPNs (case-insensitive)."""
    resolved = {upn.lower(): holder for upn, holder in entries.items()}

    def lookup(upn: str) -> Optional[Identity]:
        return resolved.get(upn.lower())

    return lookup


class RemediationRunner:

    def __init__(
        self,
        engine: DomainRemediationEngine,
        directory: Directory,
        mailboxes: Optional[Mailboxes] = None,
        dry_run: bool = False,
    ):
        self.engine = engine
        self.directory = directory
        self.mailboxes = mailboxes
        self.dry_run = dry_run

    async def run(self, identities: Iterable[Identity]) -> RunSummary:
        outcomes = []
        for identity in identities:
            outcome = await self.process(identity)
            logger.info(
                f"{identity.user_principal_name}: {outcome.status.value}"
                + (f" ({outcome.reason})" if outcome.reason else "")
            )
            outcomes.append(outcome)

        summary = aggregate_run(outcomes)
        logger.info(
            f"Run complete: {summary.total} identities, {summary.succeeded} succeeded, "
            f"{summary.skipped} skipped, {summary.unchanged} unchanged, "
            f"{summary.failed} failed, {summary.planned} planned"
        )
        return summary

    async def process(self, identity: Identity) -> RemediationOutcome:
        try:
            lookup = await self._resolve_lookup(identity)
        except Exception as e:
            logger.error(f"Lookup failed for {identity.user_principal_name}: {e}")
            return _failed(identity, f"Lookup failed: {type(e).__name__}: {e}")

        plan = self.engine.plan(identity, lookup)
        if plan.status is not OutcomeStatus.SUCCESS:
            return plan.to_outcome()

        if self.dry_run:
            return plan.to_outcome(OutcomeStatus.PLANNED, reason="dry run, not applied")

        directory_edits = plan.edits.directory_part()
        if not directory_edits.is_empty:
            try:
                await self.directory.update_user(identity.id, directory_edits)
            except Exception as e:
                logger.error(f"Update failed for {identity.user_principal_name}: {e}")
                return plan.to_outcome(
                    OutcomeStatus.FAILED, reason=f"{type(e).__name__}: {e}"
                )

        if plan.edits.proxy_addresses is not None:
            try:
                await self._set_email_addresses(plan)
            except Exception as e:
                logger.error(
                    f"proxyAddresses update failed for {identity.user_principal_name}: {e}"
                )
                written = ", ".join(directory_edits.changed_attributes) or "nothing"
                return plan.to_outcome(
                    OutcomeStatus.FAILED,
                    reason=(
                        f"proxyAddresses not updated ({written} already written): "
                        f"{type(e).__name__}: {e}"
                    ),
                    applied=directory_edits,
                )
        return plan.to_outcome()

    async def _set_email_addresses(self, plan: RemediationPlan) -> None:
        if self.mailboxes is None:
            raise RuntimeError("no mailbox service connected")
        await self.mailboxes.set_email_addresses(
            plan.identity.id, plan.edits.proxy_addresses
        )

    async def _resolve_lookup(self, identity: Identity) -> DirectoryLookup:
        if not self.engine.needs_upn_move(identity):
            return static_lookup({})
        target = self.engine.target_upn(identity)
        holder = await self.directory.find_user_by_upn(target)
        return static_lookup({target: holder})


def _failed(identity: Identity, reason: str) -> RemediationOutcome:
    return RemediationOutcome(
        identity_id=identity.id,
        display_name=identity.display_name,
        old_upn=identity.user_principal_name,
        new_upn=identity.user_principal_name,
        proxies_removed=0,
        status=OutcomeStatus.FAILED,
        reason=reason,
    )
