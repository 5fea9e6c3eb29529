from __future__ import annotations

from dataclasses import replace
from typing import Optional

from m365_domain_remediation.remediation.models import AttributeEdits, Identity


def make_identity(
    upn: str,
    id: Optional[str] = None,
    mail: Optional[str] = None,
    proxies: tuple[str, ...] = (),
    display_name: Optional[str] = None,
) -> Identity:
    return Identity(
        id=id or f"id-{upn.split('@')[0]}",
        display_name=display_name or upn.split("@")[0].title(),
        user_principal_name=upn,
        mail=mail,
        proxy_addresses=tuple(proxies),
    )


class FakeDirectory:
    """In-memory directory and mailbox service: UPN lookups and write recording."""

    def __init__(self, identities=(), fail_for=(), mailbox_fail_for=()):
        self.users = {i.id: i for i in identities}
        self.fail_for = set(fail_for)
        self.mailbox_fail_for = set(mailbox_fail_for)
        self.updates: list[tuple[str, AttributeEdits]] = []
        self.mailbox_updates: list[tuple[str, tuple[str, ...]]] = []
        self.lookups: list[str] = []

    async def find_user_by_upn(self, upn: str) -> Optional[Identity]:
        self.lookups.append(upn)
        for user in self.users.values():
            if user.user_principal_name.lower() == upn.lower():
                return user
        return None

    async def update_user(self, user_id: str, edits: AttributeEdits) -> None:
        if user_id in self.fail_for:
            raise RuntimeError("Insufficient privileges to complete the operation.")
        assert edits.proxy_addresses is None, "proxyAddresses is read-only in the directory"
        self.updates.append((user_id, edits))
        self.users[user_id] = edits.apply_to(self.users[user_id])

    async def set_email_addresses(self, user_id: str, addresses: tuple[str, ...]) -> None:
        if user_id in self.mailbox_fail_for:
            raise RuntimeError(f"The operation couldn't be performed because '{user_id}' couldn't be found.")
        self.mailbox_updates.append((user_id, addresses))
        self.users[user_id] = replace(self.users[user_id], proxy_addresses=tuple(addresses))
