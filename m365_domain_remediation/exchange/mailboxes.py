"""
Exchange-backed mailbox updates: proxy addresses are owned by Exchange
Online, so they are replaced with Set-Mailbox -EmailAddresses.
"""

from __future__ import annotations

import logging

from .client import ExchangeClient

logger = logging.getLogger("m365_domain_remediation.exchange")


class ExchangeMailboxes:
    """Mailbox address updates over the Exchange admin API."""

    def __init__(self, exchange: ExchangeClient):
        self.exchange = exchange

    async def set_email_addresses(self, user_id: str, addresses: tuple[str, ...]) -> None:
        """Replace the full EmailAddresses list of the mailbox owned by `user_id`."""
        logger.info(f"Set-Mailbox {user_id}: {len(addresses)} EmailAddresses")
        await self.exchange.invoke_command(
            "Set-Mailbox",
            {"Identity": user_id, "EmailAddresses": list(addresses)},
        )
