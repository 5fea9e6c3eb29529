"""
Async Exchange Online admin API client.

Runs cmdlets over the same REST endpoint the ExchangeOnlineManagement module
uses (POST .../adminapi/beta/{tenant}/InvokeCommand), with the retry and
write-guard handling of GraphClient.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from ..config import EXCHANGE_ADMIN_BASE_URL
from ..graph.client import GraphAPIError, GraphClient
from ..safety.guardian import WriteGuardian

# Routing mailbox every tenant has; app-only requests must be anchored on it
ANCHOR_MAILBOX = "SystemMailbox{bb558c35-97f1-4cb9-8ff7-d53741dc928c}"


class ExchangeAPIError(GraphAPIError):
    """Raised when the Exchange admin API rejects a command."""
    service = "Exchange"


class ExchangeClient(GraphClient):
    """GraphClient pointed at one tenant's Exchange admin API."""

    error_class = ExchangeAPIError

    def __init__(
        self,
        access_token: str,
        tenant_id: str,
        guardian: WriteGuardian,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(access_token, guardian, transport=transport)
        self.tenant_id = tenant_id

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-AnchorMailbox": f"APP:{ANCHOR_MAILBOX}@{self.tenant_id}",
        }

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        return f"{EXCHANGE_ADMIN_BASE_URL}/{self.tenant_id}/{endpoint.lstrip('/')}"

    async def invoke_command(self, cmdlet: str, parameters: dict[str, Any]) -> dict:
        """Run one cmdlet. Raises ExchangeAPIError if Exchange rejects it."""
        body = {"CmdletInput": {"CmdletName": cmdlet, "Parameters": parameters}}
        return await self.post("InvokeCommand", body)
