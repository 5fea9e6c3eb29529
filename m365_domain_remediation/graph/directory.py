"""
Graph-backed directory: UPN point lookup and user attribute updates.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import USER_SELECT_FIELDS
from ..remediation.models import AttributeEdits, Identity
from .client import GraphClient

logger = logging.getLogger("m365_domain_remediation.graph.directory")


def odata_quote(value: str) -> str:
    """Quote a string literal for an OData $filter."""
    return "'" + value.replace("'", "''") + "'"


class GraphDirectory:
    """Directory lookups and mutations over Microsoft Graph."""

    def __init__(self, graph: GraphClient):
        self.graph = graph

    async def find_user_by_upn(self, upn: str) -> Optional[Identity]:
        data = await self.graph.get(
            "users",
            params={
                "$filter": f"userPrincipalName eq {odata_quote(upn)}",
                "$select": USER_SELECT_FIELDS,
            },
        )
        if data.get("_forbidden"):
            raise PermissionError(data.get("_error_message", "Forbidden"))
        users = data.get("value", [])
        if not users:
            return None
        if len(users) > 1:
            logger.warning(f"UPN {upn} matched {len(users)} users; using the first")
        return Identity.from_graph(users[0])

    async def update_user(self, user_id: str, edits: AttributeEdits) -> None:
        body = edits.to_graph_patch()
        if not body:
            return
        logger.info(f"PATCH users/{user_id}: {', '.join(sorted(body))}")
        await self.graph.patch(f"users/{user_id}", body)
