"""
Bearer-authenticated batch reads for permission-gated views.

A 403 on one request of a batch stands in for "no access" to that list
only; the rest of the batch still completes.
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import httpx
import structlog

from agent_permissions.core.credentials import bearer_headers
from agent_permissions.core.exceptions import MissingCredentialError

logger = structlog.get_logger()


@dataclass(frozen=True)
class TolerantRequest:
    url: str
    default: Any = field(default_factory=dict)
    params: Optional[dict[str, Any]] = None


async def fetch_tolerant(
    client: httpx.AsyncClient,
    credential: str | None,
    requests: Sequence[TolerantRequest],
) -> list[Any]:
    """
    Issue every GET concurrently and return the decoded bodies in order.

    Raises:
        MissingCredentialError: no credential to present
        httpx.HTTPError: any failure other than 403
    """
    if not credential:
        raise MissingCredentialError("No token found")

    headers = bearer_headers(credential)

    async def fetch_one(request: TolerantRequest) -> Any:
        response = await client.get(request.url, params=request.params, headers=headers)
        if response.status_code == 403:
            logger.info("Access denied, using empty result", url=request.url)
            return copy.deepcopy(request.default)
        response.raise_for_status()
        return response.json()

    tasks = [asyncio.ensure_future(fetch_one(request)) for request in requests]
    try:
        return list(await asyncio.gather(*tasks))
    finally:
        # a failed batch leaves no sibling request running
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
