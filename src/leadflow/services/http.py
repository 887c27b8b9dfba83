"""
Shared async HTTP plumbing for the Apollo and Instantly services.

Every network-facing function takes an optional ``client``. When it is None a
short-lived ``httpx.AsyncClient`` is opened for the call (the usual case);
tests and long-running callers pass their own client instead.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from leadflow.config import get_settings
from leadflow.errors import UpstreamError


@asynccontextmanager
async def open_client(client: Optional[httpx.AsyncClient] = None) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=get_settings().http_timeout) as owned:
        yield owned


def raise_for_upstream(resp: httpx.Response, service: str) -> None:
    """Turn a non-2xx response into an UpstreamError carrying status and body."""
    if resp.is_success:
        return
    body = resp.text[:800]
    raise UpstreamError(
        f"{service} API error ({resp.status_code}): {body}",
        status_code=resp.status_code,
        details=body,
    )


def bearer_headers(api_key: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
