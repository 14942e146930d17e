"""HTTP helpers shared by the WHOOP clients."""

from __future__ import annotations

import httpx

_BODY_PREVIEW_LIMIT = 2000


def build_async_client(
    *,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create a short-lived client with an explicit timeout on every phase."""
    return httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport)


def response_body_preview(response: httpx.Response) -> str:
    """Return the response text, truncated for error messages and logs."""
    text = response.text
    if len(text) > _BODY_PREVIEW_LIMIT:
        return text[:_BODY_PREVIEW_LIMIT] + "..."
    return text


__all__ = ["build_async_client", "response_body_preview"]
