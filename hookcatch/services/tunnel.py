"""Public webhook URL discovery through a local ngrok agent."""

from __future__ import annotations

import httpx
import structlog

log = structlog.get_logger()

LOOKUP_TIMEOUT_SECONDS = 2.0


async def public_webhook_url(api_url: str, client: httpx.AsyncClient | None = None) -> str | None:
    """
    Ask the ngrok agent API for its first tunnel and return `<public_url>/webhook`.

    Returns None when no agent is running, no tunnel is open, or the reply
    cannot be parsed.
    """
    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=LOOKUP_TIMEOUT_SECONDS)
    try:
        response = await client.get(api_url)
        response.raise_for_status()
        tunnels = response.json().get("tunnels") or []
    except (httpx.HTTPError, ValueError, AttributeError) as exc:
        log.debug("tunnel.lookup_failed", api_url=api_url, error=str(exc))
        return None
    finally:
        if owns_client:
            await client.aclose()

    first = tunnels[0] if isinstance(tunnels, list) and tunnels else None
    public_url = first.get("public_url") if isinstance(first, dict) else None
    if not public_url:
        return None
    return f"{public_url.rstrip('/')}/webhook"
