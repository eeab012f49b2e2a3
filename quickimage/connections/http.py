from typing import Optional

import httpx

from quickimage.core.exceptions import TransportError


def build_client(timeout: float, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """One client per call; `transport` lets tests swap in httpx.MockTransport."""
    return httpx.AsyncClient(timeout=timeout, transport=transport)


async def send(client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
    """
    Issues the request and turns any transport-level failure into TransportError.
    Status codes are left for the caller to interpret.
    """
    try:
        return await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        raise TransportError(e) from e
