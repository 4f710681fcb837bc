"""Pooled httpx clients shared across pipeline runs."""

import httpx

from marketplace_agent.utils.logging import get_logger


logger = get_logger(__name__)


class HttpClientPool:
    """
    One pooled ``httpx.AsyncClient`` per base URL.

    Clients are created lazily and live until ``aclose``.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        max_connections: int = 20,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._timeout = timeout
        self._limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_connections,
        )
        self._transport = transport
        self._clients: dict[str, httpx.AsyncClient] = {}

    def client(self, base_url: str = "") -> httpx.AsyncClient:
        """Get (or create) the client for ``base_url``."""
        client = self._clients.get(base_url)
        if client is None or client.is_closed:
            client = httpx.AsyncClient(
                base_url=base_url,
                timeout=self._timeout,
                limits=self._limits,
                transport=self._transport,
            )
            self._clients[base_url] = client
            logger.debug("Created HTTP client", base_url=base_url or "<none>")
        return client

    async def aclose(self) -> None:
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()
