# mochow_client/client.py
from __future__ import annotations
import logging
from typing import Iterable

import httpx

from .codec import decode
from .config import ClientConfig, ClientSettings
from .logs import configure_logging
from .middleware import TraceSink, default_middlewares
from .models import M
from .resources import DatabaseResource, IndexResource, RowResource, TableResource
from .transport import ATTEMPTS_EXTENSION, Middleware, RequestDescriptor, Transport

log = logging.getLogger("mochow.client")


class MochowClient:
    """
    Async client for a Mochow vector database service.

    One instance owns one connection pool, shared by its resource objects
    (``databases``, ``tables``, ``indexes``, ``rows``) and safe to use from
    concurrent tasks. Close it with ``aclose()`` or ``async with``.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        http_transport: httpx.AsyncBaseTransport | None = None,
        middlewares: Iterable[Middleware] | None = None,
        trace_sink: TraceSink | None = None,
    ):
        self.cfg = config
        if middlewares is None:
            middlewares = default_middlewares(config, trace_sink=trace_sink)
        self._transport = Transport(config, middlewares, http_transport=http_transport)

        self.databases = DatabaseResource(self)
        self.tables = TableResource(self)
        self.indexes = IndexResource(self)
        self.rows = RowResource(self)
        log.debug("client ready for %s (account=%s)", config.endpoint, config.account)

    @classmethod
    def from_env(cls, settings: ClientSettings | None = None, **kwargs) -> "MochowClient":
        """Build a client from MOCHOW_* environment variables (or ./.env)."""
        settings = settings or ClientSettings()
        configure_logging(settings.log_level)
        return cls(settings.to_config(), **kwargs)

    @property
    def closed(self) -> bool:
        return self._transport.closed

    # ------------ low-level helpers ------------
    def path(self, resource: str) -> str:
        return f"/{self.cfg.version}/{resource}"

    async def call(self, descriptor: RequestDescriptor, response_type: type[M]) -> M:
        response = await self._transport.execute(descriptor)
        try:
            content = await response.aread()
        finally:
            await response.aclose()
        return decode(
            response.status_code,
            content,
            response_type,
            path=descriptor.url,
            request_id=response.headers.get("Request-ID", ""),
            attempts=response.extensions.get(ATTEMPTS_EXTENSION, 1),
        )

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def __aenter__(self) -> "MochowClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
