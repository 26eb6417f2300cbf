# mochow_client/transport.py
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Mapping, Protocol
from urllib.parse import quote

import httpx

from .codec import encode
from .config import ClientConfig
from .exceptions import TransportError, TransportErrorKind

log = logging.getLogger("mochow.transport")

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})
# response.extensions key holding how many attempts the call took
ATTEMPTS_EXTENSION = "mochow.attempts"


@dataclass(frozen=True)
class RequestDescriptor:
    method: str
    path: str                                            # e.g., "/v1/database"
    query: Mapping[str, str | None] = field(default_factory=dict)
    body: Any = None
    idempotent: bool | None = None                       # None -> decided by method

    @property
    def is_idempotent(self) -> bool:
        if self.idempotent is not None:
            return self.idempotent
        return self.method.upper() in IDEMPOTENT_METHODS

    @property
    def url(self) -> str:
        # the service routes on bare verb keys: /v1/table?create
        if not self.query:
            return self.path
        parts = [
            quote(k, safe="") if v is None else f"{quote(k, safe='')}={quote(v, safe='')}"
            for k, v in self.query.items()
        ]
        return f"{self.path}?{'&'.join(parts)}"

    @property
    def target(self) -> str:
        return f"{self.method.upper()} {self.url}"


@dataclass
class Call:
    """One logical call flowing through the middleware chain."""
    descriptor: RequestDescriptor
    request: httpx.Request
    attempt: int = 1


Next = Callable[[Call], Awaitable[httpx.Response]]


class Middleware(Protocol):
    async def apply(self, call: Call, call_next: Next) -> httpx.Response: ...


class Transport:
    """Pooled HTTP executor running every request through an ordered middleware chain."""

    def __init__(
        self,
        config: ClientConfig,
        middlewares: Iterable[Middleware],
        *,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.cfg = config
        self.middlewares: list[Middleware] = list(middlewares)
        self._client = httpx.AsyncClient(
            base_url=config.endpoint,
            timeout=httpx.Timeout(config.request_timeout_s, connect=config.connect_timeout_s),
            headers={"User-Agent": config.user_agent_header},
            transport=http_transport,
        )

    @property
    def closed(self) -> bool:
        return self._client.is_closed

    async def execute(self, descriptor: RequestDescriptor) -> httpx.Response:
        headers = {}
        content = None
        if descriptor.body is not None:
            content = encode(descriptor.body)
            headers["Content-Type"] = "application/json"
        request = self._client.build_request(
            descriptor.method, descriptor.url, content=content, headers=headers
        )
        call = Call(descriptor, request)
        response = await self._dispatch(call, 0)
        response.extensions[ATTEMPTS_EXTENSION] = call.attempt
        return response

    async def _dispatch(self, call: Call, index: int) -> httpx.Response:
        if index == len(self.middlewares):
            return await self._send(call)
        return await self.middlewares[index].apply(call, lambda c: self._dispatch(c, index + 1))

    async def _send(self, call: Call) -> httpx.Response:
        path = call.descriptor.url
        try:
            return await self._client.send(call.request)
        except httpx.TimeoutException as exc:
            raise TransportError(
                TransportErrorKind.TIMEOUT, type(exc).__name__, path=path, attempts=call.attempt
            ) from exc
        except httpx.TransportError as exc:
            raise TransportError(
                TransportErrorKind.CONNECTION_FAILED, f"{type(exc).__name__}: {exc}",
                path=path, attempts=call.attempt,
            ) from exc

    async def aclose(self) -> None:
        await self._client.aclose()
