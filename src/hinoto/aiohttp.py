"""Integration of hinoto handlers with aiohttp.

Request bodies are never read during normalization: every request carries a
LiveBody that the handler reads on demand.

Example:

    import asyncio

    from hinoto.aiohttp import Hinoto, Server
    from hinoto.http import Response
    from hinoto.reader import read_text

    async def echo(request):
        text = (await read_text(request.body)).unwrap()
        return Response.text(text)

    async def main():
        async with Server("localhost", 8000, Hinoto(echo).app):
            await asyncio.Event().wait()
"""

import errno
import logging
from typing import Any, Optional, Union

from aiohttp import web

from hinoto.body import BodySource, LiveBody
from hinoto.config import BodyStrategy
from hinoto.error import ServerStartError
from hinoto.http import (
    BaseAdapter,
    Handler,
    Request,
    Response,
    apply_headers,
    build_request,
    response_payload,
)

logger = logging.getLogger(__name__)


class AiohttpBodySource(BodySource):
    """The unread body of an aiohttp request."""

    def __init__(self, request: web.Request):
        self._request = request

    @property
    def charset(self) -> str:  # type: ignore[override]
        return self._request.charset or "utf-8"

    @property
    def body_used(self) -> bool:
        return self._request.body_exists and self._request.content.at_eof()

    async def read(self) -> bytes:
        return await self._request.read()

    async def json(self) -> Any:
        return await self._request.json()


class Hinoto(BaseAdapter[web.Request, web.Response]):
    """A hinoto handler served by an aiohttp application."""

    body_strategies = frozenset({BodyStrategy.LAZY})
    default_body_strategy = BodyStrategy.LAZY

    def __init__(
        self,
        handler: Handler,
        app: Optional[web.Application] = None,
        body_strategy: Optional[Union[BodyStrategy, str]] = None,
    ):
        """Initialize a hinoto endpoint, and integrate it into an aiohttp
        application.

        Args:
            handler: The application handler.

            app: The aiohttp application to route every request from. A new
                application is created if omitted.

            body_strategy: Only BodyStrategy.LAZY is supported.

        Raises:
            ValueError: If the eager body strategy is requested.
        """
        super().__init__(handler, body_strategy)
        self.app = app if app is not None else web.Application()
        self.app.router.add_route("*", "/{path:.*}", self.fetch)

    def normalize_request(self, native: web.Request) -> Request:
        return build_request(
            native.method,
            str(native.url),
            native.headers.items(),
            LiveBody(AiohttpBodySource(native)),
        )

    def materialize_response(self, response: Response) -> web.Response:
        payload = response_payload(response)
        if isinstance(payload, str):
            native = web.Response(status=response.status, text=payload)
        else:
            native = web.Response(status=response.status, body=payload)
        apply_headers(response.headers, native.headers.__setitem__, native.headers.add)
        return native


class Server:
    """An aiohttp server listening on a TCP address."""

    host: str
    port: int
    app: web.Application

    _runner: web.AppRunner
    _site: web.TCPSite

    def __init__(self, host: str, port: int, app: web.Application):
        self.host = host
        self.port = port
        self.app = app

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        await self.stop()

    async def start(self):
        """Start listening.

        Raises:
            ServerStartError: If the server could not bind its address, for
                example because the port is already in use.
        """
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.host, self.port)
        try:
            await self._site.start()
        except OSError as e:
            await self._runner.cleanup()
            if e.errno == errno.EADDRINUSE:
                reason = f"port {self.port} is already in use"
            else:
                reason = e.strerror or str(e)
            logger.error("cannot listen on %s:%d: %s", self.host, self.port, reason)
            raise ServerStartError(self.host, self.port, reason) from e

        if self.port == 0:
            assert self._site._server is not None
            assert hasattr(self._site._server, "sockets")
            sockets = self._site._server.sockets
            self.port = sockets[0].getsockname()[1] if sockets else 0
        logger.info("listening on http://%s:%d", self.host, self.port)

    async def stop(self):
        await self._site.stop()
        await self._runner.cleanup()
