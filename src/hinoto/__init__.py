"""Runtime-independent HTTP requests and responses for Python web runtimes."""

import asyncio
from typing import Optional
from urllib.parse import urlsplit

from hinoto.aiohttp import Hinoto, Server
from hinoto.body import BinaryBody, Body, BodySource, EmptyBody, LiveBody, StringBody
from hinoto.config import BodyStrategy, Environment, listen_address
from hinoto.error import (
    AlreadyRead,
    BodyReadError,
    InvalidResponseError,
    ParseError,
    ReadError,
    ServerStartError,
    UnsupportedBodyType,
)
from hinoto.http import Handler, Request, Response, error_response
from hinoto.reader import ReadResult, read_binary, read_structured, read_text

__all__ = [
    "AlreadyRead",
    "BinaryBody",
    "Body",
    "BodyReadError",
    "BodySource",
    "BodyStrategy",
    "EmptyBody",
    "Environment",
    "InvalidResponseError",
    "LiveBody",
    "ParseError",
    "ReadError",
    "ReadResult",
    "Request",
    "Response",
    "ServerStartError",
    "StringBody",
    "UnsupportedBodyType",
    "error_response",
    "main",
    "read_binary",
    "read_structured",
    "read_text",
    "serve",
]


async def main(handler: Handler, addr: Optional[str] = None) -> None:
    """Serve a handler with aiohttp until the task is cancelled.

    Programs typically don't use this function directly, unless they manage
    their own event loop. Most of the time, the `serve` function is a more
    convenient way to run a hinoto application.

    Args:
        handler: The application handler.

        addr: The address to bind the server to. If not provided, the server
            will bind to the address specified by the `HINOTO_ADDR`
            environment variable, or `localhost:8000`.

    Raises:
        ServerStartError: If the server could not bind the address.
    """
    address = addr or listen_address()
    parsed_url = urlsplit("//" + address)

    host = parsed_url.hostname or ""
    port = parsed_url.port or 0

    app = Hinoto(handler).app
    async with Server(host, port, app):
        await asyncio.Event().wait()


def serve(handler: Handler, addr: Optional[str] = None) -> None:
    """Serve a handler forever. See `main` for the arguments.

    Bind failures raise ServerStartError, leaving the caller to decide how
    the process exits.
    """
    asyncio.run(main(handler, addr))
