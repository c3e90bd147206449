"""Integration of hinoto handlers with FastAPI.

Request bodies are never read during normalization: every request carries a
LiveBody that the handler reads on demand.

Example:

    import fastapi
    from hinoto.fastapi import Hinoto
    from hinoto.http import Response

    app = fastapi.FastAPI()

    def hello(request):
        return Response.text("Hello World!")

    Hinoto(app, hello, prefix="/hello")
"""

import logging
from typing import Any, Optional, Union

import fastapi
from starlette.requests import ClientDisconnect

from hinoto.body import BodySource, LiveBody
from hinoto.config import BodyStrategy
from hinoto.error import ReadError
from hinoto.http import (
    METHODS,
    BaseAdapter,
    Handler,
    Request,
    Response,
    apply_headers,
    build_request,
    charset_from_content_type,
    default_content_type,
    response_payload,
)

logger = logging.getLogger(__name__)


class StarletteBodySource(BodySource):
    """The unread body of a starlette request."""

    def __init__(self, request: fastapi.Request):
        self._request = request
        self.charset = charset_from_content_type(request.headers.get("content-type"))

    async def read(self) -> bytes:
        try:
            return await self._request.body()
        except ClientDisconnect:
            raise ReadError("client disconnected")

    async def json(self) -> Any:
        try:
            return await self._request.json()
        except ClientDisconnect:
            raise ReadError("client disconnected")


class Hinoto(BaseAdapter[fastapi.Request, fastapi.Response]):
    """A hinoto handler, powered by FastAPI."""

    body_strategies = frozenset({BodyStrategy.LAZY})
    default_body_strategy = BodyStrategy.LAZY

    def __init__(
        self,
        app: fastapi.FastAPI,
        handler: Handler,
        prefix: str = "",
        body_strategy: Optional[Union[BodyStrategy, str]] = None,
    ):
        """Initialize a hinoto endpoint, and integrate it into a FastAPI app.

        Args:
            app: The FastAPI app to configure.

            handler: The application handler.

            prefix: Path under which every request is routed to the handler.
                Routes the whole app if omitted.

            body_strategy: Only BodyStrategy.LAZY is supported.

        Raises:
            ValueError: If any of the required arguments are missing, or if the
                eager body strategy is requested.
        """
        if not app:
            raise ValueError(
                "missing FastAPI app as first argument of the Hinoto constructor"
            )
        super().__init__(handler, body_strategy)

        async def endpoint(request: fastapi.Request) -> fastapi.Response:
            return await self.fetch(request)

        app.add_api_route(
            prefix.rstrip("/") + "/{path:path}",
            endpoint,
            methods=list(METHODS),
            include_in_schema=False,
        )

    def normalize_request(self, native: fastapi.Request) -> Request:
        return build_request(
            native.method,
            str(native.url),
            native.headers.items(),
            LiveBody(StarletteBodySource(native)),
        )

    def materialize_response(self, response: Response) -> fastapi.Response:
        payload = response_payload(response)
        native = fastapi.Response(
            content=payload,
            status_code=response.status,
            media_type=default_content_type(payload),
        )
        apply_headers(
            response.headers, native.headers.__setitem__, native.headers.append
        )
        return native
