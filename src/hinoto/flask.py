"""Integration of hinoto handlers with Flask.

Flask serves requests synchronously, so request bodies are read as text
during normalization by default. Pass body_strategy="lazy" (or set
HINOTO_BODY_STRATEGY=lazy) to hand a LiveBody to the handler instead.

Example:

    from flask import Flask
    from hinoto.flask import Hinoto
    from hinoto.http import Response

    app = Flask(__name__)

    def hello(request):
        return Response.text("Hello World!")

    Hinoto(app, hello)
"""

import asyncio
import logging
from typing import Optional, Union

from flask import Flask
from flask import Request as FlaskRequest
from flask import Response as FlaskResponse
from flask import request

from hinoto.body import Body, BodySource, LiveBody
from hinoto.config import BodyStrategy
from hinoto.http import (
    METHODS,
    BaseAdapter,
    Handler,
    Request,
    Response,
    apply_headers,
    build_request,
    default_content_type,
    eager_body,
    response_payload,
)

logger = logging.getLogger(__name__)


class WerkzeugBodySource(BodySource):
    """The unread body of a werkzeug request."""

    def __init__(self, request: FlaskRequest):
        self._request = request
        self.charset = request.mimetype_params.get("charset", "utf-8")

    async def read(self) -> bytes:
        return self._request.get_data(cache=False)


class Hinoto(BaseAdapter[FlaskRequest, FlaskResponse]):
    """A hinoto handler, powered by Flask."""

    def __init__(
        self,
        app: Flask,
        handler: Handler,
        prefix: str = "",
        body_strategy: Optional[Union[BodyStrategy, str]] = None,
    ):
        """Initialize a hinoto endpoint, and integrate it into a Flask app.

        Args:
            app: The Flask app to configure.

            handler: The application handler.

            prefix: Path under which every request is routed to the handler.
                Routes the whole app if omitted.

            body_strategy: How to capture request bodies, eager by default.

        Raises:
            ValueError: If any of the required arguments are missing.
        """
        if not app:
            raise ValueError(
                "missing Flask app as first argument of the Hinoto constructor"
            )
        super().__init__(handler, body_strategy)

        prefix = prefix.rstrip("/")
        # Endpoint names are unique per prefix.
        endpoint = "hinoto" + prefix
        app.add_url_rule(
            prefix + "/",
            endpoint=endpoint,
            view_func=self._run,
            methods=METHODS,
            defaults={"path": ""},
        )
        app.add_url_rule(
            prefix + "/<path:path>",
            endpoint=endpoint,
            view_func=self._run,
            methods=METHODS,
        )

    def _run(self, path: str):
        return asyncio.run(self.fetch(request._get_current_object()))

    def normalize_request(self, native: FlaskRequest) -> Request:
        body: Body
        if self.body_strategy is BodyStrategy.LAZY:
            body = LiveBody(WerkzeugBodySource(native))
        else:
            body = eager_body(
                native.method, lambda: native.get_data(cache=False, as_text=True)
            )
        return build_request(native.method, native.url, native.headers.items(), body)

    def materialize_response(self, response: Response) -> FlaskResponse:
        payload = response_payload(response)
        native = FlaskResponse(payload, status=response.status)
        content_type = default_content_type(payload)
        if content_type is None:
            native.headers.remove("Content-Type")
        else:
            native.headers["Content-Type"] = content_type
        apply_headers(response.headers, native.headers.set, native.headers.add)
        return native
