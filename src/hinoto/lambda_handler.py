"""Integration of hinoto handlers with AWS Lambda.

The handler accepts the proxy integration events sent by API Gateway (REST
APIs use payload format 1.0, HTTP APIs and function URLs payload format 2.0),
and returns a proxy integration response.

Example:

    from hinoto.http import Response
    from hinoto.lambda_handler import Hinoto

    def hello(request):
        return Response.text("Hello World!")

    hinoto = Hinoto(hello)

    def handler(event, context):
        return hinoto.handle(event, context)
"""

import asyncio
import base64
import binascii
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

from awslambdaric.lambda_context import LambdaContext

from hinoto.body import BinaryBody, Body, BufferedSource, FailedSource, LiveBody
from hinoto.config import BodyStrategy
from hinoto.error import ReadError
from hinoto.http import (
    BaseAdapter,
    Headers,
    Request,
    Response,
    apply_headers,
    build_request,
    charset_from_content_type,
    default_content_type,
    eager_body,
    replace_header,
    response_payload,
    should_read_body,
)

logger = logging.getLogger(__name__)

Event = Dict[str, Any]


def decode_event_body(event: Event, charset: str = "utf-8") -> bytes:
    """Returns the raw bytes of the body carried by an event.

    Raises:
        ReadError: If the event claims a base64 body that does not decode.
    """
    body = event.get("body")
    if body is None:
        return b""
    if not event.get("isBase64Encoded"):
        return body.encode(charset)
    try:
        return base64.b64decode(body, validate=True)
    except binascii.Error as e:
        raise ReadError(f"event body is not base64 encoded: {e}")


class Hinoto(BaseAdapter[Event, Event]):
    """A hinoto handler invoked by AWS Lambda."""

    def handle(self, event: Event, context: Optional[LambdaContext] = None) -> Event:
        """Handle a proxy integration event.

        Raises:
            ValueError: If the event is missing.
        """
        if not event:
            raise ValueError("event is required")
        if context is not None:
            logger.debug("handling Lambda request %s", context.aws_request_id)
        return asyncio.run(self.fetch(event))

    def normalize_request(self, native: Event) -> Request:
        if native.get("version") == "2.0":
            method = native["requestContext"]["http"]["method"]
            path = native.get("rawPath") or "/"
            query = native.get("rawQueryString") or ""
            headers = list((native.get("headers") or {}).items())
            cookies = native.get("cookies")
            if cookies:
                headers.append(("cookie", "; ".join(cookies)))
        else:
            method = native["httpMethod"]
            path = native.get("path") or "/"
            query = _encode_query(native)
            headers = _event_headers(native)

        lookup = {k.lower(): v for k, v in headers}
        scheme = lookup.get("x-forwarded-proto", "https")
        host = lookup.get("host") or native.get("requestContext", {}).get(
            "domainName", "localhost"
        )
        port = lookup.get("x-forwarded-port")
        if port and ":" not in host:
            host = f"{host}:{port}"
        url = f"{scheme}://{host}{path}"
        if query:
            url += "?" + query

        charset = charset_from_content_type(lookup.get("content-type"))
        body: Body
        if self.body_strategy is BodyStrategy.LAZY:
            try:
                data = decode_event_body(native, charset)
                body = LiveBody(BufferedSource(data, charset))
            except (ReadError, LookupError, UnicodeError) as e:
                body = LiveBody(FailedSource(e))
        elif native.get("isBase64Encoded") and should_read_body(method):
            try:
                body = BinaryBody(decode_event_body(native))
            except ReadError as e:
                logger.debug("cannot decode event body: %s", e)
                body = LiveBody(FailedSource(e))
        else:
            body = eager_body(method, lambda: native.get("body") or "")
        return build_request(method, url, headers, body)

    def materialize_response(self, response: Response) -> Event:
        payload = response_payload(response)

        headers: Headers = []
        content_type = default_content_type(payload)
        if content_type is not None:
            headers.append(("Content-Type", content_type))
        apply_headers(
            response.headers,
            lambda k, v: replace_header(headers, k, v),
            lambda k, v: headers.append((k, v)),
        )

        single: Dict[str, str] = {}
        multi: Dict[str, List[str]] = {}
        for name, value in headers:
            single[name] = value
            multi.setdefault(name, []).append(value)

        result: Event = {
            "statusCode": response.status,
            "headers": single,
            "multiValueHeaders": multi,
            "isBase64Encoded": isinstance(payload, bytes),
        }
        if isinstance(payload, bytes):
            result["body"] = base64.b64encode(payload).decode("ascii")
        else:
            result["body"] = payload or ""

        cookies = [v for k, v in headers if k.lower() == "set-cookie"]
        if cookies:
            result["cookies"] = cookies
        return result


def _event_headers(event: Event) -> List[Tuple[str, str]]:
    multi = event.get("multiValueHeaders")
    if multi:
        return [(k, v) for k, values in multi.items() for v in values or ()]
    return list((event.get("headers") or {}).items())


def _encode_query(event: Event) -> str:
    multi = event.get("multiValueQueryStringParameters")
    if multi:
        return urlencode(multi, doseq=True)
    return urlencode(event.get("queryStringParameters") or {})

