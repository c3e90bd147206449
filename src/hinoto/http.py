"""Canonical HTTP messages, and their integration with http.server.

This module defines the runtime-independent Request and Response records,
the interface every runtime integration implements (BaseAdapter), and the
helpers the integrations share to copy headers, split URLs and capture
bodies. It also implements the integration with the standard library
http.server module.

Example:

    from http.server import ThreadingHTTPServer
    from hinoto.http import Hinoto, Request, Response

    def hello(request: Request) -> Response:
        return Response.text(f"Hello from {request.path}")

    server = ThreadingHTTPServer(("localhost", 8000), Hinoto(hello))
    server.serve_forever()
"""

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler
from typing import (
    Any,
    Awaitable,
    BinaryIO,
    Callable,
    FrozenSet,
    Generic,
    Iterable,
    List,
    NamedTuple,
    Optional,
    Protocol,
    Tuple,
    TypeVar,
    Union,
)
from urllib.parse import urlsplit

from typing_extensions import TypeAlias

from hinoto.body import (
    BinaryBody,
    Body,
    BodySource,
    EmptyBody,
    FailedSource,
    LiveBody,
    StringBody,
)
from hinoto.config import BodyStrategy, body_strategy_from_environment
from hinoto.error import BodyReadError, InvalidResponseError

logger = logging.getLogger(__name__)

Headers: TypeAlias = List[Tuple[str, str]]

# Methods whose requests conventionally carry no body. The eager strategy
# does not read the body of these requests.
BODILESS_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})

METHODS = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE")


@dataclass
class Request:
    """A runtime-independent representation of an HTTP request."""

    method: str
    headers: Headers
    body: Body
    scheme: str
    host: str
    port: int
    path: str
    query: Optional[str] = None

    @property
    def url(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        if self.port != default_port(self.scheme):
            host = f"{host}:{self.port}"
        url = f"{self.scheme}://{host}{self.path}"
        if self.query is not None:
            url += "?" + self.query
        return url

    def header(self, name: str) -> Optional[str]:
        """Returns the first value of a header, or None if it is absent."""
        values = self.header_values(name)
        return values[0] if values else None

    def header_values(self, name: str) -> List[str]:
        name = name.lower()
        return [v for k, v in self.headers if k.lower() == name]


@dataclass
class Response:
    """A runtime-independent representation of an HTTP response.

    A response cannot carry a LiveBody, live bodies only exist on requests.
    """

    status: int
    headers: Headers = field(default_factory=list)
    body: Body = field(default_factory=EmptyBody)

    def __post_init__(self):
        if isinstance(self.body, LiveBody):
            raise InvalidResponseError("a live request body cannot be sent back")

    @classmethod
    def text(
        cls,
        text: str,
        status: int = 200,
        content_type: str = "text/plain; charset=utf-8",
    ) -> "Response":
        return cls(status, [("Content-Type", content_type)], StringBody(text))

    @classmethod
    def json(cls, value: Any, status: int = 200) -> "Response":
        return cls(
            status,
            [("Content-Type", "application/json")],
            StringBody(json.dumps(value)),
        )

    @classmethod
    def binary(
        cls,
        data: bytes,
        status: int = 200,
        content_type: str = "application/octet-stream",
    ) -> "Response":
        return cls(status, [("Content-Type", content_type)], BinaryBody(data))

    @classmethod
    def empty(cls, status: int = 204) -> "Response":
        return cls(status)


Handler: TypeAlias = Callable[[Request], Union[Response, Awaitable[Response]]]


def error_response(error: BodyReadError) -> Response:
    """Build the response sent when a request body could not be read."""
    return Response.json(
        {"code": error.code, "message": str(error)}, status=error.http_status
    )


class URLParts(NamedTuple):
    scheme: str
    host: str
    port: int
    path: str
    query: Optional[str]


def default_port(scheme: str) -> int:
    return 443 if scheme == "https" else 80


def parse_url(url: str) -> URLParts:
    """Split an absolute URL into the parts of a canonical request.

    The port defaults to 443 for https and 80 for anything else. The query is
    None when the URL has no query, or an empty one.

    Raises:
        ValueError: If the URL carries an invalid port.
    """
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    port = parts.port
    return URLParts(
        scheme=scheme,
        host=parts.hostname or "",
        port=port if port is not None else default_port(scheme),
        path=parts.path or "/",
        query=parts.query or None,
    )


def copy_headers(items: Iterable[Tuple[str, str]]) -> Headers:
    return [(str(k), str(v)) for k, v in items]


def should_read_body(method: str) -> bool:
    return method.upper() not in BODILESS_METHODS


def build_request(
    method: str, url: str, headers: Iterable[Tuple[str, str]], body: Body
) -> Request:
    """Assemble a canonical request from the parts of a native request."""
    parts = parse_url(url)
    return Request(
        method=method.upper(),
        headers=copy_headers(headers),
        body=body,
        scheme=parts.scheme,
        host=parts.host,
        port=parts.port,
        path=parts.path,
        query=parts.query,
    )


def eager_body(method: str, read: Callable[[], str]) -> Body:
    """Read a native body as text, unless the method conventionally has no
    body.

    A fault while reading does not fail normalization: it is captured in a
    LiveBody that reports it as a ReadError when the body is read.
    """
    if not should_read_body(method):
        return EmptyBody()
    try:
        return StringBody(read())
    except Exception as e:
        logger.debug("eager read of %s request body failed: %s", method, e)
        return LiveBody(FailedSource(e))


def charset_from_content_type(
    content_type: Optional[str], default: str = "utf-8"
) -> str:
    if not content_type:
        return default
    for param in content_type.split(";")[1:]:
        name, _, value = param.partition("=")
        if name.strip().lower() == "charset" and value.strip():
            return value.strip().strip('"')
    return default


def default_content_type(payload: Union[str, bytes, None]) -> Optional[str]:
    if isinstance(payload, str):
        return "text/plain; charset=utf-8"
    if isinstance(payload, bytes):
        return "application/octet-stream"
    return None


def response_payload(response: Response) -> Union[str, bytes, None]:
    """Returns the native payload for the body of a response.

    Text passes through as text, bytes as bytes, and an empty body has no
    payload. A LiveBody is not a valid response body: it is logged and sent
    as an empty body.
    """
    match response.body:
        case StringBody(text=text):
            return text
        case BinaryBody(data=data):
            return data
        case EmptyBody():
            return None
        case _:
            logger.error(
                "dropping invalid %s response body: %r",
                response.status,
                response.body,
            )
            return None


def apply_headers(
    headers: Iterable[Tuple[str, str]],
    set_header: Callable[[str, str], Any],
    add_header: Callable[[str, str], Any],
) -> None:
    """Apply canonical headers to a native response.

    The first value of each header replaces whatever the native response
    holds for it (such as a default content type), and further values of the
    same header are appended.
    """
    seen = set()
    for name, value in headers:
        key = name.lower()
        if key in seen:
            add_header(name, value)
        else:
            seen.add(key)
            set_header(name, value)


NativeRequestT = TypeVar("NativeRequestT")
NativeResponseT = TypeVar("NativeResponseT")
NativeRequestT_contra = TypeVar("NativeRequestT_contra", contravariant=True)
NativeResponseT_co = TypeVar("NativeResponseT_co", covariant=True)


class NormalizesRequest(Protocol[NativeRequestT_contra]):
    def normalize_request(self, native: NativeRequestT_contra) -> Request: ...


class MaterializesResponse(Protocol[NativeResponseT_co]):
    def materialize_response(self, response: Response) -> NativeResponseT_co: ...


class BaseAdapter(Generic[NativeRequestT, NativeResponseT]):
    """BaseAdapter is an abstract class inherited by the integrations of each
    host runtime.

    An adapter normalizes native requests into canonical requests, passes
    them to the application handler, and materializes the canonical response
    the handler returns into a native response.
    """

    body_strategies: FrozenSet[BodyStrategy] = frozenset(BodyStrategy)
    default_body_strategy: BodyStrategy = BodyStrategy.EAGER

    def __init__(
        self,
        handler: Handler,
        body_strategy: Optional[Union[BodyStrategy, str]] = None,
    ):
        """Initialize an adapter.

        Args:
            handler: The application handler, a function or coroutine function
                that takes a Request and returns a Response.

            body_strategy: How to capture request bodies. If omitted, the value
                of the HINOTO_BODY_STRATEGY environment variable is used when
                the runtime supports it, else the runtime default.

        Raises:
            ValueError: If the handler is missing or the runtime does not
                support the requested body strategy.
        """
        if handler is None:
            raise ValueError("missing application handler")
        self.handler = handler

        if body_strategy is None:
            strategy = body_strategy_from_environment()
            if strategy not in self.body_strategies:
                strategy = self.default_body_strategy
        else:
            strategy = BodyStrategy(body_strategy)
            if strategy not in self.body_strategies:
                raise ValueError(
                    f"{type(self).__name__} does not support "
                    f"the {strategy} body strategy"
                )
        self.body_strategy = strategy

    def normalize_request(self, native: NativeRequestT) -> Request:
        raise NotImplementedError

    def materialize_response(self, response: Response) -> NativeResponseT:
        raise NotImplementedError

    async def respond(self, request: Request) -> Response:
        """Run the application handler on a canonical request."""
        response = self.handler(request)
        if inspect.isawaitable(response):
            response = await response
        if not isinstance(response, Response):
            raise TypeError(
                f"handler returned {type(response).__name__}, expected Response"
            )
        return response

    async def fetch(self, native: NativeRequestT) -> NativeResponseT:
        request = self.normalize_request(native)
        logger.debug(
            "handling %s %s with %s body",
            request.method,
            request.path,
            type(request.body).__name__,
        )
        response = await self.respond(request)
        logger.debug("handled %s %s: %d", request.method, request.path, response.status)
        return self.materialize_response(response)


class StreamSource(BodySource):
    """A body source reading a fixed number of bytes from a binary stream."""

    def __init__(self, stream: BinaryIO, length: int, charset: str = "utf-8"):
        self._stream = stream
        self._length = length
        self._used = False
        self.charset = charset

    @property
    def body_used(self) -> bool:
        return self._used

    async def read(self) -> bytes:
        self._used = True
        return read_exactly(self._stream, self._length)


def content_length(value: Optional[str]) -> int:
    """Parse a Content-Length header, a missing header meaning no body.

    Raises:
        ValueError: If the value is not a non-negative integer.
    """
    if not value:
        return 0
    value = value.strip()
    if not value.isdigit():
        raise ValueError(f"invalid Content-Length header: {value!r}")
    return int(value)


def read_exactly(stream: BinaryIO, length: int) -> bytes:
    if length <= 0:
        return b""
    data = stream.read(length)
    if len(data) < length:
        raise asyncio.IncompleteReadError(data, length)
    return data


class HTTPResponseMessage(NamedTuple):
    """A response ready to be written by an http.server request handler."""

    status: int
    headers: Headers
    payload: bytes


class HTTPAdapter(BaseAdapter[BaseHTTPRequestHandler, HTTPResponseMessage]):
    """Adapter for requests received by http.server request handlers."""

    def normalize_request(self, native: BaseHTTPRequestHandler) -> Request:
        if native.path.startswith(("http://", "https://")):
            url = native.path
        else:
            host = native.headers.get("Host")
            if not host:
                address, port = native.server.server_address[:2]
                host = f"{address}:{port}"
            url = f"http://{host}{native.path}"

        method = native.command
        length = native.headers.get("Content-Length")
        charset = charset_from_content_type(native.headers.get("Content-Type"))

        body: Body
        if self.body_strategy is BodyStrategy.LAZY:
            try:
                body = LiveBody(
                    StreamSource(native.rfile, content_length(length), charset)
                )
            except ValueError as e:
                body = LiveBody(FailedSource(e))
        else:
            body = eager_body(
                method,
                lambda: read_exactly(native.rfile, content_length(length)).decode(
                    charset, "replace"
                ),
            )
        return build_request(method, url, native.headers.items(), body)

    def materialize_response(self, response: Response) -> HTTPResponseMessage:
        payload = response_payload(response)
        data = payload.encode("utf-8") if isinstance(payload, str) else payload or b""

        headers: Headers = []
        apply_headers(
            response.headers,
            lambda k, v: replace_header(headers, k, v),
            lambda k, v: headers.append((k, v)),
        )
        names = {k.lower() for k, _ in headers}
        content_type = default_content_type(payload)
        if content_type and "content-type" not in names:
            headers.append(("Content-Type", content_type))
        if "content-length" not in names and _may_have_content(response.status):
            headers.append(("Content-Length", str(len(data))))
        return HTTPResponseMessage(response.status, headers, data)


def replace_header(headers: Headers, name: str, value: str) -> None:
    """Replace every value of a header in a header list."""
    key = name.lower()
    headers[:] = [(k, v) for k, v in headers if k.lower() != key]
    headers.append((name, value))


def _may_have_content(status: int) -> bool:
    return status >= 200 and status not in (204, 304)


class HinotoHTTPRequestHandler(BaseHTTPRequestHandler):

    def __init__(self, request, client_address, server, adapter: HTTPAdapter):
        self.adapter = adapter
        super().__init__(request, client_address, server)

    def handle_request(self):
        try:
            message = asyncio.run(self.adapter.fetch(self))
        except Exception:
            logger.error(
                "handler failed on %s %s", self.command, self.path, exc_info=True
            )
            self.send_error(500)
            return
        self.send_message(message)

    def send_message(self, message: HTTPResponseMessage):
        self.send_response(message.status)
        for name, value in message.headers:
            self.send_header(name, value)
        self.end_headers()
        if self.command != "HEAD" and message.payload:
            self.wfile.write(message.payload)

    do_GET = handle_request
    do_HEAD = handle_request
    do_POST = handle_request
    do_PUT = handle_request
    do_PATCH = handle_request
    do_DELETE = handle_request
    do_OPTIONS = handle_request
    do_TRACE = handle_request


class Hinoto:
    """A request handler factory serving an application handler with
    http.server.

    Instances are passed as the RequestHandlerClass of an HTTPServer.
    """

    def __init__(
        self,
        handler: Handler,
        body_strategy: Optional[Union[BodyStrategy, str]] = None,
    ):
        self.adapter = HTTPAdapter(handler, body_strategy)

    def __call__(self, request, client_address, server):
        return HinotoHTTPRequestHandler(
            request, client_address, server, adapter=self.adapter
        )
