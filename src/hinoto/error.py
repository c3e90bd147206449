class BodyReadError(Exception):
    """Base class for errors reported when reading a message body.

    Body read errors are not raised by the body reader, they are carried by
    the ReadResult it returns. Use ReadResult.unwrap() to raise them.
    """

    http_status = 500
    code = "internal"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.__class__.__doc__)
        self.detail = detail

    def __eq__(self, other):
        return type(self) is type(other) and self.detail == other.detail

    def __hash__(self):
        return hash((type(self), self.detail))


class AlreadyRead(BodyReadError):
    """The body was already read."""

    code = "already_read"


class ParseError(BodyReadError):
    """The body could not be parsed as structured data."""

    http_status = 400
    code = "invalid_argument"


class ReadError(BodyReadError):
    """The body could not be read from its source."""

    http_status = 400
    code = "read_error"


class UnsupportedBodyType(BodyReadError):
    """The read operation is not defined for this kind of body."""

    code = "unsupported_body_type"


class InvalidResponseError(ValueError):
    """A response was constructed with a body that cannot be sent."""


class ServerStartError(OSError):
    """The server could not bind its listening socket."""

    def __init__(self, host: str, port: int, reason: str):
        super().__init__(f"cannot listen on {host}:{port}: {reason}")
        self.host = host
        self.port = port
        self.reason = reason
