"""Reading message bodies.

Each read operation takes a Body and returns a ReadResult holding either the
materialized value or a BodyReadError. Reading a StringBody, BinaryBody or
EmptyBody has no side effect. Reading a LiveBody consumes it: any later read,
of any kind, fails with AlreadyRead.

Example:

    result = await read_structured(request.body)
    if not result.ok:
        return error_response(result.error)
    payload = result.value
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, cast

from hinoto.body import BinaryBody, Body, BodySource, EmptyBody, LiveBody, StringBody
from hinoto.error import (
    AlreadyRead,
    BodyReadError,
    ParseError,
    ReadError,
    UnsupportedBodyType,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ReadResult(Generic[T]):
    """Result of reading a body."""

    value: Optional[T] = None
    error: Optional[BodyReadError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Returns the value read from the body, or raises the error that
        prevented reading it."""
        if self.error is not None:
            raise self.error
        return cast(T, self.value)

    @classmethod
    def success(cls, value: T) -> ReadResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: BodyReadError) -> ReadResult[T]:
        return cls(error=error)


async def read_text(body: Body) -> ReadResult[str]:
    """Read a body as text.

    Empty bodies read as an empty string. Binary bodies cannot be read as
    text.
    """
    match body:
        case StringBody(text=text):
            return ReadResult.success(text)
        case EmptyBody():
            return ReadResult.success("")
        case LiveBody():
            return await _read_live(body, _drain_text)
        case _:
            return _unsupported("text", body)


async def read_binary(body: Body) -> ReadResult[bytes]:
    """Read a body as bytes.

    Empty bodies read as zero bytes. String bodies cannot be read as bytes.
    """
    match body:
        case BinaryBody(data=data):
            return ReadResult.success(data)
        case EmptyBody():
            return ReadResult.success(b"")
        case LiveBody():
            return await _read_live(body, _drain_bytes)
        case _:
            return _unsupported("bytes", body)


async def read_structured(body: Body) -> ReadResult[Any]:
    """Read a body as JSON.

    Unlike the other read operations, an empty body is an error: there is no
    JSON value for an absent body. Binary bodies cannot be parsed.
    """
    match body:
        case EmptyBody():
            return ReadResult.failure(ParseError("empty body"))
        case StringBody(text=text):
            try:
                return ReadResult.success(json.loads(text))
            except (ValueError, RecursionError) as e:
                return ReadResult.failure(ParseError(str(e)))
        case LiveBody():
            return await _read_live(body, _drain_json, parse=True)
        case _:
            return _unsupported("JSON", body)


async def _drain_text(source: BodySource) -> str:
    return await source.text()


async def _drain_bytes(source: BodySource) -> bytes:
    return await source.read()


async def _drain_json(source: BodySource) -> Any:
    return await source.json()


async def _read_live(
    body: LiveBody,
    drain: Callable[[BodySource], Awaitable[T]],
    parse: bool = False,
) -> ReadResult[T]:
    try:
        source = body.consume()
    except AlreadyRead as e:
        logger.debug("live body was already read")
        return ReadResult.failure(e)

    # The body is consumed from here on, whatever happens while draining it,
    # including cancellation of the awaiting task.
    try:
        value = await drain(source)
    except BodyReadError as e:
        return ReadResult.failure(e)
    except (ValueError, RecursionError) as e:
        # json.JSONDecodeError and UnicodeDecodeError are both ValueError,
        # RecursionError comes from deeply nested JSON.
        if parse:
            logger.debug("live body is not valid JSON: %s", e)
            return ReadResult.failure(ParseError(str(e)))
        return ReadResult.failure(ReadError(_describe(e)))
    except Exception as e:
        logger.debug("reading live body failed", exc_info=True)
        return ReadResult.failure(ReadError(_describe(e)))
    return ReadResult.success(value)


def _describe(error: Exception) -> str:
    return str(error) or type(error).__name__


def _unsupported(kind: str, body: Any) -> ReadResult[Any]:
    return ReadResult.failure(
        UnsupportedBodyType(f"cannot read {kind} from {type(body).__name__}")
    )
