"""Message bodies in their current physical form.

A body is one of four variants:

    StringBody   the body was materialized as text
    BinaryBody   the body was materialized as bytes
    EmptyBody    there is no body
    LiveBody     the body has not been read yet, it is backed by a single
                 consumption source provided by the host runtime

The non-live variants are immutable values. A LiveBody hands out its source
at most once, through LiveBody.consume().
"""

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Protocol, Union

from typing_extensions import TypeAlias

from hinoto.error import AlreadyRead, ReadError

logger = logging.getLogger(__name__)


class BodySource(Protocol):
    """Protocol for the unread body of a native request.

    Runtimes implement read() and may override text() and json() when the
    native request object has its own decoders.
    """

    charset: str = "utf-8"

    @property
    def body_used(self) -> bool:
        """Whether the native body was already drained by someone else."""
        return False

    async def read(self) -> bytes:
        """Drain the body as bytes."""
        ...

    async def text(self) -> str:
        """Drain the body and decode it as text."""
        return (await self.read()).decode(self.charset, "replace")

    async def json(self) -> Any:
        """Drain the body and parse it as JSON."""
        return json.loads(await self.read())


class BufferedSource(BodySource):
    """A body source over bytes that are already in memory."""

    def __init__(self, data: bytes, charset: str = "utf-8"):
        self._data = data
        self.charset = charset

    async def read(self) -> bytes:
        return self._data


class FailedSource(BodySource):
    """A body source that reports a fault captured while reading the native
    body eagerly, so that the fault surfaces when the body is read."""

    def __init__(self, error: Exception):
        self.error = error

    async def read(self) -> bytes:
        raise ReadError(str(self.error) or type(self.error).__name__)


@dataclass(frozen=True)
class StringBody:
    text: str


@dataclass(frozen=True)
class BinaryBody:
    data: bytes


@dataclass(frozen=True)
class EmptyBody:
    pass


class LiveBody:
    """A body that was not read yet.

    The source is only reachable through consume(), which transitions the
    body to its consumed state. Any later call raises AlreadyRead.
    """

    __slots__ = ("_source", "_consumed", "_lock")

    def __init__(self, source: BodySource):
        self._source = source
        self._consumed = False
        self._lock = threading.Lock()

    @property
    def consumed(self) -> bool:
        return self._consumed or self._source.body_used

    def consume(self) -> BodySource:
        """Take the source out of the body.

        Raises:
            AlreadyRead: If the body was already consumed, or if the native
                source reports that its body was drained.
        """
        with self._lock:
            if self._consumed or self._source.body_used:
                self._consumed = True
                raise AlreadyRead()
            self._consumed = True
        logger.debug("consuming live body from %s", type(self._source).__name__)
        return self._source

    def __repr__(self):
        state = "consumed" if self._consumed else "unread"
        return f"LiveBody({type(self._source).__name__}, {state})"


Body: TypeAlias = Union[StringBody, BinaryBody, EmptyBody, LiveBody]
