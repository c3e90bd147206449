import enum
import logging
import os
from typing import MutableMapping, Optional

logger = logging.getLogger(__name__)

ADDR_ENVVAR = "HINOTO_ADDR"
BODY_STRATEGY_ENVVAR = "HINOTO_BODY_STRATEGY"

DEFAULT_ADDR = "localhost:8000"


@enum.unique
class BodyStrategy(str, enum.Enum):
    """How request normalizers capture the native request body."""

    EAGER = "eager"
    LAZY = "lazy"

    def __str__(self):
        return self.value


BodyStrategy.EAGER.__doc__ = "Read the body as text during normalization"
BodyStrategy.LAZY.__doc__ = "Wrap the unread native body in a LiveBody"


class Environment:
    """Named string values provided by the host.

    The environment wraps a mutable mapping, os.environ unless another store
    is given. An environment may also have no store at all, in which case
    every lookup misses and every update is refused.
    """

    def __init__(self, values: Optional[MutableMapping[str, str]] = None):
        self._values = values

    @classmethod
    def default(cls) -> "Environment":
        return cls(os.environ)

    def get(self, key: str) -> Optional[str]:
        if self._values is None:
            return None
        return self._values.get(key)

    def set(self, key: str, value: str) -> bool:
        """Set a value, returning False if the environment has no store."""
        if self._values is None:
            return False
        self._values[key] = value
        return True

    def __contains__(self, key: str) -> bool:
        return self._values is not None and key in self._values


def listen_address(env: Optional[Environment] = None) -> str:
    env = env or Environment.default()
    return env.get(ADDR_ENVVAR) or DEFAULT_ADDR


def body_strategy_from_environment(
    env: Optional[Environment] = None,
) -> Optional[BodyStrategy]:
    """Returns the body strategy configured in the environment, if any.

    Raises:
        ValueError: If the configured value is neither "eager" nor "lazy".
    """
    env = env or Environment.default()
    value = env.get(BODY_STRATEGY_ENVVAR)
    if not value:
        return None
    try:
        return BodyStrategy(value.strip().lower())
    except ValueError:
        raise ValueError(
            f"invalid {BODY_STRATEGY_ENVVAR} value {value!r}, "
            "expected 'eager' or 'lazy'"
        )
