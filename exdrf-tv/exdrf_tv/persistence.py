import json
import logging
from typing import Any, Callable, Optional, Protocol

from attrs import define, field
from pyrsistent import pmap
from pyrsistent.typing import PMap

from exdrf_tv.errors import PersistenceError

logger = logging.getLogger(__name__)


class PersistenceStore(Protocol):
    """The key/value string store used to keep state between sessions."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


@define
class MemoryStore:
    """A persistence store that keeps everything in memory.

    Attributes:
        data: The immutable map of stored strings.
    """

    data: PMap[str, str] = field(default=pmap())

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data = self.data.set(key, value)

    def remove(self, key: str) -> None:
        self.data = self.data.discard(key)

    def __contains__(self, key: str) -> bool:
        return key in self.data

    def __len__(self) -> int:
        return len(self.data)


def make_storage_key(
    table_id: str,
    url_path: Optional[str] = None,
    identifier: Optional[str] = None,
) -> str:
    """Compose the key that scopes the state of one table instance.

    The result has the form `<table_id>[-<url_path>][-<identifier>]`; the
    url path is stripped of surrounding slashes and its inner slashes are
    replaced by dashes.
    """
    parts = [table_id]
    if url_path:
        path = url_path.strip("/").replace("/", "-")
        if path:
            parts.append(path)
    if identifier:
        parts.append(identifier)
    return "-".join(parts)


@define
class JsonSlot:
    """One JSON value kept in the persistence store under a fixed key.

    Failures of the store and corrupt content are logged and reported as
    "nothing stored"; they are never raised.

    Attributes:
        store: The store; when `None` the slot does nothing.
        key: The key in the store.
        last_error: The last persistence error, if any.
    """

    store: Optional[PersistenceStore]
    key: str
    last_error: Optional[PersistenceError] = field(default=None, init=False)

    def load(
        self,
        default: Any = None,
        decode: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        """Read and decode the stored value.

        Args:
            default: Returned when nothing (valid) is stored.
            decode: Optional function applied to the parsed JSON; any
                exception it raises marks the content as corrupt.
        """
        if self.store is None:
            return default
        try:
            raw = self.store.get(self.key)
        except Exception as e:
            self._report(PersistenceError(self.key, "get", e))
            return default
        if raw is None or raw == "":
            return default
        try:
            value = json.loads(raw)
            if decode is not None:
                value = decode(value)
        except Exception as e:
            self._report(PersistenceError(self.key, "decode", e))
            return default
        return value

    def save(self, value: Any) -> bool:
        """Encode and write a value.

        Returns:
            True if the value was written.
        """
        if self.store is None:
            return False
        try:
            text = json.dumps(value, default=str)
            self.store.set(self.key, text)
        except Exception as e:
            self._report(PersistenceError(self.key, "set", e))
            return False
        return True

    def _report(self, error: PersistenceError):
        self.last_error = error
        logger.warning("%s", error.message, exc_info=error.original)
