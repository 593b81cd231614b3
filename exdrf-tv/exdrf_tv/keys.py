import logging
from typing import Any, Iterable, List, Set

from attrs import define, field

from exdrf_tv.constants import RecIdType, SelectionMode
from exdrf_tv.errors import ValidationError
from exdrf_tv.utils import normalize_key

logger = logging.getLogger(__name__)


@define
class KeySet:
    """A set of record identifiers, used for selection and expansion.

    Identifiers are kept in their canonical (string) form, so `1` and
    `"1"` are the same key. The set does not care whether the records it
    refers to are currently visible.

    Attributes:
        mode: In `single` mode at most one key is kept.
        enabled: When not set, all mutators are no-ops.
        keys: The keys in the set.
    """

    mode: SelectionMode = field(default="multiple")
    enabled: bool = field(default=True)
    keys: Set[RecIdType] = field(factory=set)

    def __attrs_post_init__(self):
        if self.mode not in ("single", "multiple"):
            raise ValidationError(
                f"Invalid selection mode {self.mode!r}", "mode"
            )
        self.keys = {normalize_key(k) for k in self.keys}

    def __contains__(self, key: Any) -> bool:
        return normalize_key(key) in self.keys

    def __len__(self) -> int:
        return len(self.keys)

    @property
    def sorted_keys(self) -> List[RecIdType]:
        return sorted(self.keys)

    def add(self, key: Any) -> bool:
        if not self.enabled:
            return False
        key = normalize_key(key)
        if self.mode == "single":
            new_keys = {key}
        else:
            new_keys = self.keys | {key}
        return self._replace(new_keys)

    def discard(self, key: Any) -> bool:
        if not self.enabled:
            return False
        return self._replace(self.keys - {normalize_key(key)})

    def toggle(self, key: Any) -> bool:
        if normalize_key(key) in self.keys:
            return self.discard(key)
        return self.add(key)

    def set_keys(self, keys: Iterable[Any]) -> bool:
        """Replace the content; in single mode only the first key is kept.
        """
        if not self.enabled:
            return False
        new_keys = [normalize_key(k) for k in keys]
        if self.mode == "single":
            new_keys = new_keys[:1]
        return self._replace(set(new_keys))

    def fill(self, keys: Iterable[Any]) -> bool:
        """Replace the content with all the given keys; ignored in single
        mode."""
        if not self.enabled or self.mode == "single":
            return False
        return self._replace({normalize_key(k) for k in keys})

    def invert(self, keys: Iterable[Any]) -> bool:
        """Keep only the given keys that are not in the set.

        Keys outside `keys` are dropped. Ignored in single mode.
        """
        if not self.enabled or self.mode == "single":
            return False
        scope = {normalize_key(k) for k in keys}
        return self._replace(scope - self.keys)

    def clear(self) -> bool:
        if not self.enabled:
            return False
        return self._replace(set())

    def covers(self, keys: Iterable[Any]) -> bool:
        """Tell if all of the given keys (at least one) are in the set."""
        scope = {normalize_key(k) for k in keys}
        return bool(scope) and scope <= self.keys

    def intersects(self, keys: Iterable[Any]) -> bool:
        return any(normalize_key(k) in self.keys for k in keys)

    def _replace(self, new_keys: Set[RecIdType]) -> bool:
        if new_keys == self.keys:
            return False
        self.keys = new_keys
        return True
