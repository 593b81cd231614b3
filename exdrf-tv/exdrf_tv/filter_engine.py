"""Client-side filter evaluation, filter groups and filter presets.

A record passes the filter state when:

- every entry of the flat filter map passes (AND across columns), and
- if one or more non-empty filter groups exist (and complex filtering is
  enabled), at least one of those groups passes. Inside an `AND` group
  every entry must pass, inside an `OR` group at least one.

Empty filter values (`None`, `""`, `[]`, `[None, None]`) never exclude a
record.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from attrs import define, field
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from exdrf_tv.column import ColumnDescriptor
from exdrf_tv.constants import (
    ACTIVE_PRESET_KEY_PREFIX,
    FILTERS_KEY_PREFIX,
    GROUPS_KEY_PREFIX,
    OP_AND,
    OP_OR,
    PRESETS_KEY_PREFIX,
    FilterValues,
    GroupOperator,
)
from exdrf_tv.errors import NotFoundError, ValidationError
from exdrf_tv.events import safe_call
from exdrf_tv.filter_config import FilterConfig, derive_filter_configs
from exdrf_tv.persistence import JsonSlot, PersistenceStore
from exdrf_tv.predicates import PredicateRegistry, predicate_registry
from exdrf_tv.utils import generate_id, is_empty_value

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FilterGroup(BaseModel):
    """A set of filter entries combined with one boolean operator.

    Attributes:
        id: The unique identifier of the group.
        filters: Column id -> filter value.
        operator: `AND` or `OR`.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    filters: Dict[str, Any] = Field(default_factory=dict)
    operator: GroupOperator = OP_AND

    @property
    def is_empty(self) -> bool:
        return len(self.filters) == 0


class FilterPreset(BaseModel):
    """A named snapshot of the filter state.

    Attributes:
        id: The unique identifier of the preset.
        name: The name, unique among the presets of a table.
        filters: The flat filter values.
        groups: The filter groups, if complex filtering was enabled when
            the preset was saved.
        created_at: When the preset was first saved.
        updated_at: When the preset was last saved.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    filters: Dict[str, Any] = Field(default_factory=dict)
    groups: Optional[List[FilterGroup]] = None
    created_at: datetime
    updated_at: datetime


_groups_adapter = TypeAdapter(List[FilterGroup])
_presets_adapter = TypeAdapter(List[FilterPreset])


def clean_filters(values: Mapping[str, Any]) -> FilterValues:
    """Drop the empty entries of a filter map."""
    return {k: v for k, v in values.items() if not is_empty_value(v)}


@define
class FilterEngine:
    """Maintains the filter state of a table and evaluates it.

    Attributes:
        columns: The columns of the table; used to derive the filter
            configuration when no explicit one is given.
        filter_configs: Explicit filter configurations.
        default_filters: The filters the engine starts with and goes back
            to on `reset_filters`.
        server_side: When set, filtering is performed by an external data
            source and `filtered` returns the records unchanged.
        complex_filtering: Whether filter groups are evaluated and stored
            in presets.
        store: Where the state is persisted.
        storage_key: The key of the table; persistence is disabled when
            not provided.
        on_change: Called with the new filter values after each change.
        registry: The predicates by filter type.
        clock: Returns the current time; used for preset timestamps.
        filters: The current flat filter values.
        groups: The current filter groups.
        presets: The saved presets.
        active_preset_id: The preset the current state was loaded from.
    """

    columns: List[ColumnDescriptor] = field(factory=list)
    filter_configs: List[FilterConfig] = field(factory=list)
    default_filters: FilterValues = field(factory=dict)
    server_side: bool = field(default=False)
    complex_filtering: bool = field(default=True)
    store: Optional[PersistenceStore] = field(default=None)
    storage_key: Optional[str] = field(default=None)
    on_change: Optional[Callable[[FilterValues], None]] = field(default=None)
    registry: PredicateRegistry = field(default=predicate_registry)
    clock: Callable[[], datetime] = field(default=utc_now)

    filters: FilterValues = field(factory=dict, init=False)
    groups: List[FilterGroup] = field(factory=list, init=False)
    presets: List[FilterPreset] = field(factory=list, init=False)
    active_preset_id: Optional[str] = field(default=None, init=False)

    _explicit_configs: List[FilterConfig] = field(
        factory=list, init=False, repr=False
    )
    _configs_by_key: Dict[str, FilterConfig] = field(
        factory=dict, init=False, repr=False
    )
    _filters_slot: JsonSlot = field(init=False, repr=False)
    _presets_slot: JsonSlot = field(init=False, repr=False)
    _active_slot: JsonSlot = field(init=False, repr=False)
    _groups_slot: JsonSlot = field(init=False, repr=False)

    def __attrs_post_init__(self):
        store = self.store if self.storage_key else None
        key = self.storage_key
        self._filters_slot = JsonSlot(store, f"{FILTERS_KEY_PREFIX}-{key}")
        self._presets_slot = JsonSlot(store, f"{PRESETS_KEY_PREFIX}-{key}")
        self._active_slot = JsonSlot(
            store, f"{ACTIVE_PRESET_KEY_PREFIX}-{key}"
        )
        self._groups_slot = JsonSlot(store, f"{GROUPS_KEY_PREFIX}-{key}")

        self._explicit_configs = list(self.filter_configs)
        self.default_filters = clean_filters(self.default_filters)
        self.configure(self.columns)
        self.load_persisted()

    # -------- Configuration --------

    def configure(
        self, columns: Iterable[ColumnDescriptor], data: Iterable[Any] = ()
    ) -> List[FilterConfig]:
        """Derive the filter configuration from columns and data.

        Filter values for columns that disappear are kept; they pass every
        record until a configuration for them shows up again.
        """
        self.columns = list(columns)
        self.filter_configs = derive_filter_configs(
            self.columns, list(data), self._explicit_configs
        )
        self._configs_by_key = {c.key: c for c in self.filter_configs}
        return self.filter_configs

    def get_filter_config(self, key: str) -> Optional[FilterConfig]:
        return self._configs_by_key.get(key)

    def load_persisted(self):
        """Read the persisted state, merging filters over the defaults."""
        persisted = self._filters_slot.load(default={})
        filters = dict(self.default_filters)
        if isinstance(persisted, dict):
            filters.update(clean_filters(persisted))
        self.filters = filters

        self.presets = self._presets_slot.load(
            default=[], decode=_presets_adapter.validate_python
        )
        self.groups = self._groups_slot.load(
            default=[], decode=_groups_adapter.validate_python
        )
        active = self._active_slot.load(default=None)
        if isinstance(active, str) and self.get_preset(active) is not None:
            self.active_preset_id = active
        else:
            self.active_preset_id = None

    def persist(self):
        """Write the whole filter state to the store."""
        self._filters_slot.save(self.filters)
        self._groups_slot.save(
            [g.model_dump(mode="json", by_alias=True) for g in self.groups]
        )
        self._presets_slot.save(
            [p.model_dump(mode="json", by_alias=True) for p in self.presets]
        )
        self._active_slot.save(self.active_preset_id)

    # -------- Flat filters --------

    def set_filter(self, key: str, value: Any):
        """Set the value of a filter; empty values remove it."""
        new_filters = dict(self.filters)
        if is_empty_value(value):
            new_filters.pop(key, None)
        else:
            new_filters[key] = value
        self._apply_filters(new_filters)

    def remove_filter(self, key: str):
        new_filters = dict(self.filters)
        new_filters.pop(key, None)
        self._apply_filters(new_filters)

    def set_filters(self, values: Mapping[str, Any]):
        """Replace all flat filter values."""
        self._apply_filters(clean_filters(values))

    def clear_filters(self):
        self._apply_filters({})

    def reset_filters(self):
        """Go back to the default filters."""
        self._apply_filters(dict(self.default_filters))

    def _apply_filters(self, new_filters: FilterValues):
        if new_filters != self.filters:
            logger.debug(
                "Changing filters from %s to %s", self.filters, new_filters
            )
        self.filters = new_filters
        self.active_preset_id = None
        self.persist()
        safe_call(self.on_change, dict(new_filters))

    @property
    def active_filters(self) -> List[str]:
        """The ids of the columns that have a non-empty filter value."""
        return [k for k, v in self.filters.items() if not is_empty_value(v)]

    @property
    def active_filter_count(self) -> int:
        return len(self.active_filters)

    @property
    def has_active_filters(self) -> bool:
        return self.active_filter_count > 0

    def is_filter_active(self, key: str) -> bool:
        return not is_empty_value(self.filters.get(key))

    # -------- Groups --------

    def get_group(self, group_id: str) -> Optional[FilterGroup]:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    def require_group(self, group_id: str) -> FilterGroup:
        """Like `get_group` but raises `NotFoundError`."""
        group = self.get_group(group_id)
        if group is None:
            raise NotFoundError("filter group", group_id)
        return group

    def add_group(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        operator: GroupOperator = OP_AND,
    ) -> FilterGroup:
        """Create a new filter group.

        Raises:
            ValidationError: The operator is neither `AND` nor `OR`.
        """
        operator = self._check_operator(operator)
        group = FilterGroup(
            id=generate_id("group"),
            filters=dict(filters or {}),
            operator=operator,
        )
        self._apply_groups(self.groups + [group])
        return group

    def remove_group(self, group_id: str):
        if self.get_group(group_id) is None:
            return
        self._apply_groups([g for g in self.groups if g.id != group_id])

    def update_group(self, group_id: str, filters: Mapping[str, Any]):
        """Replace the filters of a group."""
        if self.get_group(group_id) is None:
            return
        self._apply_groups(
            [
                (
                    g.model_copy(update={"filters": dict(filters)})
                    if g.id == group_id
                    else g
                )
                for g in self.groups
            ]
        )

    def set_group_operator(self, group_id: str, operator: GroupOperator):
        """Change the operator of a group.

        Raises:
            ValidationError: The operator is neither `AND` nor `OR`.
        """
        operator = self._check_operator(operator)
        if self.get_group(group_id) is None:
            return
        self._apply_groups(
            [
                (
                    g.model_copy(update={"operator": operator})
                    if g.id == group_id
                    else g
                )
                for g in self.groups
            ]
        )

    def clear_groups(self):
        self._apply_groups([])

    @staticmethod
    def _check_operator(operator: str) -> GroupOperator:
        op = str(operator).upper()
        if op not in (OP_AND, OP_OR):
            raise ValidationError(
                f"Invalid group operator {operator!r}", "operator"
            )
        return op  # type: ignore

    def _apply_groups(self, new_groups: List[FilterGroup]):
        logger.debug("Changing filter groups to %s", new_groups)
        self.groups = new_groups
        self.active_preset_id = None
        self.persist()
        safe_call(self.on_change, dict(self.filters))

    @property
    def active_groups(self) -> List[FilterGroup]:
        """The groups taking part in evaluation."""
        if not self.complex_filtering:
            return []
        return [g for g in self.groups if not g.is_empty]

    # -------- Presets --------

    def get_preset(self, preset_id: str) -> Optional[FilterPreset]:
        for preset in self.presets:
            if preset.id == preset_id:
                return preset
        return None

    def find_preset(self, name: str) -> Optional[FilterPreset]:
        """Locate a preset by name."""
        name = (name or "").strip()
        for preset in self.presets:
            if preset.name == name:
                return preset
        return None

    def save_preset(
        self, name: str, filters: Optional[Mapping[str, Any]] = None
    ) -> FilterPreset:
        """Save the current (or the given) filters under a name.

        A preset with the same name is overwritten, keeping its id and
        creation time. The saved preset becomes the active one.

        Args:
            name: The name of the preset; surrounding whitespace is
                removed.
            filters: The filter values to save; the current ones by
                default.

        Raises:
            ValidationError: The name is empty.
        """
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Preset name is required", "name")

        values = dict(self.filters if filters is None else filters)
        groups = (
            [g.model_copy(deep=True) for g in self.groups]
            if self.complex_filtering
            else None
        )
        now = self.clock()
        existing = self.find_preset(clean_name)
        if existing is not None:
            preset = FilterPreset(
                id=existing.id,
                name=clean_name,
                filters=values,
                groups=groups,
                created_at=existing.created_at,
                updated_at=now,
            )
            self.presets = [
                preset if p.id == existing.id else p for p in self.presets
            ]
            logger.debug("Overwrote filter preset %s", preset.id)
        else:
            preset = FilterPreset(
                id=generate_id("preset"),
                name=clean_name,
                filters=values,
                groups=groups,
                created_at=now,
                updated_at=now,
            )
            self.presets = self.presets + [preset]
            logger.debug("Created filter preset %s", preset.id)

        self.active_preset_id = preset.id
        self.persist()
        return preset

    def load_preset(self, preset_id: str) -> Optional[FilterPreset]:
        """Replace the current filters with those of a preset.

        Returns:
            The preset or None if there is no preset with that id.
        """
        preset = self.get_preset(preset_id)
        if preset is None:
            logger.debug("No filter preset with id %s", preset_id)
            return None

        self.filters = clean_filters(preset.filters)
        if self.complex_filtering and preset.groups is not None:
            self.groups = [g.model_copy(deep=True) for g in preset.groups]
        self.active_preset_id = preset.id
        self.persist()
        safe_call(self.on_change, dict(self.filters))
        return preset

    def delete_preset(self, preset_id: str) -> bool:
        """Remove a preset.

        Returns:
            True if the preset existed.
        """
        if self.get_preset(preset_id) is None:
            return False
        self.presets = [p for p in self.presets if p.id != preset_id]
        if self.active_preset_id == preset_id:
            self.active_preset_id = None
        self.persist()
        return True

    def set_active_preset_id(self, preset_id: Optional[str]):
        """Mark a preset as active without loading it."""
        if preset_id is not None and self.get_preset(preset_id) is None:
            return
        self.active_preset_id = preset_id
        self._active_slot.save(preset_id)

    # -------- Evaluation --------

    def passes_entry(self, record: Any, key: str, value: Any) -> bool:
        """Tell if a record passes one filter entry."""
        if is_empty_value(value):
            return True
        config = self.get_filter_config(key)
        if config is None:
            return True
        if not config.has_value(record):
            return False
        predicate = self.registry.get(config.type)
        if predicate is None:
            return True
        return predicate.matches(config.value_of(record), value)

    def passes_group(self, record: Any, group: FilterGroup) -> bool:
        """Tell if a record passes a filter group."""
        if group.is_empty:
            return True
        checks = (
            self.passes_entry(record, key, value)
            for key, value in group.filters.items()
        )
        if group.operator == OP_OR:
            return any(checks)
        return all(checks)

    def passes(self, record: Any) -> bool:
        """Tell if a record passes the whole filter state."""
        for key, value in self.filters.items():
            if not self.passes_entry(record, key, value):
                return False
        groups = self.active_groups
        if groups and not any(self.passes_group(record, g) for g in groups):
            return False
        return True

    def filtered(self, data: Iterable[Any]) -> List[Any]:
        """Return the records that pass the filters.

        In server-side mode the records are returned as they are.
        """
        if self.server_side:
            return list(data)
        return [record for record in data if self.passes(record)]

    def snapshot(self) -> Dict[str, Any]:
        """The filter state as sent to a data source."""
        return dict(self.filters)
