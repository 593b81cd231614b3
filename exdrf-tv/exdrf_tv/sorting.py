import logging
from functools import cmp_to_key
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from attrs import define, field

from exdrf_tv.column import ColumnDescriptor
from exdrf_tv.constants import (
    SORT_ASC,
    SORT_DESC,
    SORTING_KEY_PREFIX,
    SortDirection,
)
from exdrf_tv.errors import ValidationError
from exdrf_tv.events import safe_call
from exdrf_tv.persistence import JsonSlot, PersistenceStore
from exdrf_tv.utils import (
    get_property_value,
    is_date_like,
    to_datetime,
    to_number,
    to_text,
)

logger = logging.getLogger(__name__)


@define(frozen=True)
class SortItem:
    """One entry of the sort specification.

    Attributes:
        field: The id of the column.
        direction: `asc` or `desc`.
    """

    field: str
    direction: SortDirection = SORT_ASC

    def __attrs_post_init__(self):
        if self.direction not in (SORT_ASC, SORT_DESC):
            raise ValidationError(
                f"Invalid sort direction {self.direction!r}", "direction"
            )

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "direction": self.direction}

    @classmethod
    def from_any(cls, value: Any) -> "SortItem":
        """Create a sort item from an item, a mapping or a
        `(field, direction)` pair."""
        if isinstance(value, SortItem):
            return value
        if isinstance(value, dict):
            return cls(
                field=str(value["field"]),
                direction=value.get("direction", SORT_ASC),
            )
        f_name, direction = value
        return cls(field=str(f_name), direction=direction)


SortSpec = List[SortItem]


def compare_values(a: Any, b: Any) -> int:
    """Compare two cell values in ascending order.

    Missing values come last. Values that both look like numbers compare
    numerically, dates compare chronologically and everything else
    compares as case-insensitive text.
    """
    if a is None and b is None:
        return 0
    if a is None:
        return 1
    if b is None:
        return -1

    if is_date_like(a) and is_date_like(b):
        da, db = to_datetime(a), to_datetime(b)
        if da is not None and db is not None:
            return (da > db) - (da < db)

    na, nb = to_number(a), to_number(b)
    if na is not None and nb is not None:
        return (na > nb) - (na < nb)

    ta, tb = to_text(a), to_text(b)
    la, lb = ta.lower(), tb.lower()
    if la != lb:
        return (la > lb) - (la < lb)
    return (ta > tb) - (ta < tb)


def sort_records(
    records: Iterable[Any],
    sorting: Iterable[SortItem],
    columns: Optional[Dict[str, ColumnDescriptor]] = None,
) -> List[Any]:
    """Sort records by a multi-column specification.

    The sort is stable: records that compare equal keep their order.

    Args:
        records: The records to sort.
        sorting: The sort items, most significant first.
        columns: Columns by id, used to read the values; items whose field
            is not a known column read the field as a property path.
    """
    items = list(sorting)
    result = list(records)
    if not items:
        return result

    getters: List[Callable[[Any], Any]] = []
    for item in items:
        col = (columns or {}).get(item.field)
        if col is not None:
            getters.append(col.value_of)
        else:
            getters.append(
                lambda r, path=item.field: get_property_value(r, path)
            )

    def compare(a: Any, b: Any) -> int:
        for item, getter in zip(items, getters):
            va, vb = getter(a), getter(b)
            cmp = compare_values(va, vb)
            if cmp == 0:
                continue
            if va is None or vb is None:
                return cmp
            return -cmp if item.direction == SORT_DESC else cmp
        return 0

    return sorted(result, key=cmp_to_key(compare))


@define
class SortManager:
    """Maintains the sort specification of a table.

    Attributes:
        columns: The columns of the table.
        initial_sorting: The sorting restored by `reset_sorting`.
        multi_sort: When set, more than one column can be sorted on.
        store: Where the state is persisted.
        storage_key: The key of the table; persistence is disabled when
            not provided.
        on_change: Called with the new list of sort items.
        sorting: The current sort specification.
    """

    columns: List[ColumnDescriptor] = field(factory=list)
    initial_sorting: SortSpec = field(factory=list)
    multi_sort: bool = field(default=True)
    store: Optional[PersistenceStore] = field(default=None)
    storage_key: Optional[str] = field(default=None)
    on_change: Optional[Callable[[SortSpec], None]] = field(default=None)
    sorting: SortSpec = field(factory=list, init=False)
    _slot: JsonSlot = field(init=False, repr=False)

    def __attrs_post_init__(self):
        self._slot = JsonSlot(
            store=self.store if self.storage_key else None,
            key=f"{SORTING_KEY_PREFIX}-{self.storage_key}",
        )
        self.initial_sorting = [
            SortItem.from_any(s) for s in self.initial_sorting
        ]
        persisted = self._slot.load(
            default=None,
            decode=lambda v: [SortItem.from_any(s) for s in v],
        )
        if persisted:
            self.sorting = self.valid_only(persisted)
        else:
            self.sorting = list(self.initial_sorting)

    @property
    def columns_by_id(self) -> Dict[str, ColumnDescriptor]:
        return {col.column_id: col for col in self.columns}

    def is_sortable(self, col_id: str) -> bool:
        col = self.columns_by_id.get(col_id)
        return col is not None and col.sortable

    def valid_only(self, sorting: Iterable[SortItem]) -> SortSpec:
        """Drop the items that refer to columns that can't be sorted."""
        result = []
        seen = set()
        for item in sorting:
            if item.field in seen or not self.is_sortable(item.field):
                continue
            seen.add(item.field)
            result.append(item)
        return result

    def get_direction(self, col_id: str) -> Optional[SortDirection]:
        for item in self.sorting:
            if item.field == col_id:
                return item.direction
        return None

    def get_sort_index(self, col_id: str) -> Optional[int]:
        """The position of the column in the sort specification."""
        for i, item in enumerate(self.sorting):
            if item.field == col_id:
                return i
        return None

    def set_sort(self, col_id: str, direction: Optional[SortDirection]):
        """Sort by a column or, with a `None` direction, stop sorting by it.

        With multi-sort the column keeps its position (or is appended);
        otherwise it replaces the whole specification. Columns that are not
        sortable are ignored.
        """
        if not self.is_sortable(col_id):
            return
        if direction is None:
            self._apply([s for s in self.sorting if s.field != col_id])
            return

        item = SortItem(field=col_id, direction=direction)
        if not self.multi_sort:
            self._apply([item])
            return

        if self.get_sort_index(col_id) is None:
            self._apply(self.sorting + [item])
        else:
            self._apply(
                [item if s.field == col_id else s for s in self.sorting]
            )

    def toggle_sort(self, col_id: str):
        """Cycle the column through ascending, descending and unsorted."""
        current = self.get_direction(col_id)
        if current is None:
            self.set_sort(col_id, SORT_ASC)
        elif current == SORT_ASC:
            self.set_sort(col_id, SORT_DESC)
        else:
            self.set_sort(col_id, None)

    def set_sorting(
        self, sorting: Iterable[Union[SortItem, Dict[str, Any], Any]]
    ):
        """Replace the sort specification, dropping unsortable columns."""
        items = self.valid_only(SortItem.from_any(s) for s in sorting)
        if not self.multi_sort:
            items = items[:1]
        self._apply(items)

    def clear_sorting(self):
        self._apply([])

    def reset_sorting(self):
        self._apply(list(self.initial_sorting))

    def reconcile(self, columns: Iterable[ColumnDescriptor]) -> bool:
        """Adopt a new column set, dropping items of removed columns.

        Returns:
            True if the sort specification changed.
        """
        self.columns = list(columns)
        valid = self.valid_only(self.sorting)
        if valid == self.sorting:
            return False
        self._apply(valid)
        return True

    def apply(self, records: Iterable[Any]) -> List[Any]:
        """Sort records with the current specification."""
        return sort_records(records, self.sorting, self.columns_by_id)

    def to_list(self) -> List[Dict[str, str]]:
        return [s.to_dict() for s in self.sorting]

    def _apply(self, sorting: SortSpec):
        logger.debug("Changing sorting from %s to %s", self.sorting, sorting)
        self.sorting = sorting
        self._slot.save(self.to_list())
        safe_call(self.on_change, list(sorting))
