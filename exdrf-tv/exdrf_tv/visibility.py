import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from attrs import define, field

from exdrf_tv.column import ColumnDescriptor
from exdrf_tv.constants import VISIBILITY_KEY_PREFIX
from exdrf_tv.events import safe_call
from exdrf_tv.persistence import JsonSlot, PersistenceStore

logger = logging.getLogger(__name__)

VisibilityState = Dict[str, bool]


def default_visibility_of(
    column: ColumnDescriptor,
    default_visibility: Optional[Mapping[str, bool]] = None,
    default_hidden: Optional[Iterable[str]] = None,
) -> bool:
    """Compute the initial visibility of a column.

    An explicit entry in `default_visibility` wins, then the column's own
    `default_visible` flag; otherwise the column is visible unless it is
    listed in `default_hidden`.
    """
    col_id = column.column_id
    if default_visibility and col_id in default_visibility:
        return bool(default_visibility[col_id])
    if column.default_visible is not None:
        return column.default_visible
    return col_id not in (default_hidden or ())


def compute_visibility(
    columns: Iterable[ColumnDescriptor],
    default_visibility: Optional[Mapping[str, bool]] = None,
    default_hidden: Optional[Iterable[str]] = None,
) -> VisibilityState:
    """Compute the default visibility of every column."""
    hidden = list(default_hidden or ())
    return {
        col.column_id: default_visibility_of(col, default_visibility, hidden)
        for col in columns
    }


def reconcile_visibility(
    columns: Iterable[ColumnDescriptor],
    state: Mapping[str, bool],
    default_visibility: Optional[Mapping[str, bool]] = None,
    default_hidden: Optional[Iterable[str]] = None,
) -> VisibilityState:
    """Add an entry for each column that is missing from the state.

    Existing entries are never changed or removed, so applying this twice
    with the same columns yields the same result as applying it once.
    """
    hidden = list(default_hidden or ())
    result = dict(state)
    for col in columns:
        if col.column_id not in result:
            result[col.column_id] = default_visibility_of(
                col, default_visibility, hidden
            )
    return result


def filter_visible(
    columns: Iterable[ColumnDescriptor], state: Mapping[str, bool]
) -> List[ColumnDescriptor]:
    """Keep the visible columns, preserving their order."""
    return [col for col in columns if state.get(col.column_id, True)]


@define
class ColumnVisibilityManager:
    """Keeps track of the columns that are shown to the user.

    Attributes:
        columns: The current column set.
        default_visibility: Explicit initial visibility by column id.
        default_hidden: Ids of the columns that start hidden.
        store: Where the state is persisted.
        storage_key: The key of the table; persistence is disabled when
            not provided.
        on_change: Called with a copy of the state after each change.
        state: The current visibility of each column.
    """

    columns: List[ColumnDescriptor] = field(factory=list)
    default_visibility: Dict[str, bool] = field(factory=dict)
    default_hidden: List[str] = field(factory=list)
    store: Optional[PersistenceStore] = field(default=None)
    storage_key: Optional[str] = field(default=None)
    on_change: Optional[Callable[[VisibilityState], None]] = field(
        default=None
    )
    state: VisibilityState = field(factory=dict, init=False)
    _slot: JsonSlot = field(init=False, repr=False)

    def __attrs_post_init__(self):
        self._slot = JsonSlot(
            store=self.store if self.storage_key else None,
            key=f"{VISIBILITY_KEY_PREFIX}-{self.storage_key}",
        )
        self.initialize(self.columns)

    @property
    def column_ids(self) -> List[str]:
        return [col.column_id for col in self.columns]

    def initialize(
        self,
        columns: Iterable[ColumnDescriptor],
        default_visibility: Optional[Mapping[str, bool]] = None,
        default_hidden: Optional[Iterable[str]] = None,
    ) -> VisibilityState:
        """Compute the state from defaults and the persisted snapshot.

        Persisted entries override the defaults for columns that are still
        present; entries for other columns are discarded.

        Args:
            columns: The column set.
            default_visibility: Replaces the stored explicit defaults.
            default_hidden: Replaces the stored list of hidden columns.

        Returns:
            A copy of the new state.
        """
        self.columns = list(columns)
        if default_visibility is not None:
            self.default_visibility = dict(default_visibility)
        if default_hidden is not None:
            self.default_hidden = list(default_hidden)

        state = compute_visibility(
            self.columns, self.default_visibility, self.default_hidden
        )
        persisted = self._slot.load(default={})
        if isinstance(persisted, dict):
            for key, value in persisted.items():
                if key in state:
                    state[key] = bool(value)
        self.state = state
        return dict(state)

    def reconcile(
        self,
        columns: Iterable[ColumnDescriptor],
        state: Optional[Mapping[str, bool]] = None,
    ) -> VisibilityState:
        """Adopt a new column set, adding defaults for new columns.

        Args:
            columns: The new column set.
            state: The state to reconcile; the current one by default.

        Returns:
            A copy of the reconciled state.
        """
        self.columns = list(columns)
        base = self.state if state is None else state
        new_state = reconcile_visibility(
            self.columns, base, self.default_visibility, self.default_hidden
        )
        if new_state != self.state:
            logger.debug(
                "Reconciled visibility from %s to %s", self.state, new_state
            )
            self._apply(new_state)
        return dict(new_state)

    def is_hidden(self, col_id: str) -> bool:
        return not self.state.get(col_id, True)

    def is_visible(self, col_id: str) -> bool:
        return self.state.get(col_id, True)

    def toggle(self, col_id: str):
        """Flip the visibility of a column; unknown ids are ignored."""
        if col_id not in self.state:
            return
        new_state = dict(self.state)
        new_state[col_id] = not new_state[col_id]
        self._apply(new_state)

    def set(self, col_id: str, visible: bool):
        """Set the visibility of a column; unknown ids are ignored."""
        if col_id not in self.state:
            return
        new_state = dict(self.state)
        new_state[col_id] = bool(visible)
        self._apply(new_state)

    def show_all(self):
        self._apply({col_id: True for col_id in self.column_ids})

    def hide_all(self):
        self._apply({col_id: False for col_id in self.column_ids})

    def toggle_all(self, target: Optional[bool] = None):
        """Show or hide all columns.

        Args:
            target: The visibility to apply. When omitted, all columns
                are hidden if all of them are visible, otherwise all are
                shown.
        """
        if target is None:
            target = not self.all_visible
        self._apply({col_id: bool(target) for col_id in self.column_ids})

    def reset(self):
        """Go back to the default visibility, discarding manual changes."""
        self._apply(
            compute_visibility(
                self.columns, self.default_visibility, self.default_hidden
            )
        )

    @property
    def all_visible(self) -> bool:
        return all(self.state.get(col_id, True) for col_id in self.column_ids)

    @property
    def visible_columns(self) -> List[ColumnDescriptor]:
        return filter_visible(self.columns, self.state)

    @property
    def hidden_columns(self) -> List[ColumnDescriptor]:
        return [
            col
            for col in self.columns
            if not self.state.get(col.column_id, True)
        ]

    def persist(self):
        """Write the current state to the store."""
        self._slot.save(self.state)

    def _apply(self, new_state: VisibilityState):
        self.state = new_state
        self.persist()
        safe_call(self.on_change, dict(new_state))
