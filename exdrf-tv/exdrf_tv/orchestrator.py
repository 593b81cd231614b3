import asyncio
import logging
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Set,
    Union,
)

from attrs import define, evolve, field

from exdrf_tv.column import ColumnDescriptor, normalize_columns
from exdrf_tv.constants import GroupOperator, RecIdType, SortDirection
from exdrf_tv.data_source import (
    DataSourceFunc,
    FetchParams,
    normalize_error,
    parse_result,
)
from exdrf_tv.errors import DataSourceError
from exdrf_tv.events import TableEvents
from exdrf_tv.filter_engine import (
    FilterEngine,
    FilterGroup,
    FilterPreset,
    utc_now,
)
from exdrf_tv.keys import KeySet
from exdrf_tv.options import TableInfo, parse_options
from exdrf_tv.pagination import PaginationState
from exdrf_tv.persistence import PersistenceStore
from exdrf_tv.requests import FetchRequest, FetchRequestManager
from exdrf_tv.search import GlobalSearch
from exdrf_tv.sorting import SortItem, SortManager
from exdrf_tv.utils import record_key
from exdrf_tv.visibility import ColumnVisibilityManager

logger = logging.getLogger(__name__)


@define
class TableView:
    """A render-ready snapshot of the state of a table.

    Attributes:
        rows: The records of the current page.
        filtered_rows: All records that pass the filters, sorted, before
            pagination. With server-side pagination this is the current
            page.
        total: The number of records across all pages.
        pagination: A copy of the pagination state.
        sorting: The sort specification.
        filters: The flat filter values.
        groups: The filter groups.
        global_filter: The global search text.
        selected_keys: The identifiers of the selected records.
        selected_rows: The selected records among the loaded ones.
        expanded_keys: The identifiers of the expanded records.
        visible_columns: The columns to show, in order.
        active_preset_id: The preset the filters were loaded from.
        loading: Whether a fetch is in progress.
        error: The error of the last fetch, if it failed.
        all_selected: Whether every filtered record is selected.
        some_selected: Whether some, but not all, filtered records are
            selected.
    """

    rows: List[Any]
    filtered_rows: List[Any]
    total: int
    pagination: PaginationState
    sorting: List[SortItem]
    filters: Dict[str, Any]
    groups: List[FilterGroup]
    global_filter: str
    selected_keys: List[RecIdType]
    selected_rows: List[Any]
    expanded_keys: List[RecIdType]
    visible_columns: List[ColumnDescriptor]
    active_preset_id: Optional[str] = field(default=None)
    loading: bool = field(default=False)
    error: Optional[DataSourceError] = field(default=None)
    all_selected: bool = field(default=False)
    some_selected: bool = field(default=False)


class TableStateOrchestrator:
    """Composes filtering, sorting, pagination, selection and expansion
    into one consistent view of a table.

    Each of filtering, sorting and pagination is computed locally or, in
    server mode, delegated to the data source. A change to a concern that
    is server-managed triggers exactly one fetch; responses to requests
    that were superseded by a newer one are discarded. Fetches run as
    tasks of the running event loop; without one they are deferred until
    `wait_idle` or `refresh` is awaited.

    Attributes:
        info: The options of the table.
        columns: The current column set.
        data_source: The asynchronous function that provides records in
            server mode.
        events: The callbacks notified after state changes.
        visibility: The column visibility manager.
        filter_engine: The filter state and evaluator.
        sort_manager: The sort state.
        pagination: The pagination state.
        selection: The selected record identifiers.
        expansion: The expanded record identifiers.
        search: The global search.
        requests: Issues the tokens of the fetch requests.
        loading: Whether the latest fetch is in progress.
        error: The error of the latest fetch, if it failed.
    """

    info: TableInfo
    columns: List[ColumnDescriptor]
    data_source: Optional[DataSourceFunc]
    events: TableEvents
    visibility: ColumnVisibilityManager
    filter_engine: FilterEngine
    sort_manager: SortManager
    pagination: PaginationState
    selection: KeySet
    expansion: KeySet
    search: GlobalSearch
    requests: FetchRequestManager
    loading: bool
    error: Optional[DataSourceError]

    def __init__(
        self,
        columns: Iterable[Union[ColumnDescriptor, Dict[str, Any]]],
        data: Optional[Iterable[Any]] = None,
        options: Union[TableInfo, Mapping[str, Any], None] = None,
        data_source: Optional[DataSourceFunc] = None,
        store: Optional[PersistenceStore] = None,
        events: Optional[TableEvents] = None,
        clock: Callable = utc_now,
        **kwargs: Any,
    ):
        self.info = parse_options(options, **kwargs)
        self.columns = normalize_columns(columns)
        self.data_source = data_source
        self.events = events or TableEvents()
        self.loading = False
        self.error = None

        self._data: List[Any] = list(data or [])
        self._total_known = not self.info.server_pagination
        self._server_total = 0
        self._tasks: Set[asyncio.Task] = set()
        self._deferred: Optional[FetchRequest] = None

        info = self.info
        key = info.storage_key
        self.visibility = ColumnVisibilityManager(
            columns=self.columns,
            default_visibility=info.default_visibility,
            default_hidden=info.default_hidden,
            store=store,
            storage_key=key,
            on_change=self._on_visibility_change,
        )
        self.filter_engine = FilterEngine(
            columns=self.columns,
            filter_configs=info.filter_configs,
            default_filters=info.filter_values,
            server_side=info.server_filtering,
            complex_filtering=info.complex_filtering,
            store=store,
            storage_key=key,
            clock=clock,
        )
        self.filter_engine.configure(self.columns, self._data)
        self.sort_manager = SortManager(
            columns=self.columns,
            initial_sorting=[(s.field, s.direction) for s in info.sorting],
            multi_sort=info.multi_sort,
            store=store,
            storage_key=key,
        )
        self.pagination = PaginationState(
            page_index=info.page_index,
            page_size=info.page_size,
            page_size_options=tuple(info.page_size_options),
        )
        self.selection = KeySet(
            mode=info.selection_mode, enabled=info.selection_enabled
        )
        self.expansion = KeySet(enabled=info.expansion_enabled)
        self.search = GlobalSearch(
            columns=self.columns,
            fields=list(info.search_fields),
            case_sensitive=info.search_case_sensitive,
        )
        self.requests = FetchRequestManager()

        if self.data_source is not None:
            self._request_fetch()
        elif info.server_side:
            logger.warning(
                "Table %s uses server mode but has no data source",
                info.table_id,
            )

    # -------- Derived state --------

    @property
    def server_filtering(self) -> bool:
        return self.info.server_filtering

    @property
    def server_sorting(self) -> bool:
        return self.info.server_sorting

    @property
    def server_pagination(self) -> bool:
        return self.info.server_pagination

    @property
    def data(self) -> List[Any]:
        """The records held locally (the last fetched ones in server
        mode)."""
        return list(self._data)

    @property
    def filtered_rows(self) -> List[Any]:
        """The filtered and sorted records, before pagination."""
        records = self._data
        if not self.server_filtering:
            records = self.filter_engine.filtered(records)
            records = self.search.apply(records)
        if not self.server_sorting:
            records = self.sort_manager.apply(records)
        return list(records)

    @property
    def total(self) -> int:
        if self.server_pagination:
            return self._server_total
        return len(self.filtered_rows)

    @property
    def rows(self) -> List[Any]:
        """The records of the current page."""
        return self._page_of(self.filtered_rows)

    @property
    def visible_columns(self) -> List[ColumnDescriptor]:
        return self.visibility.visible_columns

    @property
    def filters(self) -> Dict[str, Any]:
        return dict(self.filter_engine.filters)

    @property
    def sorting(self) -> List[SortItem]:
        return list(self.sort_manager.sorting)

    @property
    def global_filter(self) -> str:
        return self.search.text

    def key_of(self, record: Any) -> Optional[RecIdType]:
        """The canonical identifier of a record."""
        return record_key(record, self.info.row_key)

    def _keys_of(self, records: Iterable[Any]) -> List[RecIdType]:
        result = []
        for record in records:
            key = self.key_of(record)
            if key is not None:
                result.append(key)
        return result

    def _page_of(self, filtered: List[Any]) -> List[Any]:
        if self.server_pagination:
            return list(filtered)
        self.pagination.set_total(len(filtered))
        return self.pagination.slice(filtered)

    def _sync_total(self):
        if self.server_pagination:
            self.pagination.set_total(self._server_total)
        else:
            self.pagination.set_total(len(self.filtered_rows))

    def view(self) -> TableView:
        """Compute the view model of the table."""
        filtered = self.filtered_rows
        rows = self._page_of(filtered)
        filtered_keys = self._keys_of(filtered)
        all_selected = self.selection.covers(filtered_keys)
        return TableView(
            rows=rows,
            filtered_rows=filtered,
            total=self.total,
            pagination=evolve(self.pagination),
            sorting=self.sorting,
            filters=self.filters,
            groups=list(self.filter_engine.groups),
            global_filter=self.search.text,
            selected_keys=self.selection.sorted_keys,
            selected_rows=self.selected_rows,
            expanded_keys=self.expansion.sorted_keys,
            visible_columns=self.visible_columns,
            active_preset_id=self.filter_engine.active_preset_id,
            loading=self.loading,
            error=self.error,
            all_selected=all_selected,
            some_selected=(
                not all_selected
                and self.selection.intersects(filtered_keys)
            ),
        )

    # -------- Data and columns --------

    def set_data(self, records: Iterable[Any]):
        """Replace the local record set."""
        self._data = list(records)
        self.filter_engine.configure(self.columns, self._data)
        if not self.server_pagination:
            before = self.pagination.page_index
            self._sync_total()
            if before != self.pagination.page_index:
                self.events.emit("on_page_change", self.pagination.page_index)

    def set_columns(
        self, columns: Iterable[Union[ColumnDescriptor, Dict[str, Any]]]
    ):
        """React to a change of the column set.

        Visibility, filter and sort state of the columns that persist is
        kept; new columns get their default visibility and sort entries of
        removed columns are dropped.
        """
        self.columns = normalize_columns(columns)
        self.visibility.reconcile(self.columns)
        self.filter_engine.configure(self.columns, self._data)
        self.search.columns = list(self.columns)
        if self.sort_manager.reconcile(self.columns):
            self.events.emit("on_sort_change", self.sorting)
            if self.server_sorting:
                self._request_fetch()

    def _on_visibility_change(self, state: Dict[str, bool]):
        self.events.emit("on_visibility_change", state)

    # -------- Pagination --------

    def set_page(self, page_index: int):
        """Move to a page (0-based); the index is clamped to the valid
        range once the number of records is known."""
        if self._total_known:
            self._sync_total()
            changed = self.pagination.set_page(page_index)
        else:
            page_index = max(0, page_index)
            changed = page_index != self.pagination.page_index
            self.pagination.page_index = page_index
        if not changed:
            return
        logger.debug("Changing page to %d", self.pagination.page_index)
        self.events.emit("on_page_change", self.pagination.page_index)
        if self.server_pagination:
            self._request_fetch()

    def next_page(self):
        self.set_page(self.pagination.page_index + 1)

    def previous_page(self):
        self.set_page(self.pagination.page_index - 1)

    def first_page(self):
        self.set_page(0)

    def last_page(self):
        self._sync_total()
        self.set_page(self.pagination.page_count - 1)

    def set_page_size(self, page_size: int):
        """Change the page size; always goes back to the first page."""
        old_size = self.pagination.page_size
        old_index = self.pagination.page_index
        if not self.pagination.set_page_size(page_size):
            return
        if old_size != page_size:
            self.events.emit("on_page_size_change", page_size)
        if old_index != 0:
            self.events.emit("on_page_change", 0)
        if self.server_pagination:
            self._request_fetch()

    # -------- Sorting --------

    def _after_sort(self, before: List[SortItem]):
        if self.sort_manager.sorting == before:
            return
        self.events.emit("on_sort_change", self.sorting)
        if self.server_sorting:
            self._request_fetch()

    def set_sort(self, col_id: str, direction: Optional[SortDirection]):
        before = self.sorting
        self.sort_manager.set_sort(col_id, direction)
        self._after_sort(before)

    def toggle_sort(self, col_id: str):
        before = self.sorting
        self.sort_manager.toggle_sort(col_id)
        self._after_sort(before)

    def set_sorting(self, sorting: Iterable[Any]):
        before = self.sorting
        self.sort_manager.set_sorting(sorting)
        self._after_sort(before)

    def clear_sorting(self):
        before = self.sorting
        self.sort_manager.clear_sorting()
        self._after_sort(before)

    # -------- Filtering --------

    def _filter_state(self):
        engine = self.filter_engine
        return (dict(engine.filters), list(engine.groups))

    def _after_filter(self, before) -> None:
        """Apply the consequences of a filter change.

        The page index always goes back to 0; at most one fetch is issued.
        """
        changed = self._filter_state() != before
        page_reset = self.pagination.page_index != 0
        self.pagination.page_index = 0

        if changed:
            self.events.emit("on_filter_change", self.filters)
        if page_reset:
            self.events.emit("on_page_change", 0)
        if (changed and self.server_filtering) or (
            page_reset and self.server_pagination
        ):
            self._request_fetch()

    def set_filter(self, key: str, value: Any):
        before = self._filter_state()
        self.filter_engine.set_filter(key, value)
        self._after_filter(before)

    def remove_filter(self, key: str):
        before = self._filter_state()
        self.filter_engine.remove_filter(key)
        self._after_filter(before)

    def set_filters(self, values: Mapping[str, Any]):
        before = self._filter_state()
        self.filter_engine.set_filters(values)
        self._after_filter(before)

    def clear_filters(self):
        before = self._filter_state()
        self.filter_engine.clear_filters()
        self._after_filter(before)

    def reset_filters(self):
        before = self._filter_state()
        self.filter_engine.reset_filters()
        self._after_filter(before)

    def add_filter_group(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        operator: GroupOperator = "AND",
    ) -> FilterGroup:
        before = self._filter_state()
        group = self.filter_engine.add_group(filters, operator)
        self._after_filter(before)
        return group

    def remove_filter_group(self, group_id: str):
        before = self._filter_state()
        self.filter_engine.remove_group(group_id)
        self._after_filter(before)

    def update_filter_group(self, group_id: str, filters: Mapping[str, Any]):
        before = self._filter_state()
        self.filter_engine.update_group(group_id, filters)
        self._after_filter(before)

    def set_filter_group_operator(
        self, group_id: str, operator: GroupOperator
    ):
        before = self._filter_state()
        self.filter_engine.set_group_operator(group_id, operator)
        self._after_filter(before)

    def save_preset(
        self, name: str, filters: Optional[Mapping[str, Any]] = None
    ) -> FilterPreset:
        return self.filter_engine.save_preset(name, filters)

    def load_preset(self, preset_id: str) -> Optional[FilterPreset]:
        before = self._filter_state()
        preset = self.filter_engine.load_preset(preset_id)
        if preset is not None:
            self._after_filter(before)
        return preset

    def delete_preset(self, preset_id: str) -> bool:
        return self.filter_engine.delete_preset(preset_id)

    def set_global_filter(self, text: Optional[str]):
        """Change the global search text; goes back to the first page."""
        changed = self.search.set_text(text)
        page_reset = self.pagination.page_index != 0
        self.pagination.page_index = 0
        if changed:
            self.events.emit("on_global_search_change", self.search.text)
        if page_reset:
            self.events.emit("on_page_change", 0)
        if (changed and self.server_filtering) or (
            page_reset and self.server_pagination
        ):
            self._request_fetch()

    # -------- Selection and expansion --------

    def _selection_changed(self, changed: bool):
        if changed:
            self.events.emit(
                "on_selection_change", self.selection.sorted_keys
            )

    def _expansion_changed(self, changed: bool):
        if changed:
            self.events.emit("on_expand_change", self.expansion.sorted_keys)

    @property
    def selected_keys(self) -> List[RecIdType]:
        return self.selection.sorted_keys

    @property
    def selected_count(self) -> int:
        return len(self.selection)

    @property
    def selected_rows(self) -> List[Any]:
        """The selected records among the ones held locally."""
        return [r for r in self._data if self.key_of(r) in self.selection]

    def is_selected(self, key: Any) -> bool:
        return key in self.selection

    @property
    def is_all_selected(self) -> bool:
        return self.selection.covers(self._keys_of(self.filtered_rows))

    @property
    def is_some_selected(self) -> bool:
        keys = self._keys_of(self.filtered_rows)
        return self.selection.intersects(keys) and not (
            self.selection.covers(keys)
        )

    def toggle_row_selection(self, key: Any):
        self._selection_changed(self.selection.toggle(key))

    def select_row(self, key: Any):
        self._selection_changed(self.selection.add(key))

    def deselect_row(self, key: Any):
        self._selection_changed(self.selection.discard(key))

    def set_selected_keys(self, keys: Iterable[Any]):
        self._selection_changed(self.selection.set_keys(keys))

    def select_all(self):
        """Select every record that passes the filters (all pages).

        Records outside the filtered set are deselected.
        """
        keys = self._keys_of(self.filtered_rows)
        self._selection_changed(self.selection.fill(keys))

    def select_none(self):
        self._selection_changed(self.selection.clear())

    def select_invert(self):
        """Select the filtered records that are not selected; everything
        else is deselected."""
        keys = self._keys_of(self.filtered_rows)
        self._selection_changed(self.selection.invert(keys))

    @property
    def expanded_keys(self) -> List[RecIdType]:
        return self.expansion.sorted_keys

    @property
    def expanded_rows(self) -> List[Any]:
        return [r for r in self._data if self.key_of(r) in self.expansion]

    def is_expanded(self, key: Any) -> bool:
        return key in self.expansion

    def toggle_row_expansion(self, key: Any):
        self._expansion_changed(self.expansion.toggle(key))

    def expand_row(self, key: Any):
        self._expansion_changed(self.expansion.add(key))

    def collapse_row(self, key: Any):
        self._expansion_changed(self.expansion.discard(key))

    def set_expanded_keys(self, keys: Iterable[Any]):
        self._expansion_changed(self.expansion.set_keys(keys))

    def expand_all(self):
        keys = self._keys_of(self.filtered_rows)
        self._expansion_changed(self.expansion.fill(keys))

    def collapse_all(self):
        self._expansion_changed(self.expansion.clear())

    # -------- Reset --------

    def reset(self):
        """Restore pagination, sorting and filters to their initial values,
        clear the global search and the selection.

        Issues at most one fetch.
        """
        info = self.info
        before_filters = self._filter_state()
        before_sort = self.sorting
        before_page = (self.pagination.page_index, self.pagination.page_size)
        before_search = self.search.text

        self.pagination.page_size = info.page_size
        self.pagination.page_index = info.page_index
        self.sort_manager.reset_sorting()
        self.filter_engine.reset_filters()
        if self.filter_engine.groups:
            self.filter_engine.clear_groups()
        self.search.set_text("")
        self._selection_changed(self.selection.clear())

        filters_changed = self._filter_state() != before_filters
        sort_changed = self.sorting != before_sort
        page_changed = (
            self.pagination.page_index,
            self.pagination.page_size,
        ) != before_page
        search_changed = self.search.text != before_search

        if filters_changed:
            self.events.emit("on_filter_change", self.filters)
        if search_changed:
            self.events.emit("on_global_search_change", "")
        if sort_changed:
            self.events.emit("on_sort_change", self.sorting)
        if page_changed:
            if before_page[1] != self.pagination.page_size:
                self.events.emit(
                    "on_page_size_change", self.pagination.page_size
                )
            self.events.emit("on_page_change", self.pagination.page_index)

        if (
            ((filters_changed or search_changed) and self.server_filtering)
            or (sort_changed and self.server_sorting)
            or (page_changed and self.server_pagination)
        ):
            self._request_fetch()

    # -------- Fetching --------

    def fetch_params(self) -> FetchParams:
        """The parameters describing the current state to the data
        source."""
        return FetchParams(
            page_index=self.pagination.page_index,
            page_size=self.pagination.page_size,
            filters=self.filter_engine.snapshot(),
            sorting=self.sort_manager.to_list(),
            global_filter=self.search.text.strip(),
            groups=[
                g.model_dump(mode="json")
                for g in self.filter_engine.active_groups
            ],
        )

    def _request_fetch(self) -> Optional[FetchRequest]:
        """Issue a new fetch request.

        The request runs as a task of the running loop or, if there is
        none, is kept until `wait_idle` is awaited.
        """
        if self.data_source is None:
            return None
        req = self.requests.add_request(self.fetch_params())
        self.loading = True
        logger.debug("Issued fetch %d with %s", req.token, req.params)

        if self._deferred is not None:
            self.requests.discard(self._deferred.token)
            self._deferred = None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deferred = req
            return req

        task = loop.create_task(self._run_fetch(req))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return req

    async def _run_fetch(self, req: FetchRequest):
        assert self.data_source is not None
        try:
            raw = await self.data_source(req.params)
            result = parse_result(raw)
        except Exception as e:
            error = normalize_error(e, req.token)
            if not self.requests.complete(req.token):
                logger.debug(
                    "Ignoring failure of superseded fetch %d", req.token
                )
                return
            self.error = error
            self.loading = self.requests.pending
            logger.error(
                "Error fetching records: %s",
                error.message,
                exc_info=error.original,
            )
            self.events.emit("on_error", error)
            return

        if not self.requests.complete(req.token):
            logger.debug(
                "Ignoring response of superseded fetch %d", req.token
            )
            return

        self._data = list(result.data)
        self._server_total = result.resolved_total
        self._total_known = True
        self.error = None
        self.loading = self.requests.pending
        self.filter_engine.configure(self.columns, self._data)
        if self.server_pagination:
            self.pagination.set_total(self._server_total)
        logger.debug(
            "Fetch %d loaded %d records out of %d",
            req.token,
            len(self._data),
            self._server_total,
        )
        self.events.emit("on_data", self.data, self._server_total)

    async def refresh(self):
        """Fetch the current state again from the data source."""
        self.events.emit("on_refresh")
        if self.data_source is None:
            return
        req = self._request_fetch()
        await self.wait_idle()
        return req

    async def wait_idle(self):
        """Wait until no fetch is in progress.

        Also runs a request that was issued while no loop was running.
        """
        while True:
            if self._deferred is not None:
                req = self._deferred
                self._deferred = None
                await self._run_fetch(req)
                continue
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending)
