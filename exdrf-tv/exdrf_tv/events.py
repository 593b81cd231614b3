import logging
from typing import Any, Callable, Optional

from attrs import define, field

logger = logging.getLogger(__name__)

CallbackType = Optional[Callable[..., Any]]


def safe_call(callback: CallbackType, *args: Any) -> None:
    """Invoke a caller-supplied callback.

    Errors raised by the callback are logged; the state change that
    triggered the notification has already been applied and stays.
    """
    if callback is None:
        return
    try:
        callback(*args)
    except Exception as e:
        logger.error(
            "Error in callback %s: %s",
            getattr(callback, "__name__", callback),
            e,
            exc_info=True,
        )


@define
class TableEvents:
    """Callbacks invoked by the orchestrator after a state change.

    Attributes:
        on_page_change: Receives the new page index.
        on_page_size_change: Receives the new page size.
        on_sort_change: Receives the new list of sort items.
        on_filter_change: Receives the new filter values.
        on_global_search_change: Receives the new search text.
        on_selection_change: Receives the sorted list of selected keys.
        on_expand_change: Receives the sorted list of expanded keys.
        on_visibility_change: Receives the new visibility map.
        on_refresh: Called when a refresh is requested.
        on_data: Receives the records and the total after a fetch.
        on_error: Receives the `DataSourceError` of a failed fetch.
    """

    on_page_change: CallbackType = field(default=None)
    on_page_size_change: CallbackType = field(default=None)
    on_sort_change: CallbackType = field(default=None)
    on_filter_change: CallbackType = field(default=None)
    on_global_search_change: CallbackType = field(default=None)
    on_selection_change: CallbackType = field(default=None)
    on_expand_change: CallbackType = field(default=None)
    on_visibility_change: CallbackType = field(default=None)
    on_refresh: CallbackType = field(default=None)
    on_data: CallbackType = field(default=None)
    on_error: CallbackType = field(default=None)

    def emit(self, name: str, *args: Any) -> None:
        """Invoke the callback with the given name, if set."""
        safe_call(getattr(self, name), *args)
