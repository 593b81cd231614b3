import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from attrs import define, field
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from exdrf_tv.errors import DataSourceError

logger = logging.getLogger(__name__)


@define
class FetchParams:
    """What the data source is asked for.

    Attributes:
        page_index: The 0-based index of the page.
        page_size: The number of records on a page.
        filters: Column id -> filter value.
        sorting: List of `{"field": ..., "direction": ...}` entries.
        global_filter: The global search text.
        groups: The filter groups, as plain dictionaries.
    """

    page_index: int
    page_size: int
    filters: Dict[str, Any] = field(factory=dict)
    sorting: List[Dict[str, str]] = field(factory=list)
    global_filter: str = field(default="")
    groups: List[Dict[str, Any]] = field(factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page_index": self.page_index,
            "page_size": self.page_size,
            "filters": dict(self.filters),
            "sorting": list(self.sorting),
            "global_filter": self.global_filter,
            "groups": list(self.groups),
        }


class FetchResult(BaseModel):
    """What the data source returns.

    Either `totalCount` or `total` may be provided; `totalCount` wins
    when both are present. When neither is, the number of records is
    used.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    data: List[Any] = Field(default_factory=list)
    total_count: Optional[int] = Field(default=None, alias="totalCount")
    total: Optional[int] = None

    @property
    def resolved_total(self) -> int:
        if self.total_count is not None:
            return self.total_count
        if self.total is not None:
            return self.total
        return len(self.data)


# The function supplied by the caller to fetch a page of records.
DataSourceFunc = Callable[
    [FetchParams], Awaitable[Union[FetchResult, Dict[str, Any]]]
]


def parse_result(raw: Any) -> FetchResult:
    """Bring the value returned by a data source to a `FetchResult`.

    Raises:
        DataSourceError: The value has an unexpected shape.
    """
    if isinstance(raw, FetchResult):
        return raw
    try:
        return FetchResult.model_validate(raw)
    except PydanticValidationError as e:
        raise DataSourceError(
            f"Invalid data source response: {e}", original=e
        ) from e


def normalize_error(
    error: BaseException, token: Optional[int] = None
) -> DataSourceError:
    """Turn anything raised by a data source into a `DataSourceError`."""
    if isinstance(error, DataSourceError):
        if error.token is None:
            error.token = token
        return error
    message = str(error) or error.__class__.__name__
    return DataSourceError(message, original=error, token=token)
