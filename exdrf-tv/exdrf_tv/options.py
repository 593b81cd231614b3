from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from exdrf_tv.constants import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_PAGE_SIZE_OPTIONS,
    DEFAULT_ROW_KEY,
    SelectionMode,
    SortDirection,
)
from exdrf_tv.errors import ValidationError
from exdrf_tv.filter_config import FilterConfig
from exdrf_tv.persistence import make_storage_key


class SortInfo(BaseModel):
    """One entry of the initial sort specification."""

    field: str
    direction: SortDirection = "asc"


class TableInfo(BaseModel):
    """The options of a table.

    Keys may be given in snake_case or camelCase.

    Attributes:
        table_id: Identifies the table; used to build the storage key.
        url_path: Optional path of the page hosting the table.
        identifier: Optional extra discriminator for the storage key.
        row_key: The property path of the record identifier.
        page_index: The initial 0-based page index.
        page_size: The initial page size.
        page_size_options: The page sizes offered to the user.
        sorting: The initial sort specification.
        filter_values: The initial (default) filter values.
        filter_configs: Explicit filter configurations; derived from the
            columns when empty.
        default_visibility: Explicit initial visibility by column id.
        default_hidden: Columns that start hidden.
        server_pagination: Pagination is done by the data source.
        server_sorting: Sorting is done by the data source.
        server_filtering: Filtering and search are done by the data
            source.
        multi_sort: Allow sorting by more than one column.
        complex_filtering: Evaluate filter groups.
        persist: Keep the state in the persistence store.
        selection_enabled: Allow selecting rows.
        selection_mode: `single` or `multiple`.
        expansion_enabled: Allow expanding rows.
        search_fields: The fields searched by the global search; all
            quick-search columns when empty.
        search_case_sensitive: Whether the global search respects case.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    table_id: str = "table"
    url_path: Optional[str] = None
    identifier: Optional[str] = None
    row_key: str = DEFAULT_ROW_KEY

    page_index: int = Field(default=0, ge=0)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)
    page_size_options: List[int] = Field(
        default_factory=lambda: list(DEFAULT_PAGE_SIZE_OPTIONS)
    )
    sorting: List[SortInfo] = Field(default_factory=list)
    filter_values: Dict[str, Any] = Field(default_factory=dict)
    filter_configs: List[FilterConfig] = Field(default_factory=list)
    default_visibility: Dict[str, bool] = Field(default_factory=dict)
    default_hidden: List[str] = Field(default_factory=list)

    server_pagination: bool = False
    server_sorting: bool = False
    server_filtering: bool = False

    multi_sort: bool = True
    complex_filtering: bool = True
    persist: bool = False

    selection_enabled: bool = True
    selection_mode: SelectionMode = "multiple"
    expansion_enabled: bool = True

    search_fields: List[str] = Field(default_factory=list)
    search_case_sensitive: bool = False

    @field_validator("table_id")
    @classmethod
    def validate_table_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("The table id can't be empty")
        return v

    @property
    def server_side(self) -> bool:
        """Whether any concern is handled by the data source."""
        return (
            self.server_pagination
            or self.server_sorting
            or self.server_filtering
        )

    @property
    def storage_key(self) -> Optional[str]:
        """The key scoping the persisted state; None when not persisting."""
        if not self.persist:
            return None
        return make_storage_key(self.table_id, self.url_path, self.identifier)


def parse_options(
    options: Union[TableInfo, Mapping[str, Any], None] = None,
    **kwargs: Any,
) -> TableInfo:
    """Create the options of a table.

    Args:
        options: Options as a model or a mapping.
        kwargs: Individual options; they override those in `options`.

    Raises:
        ValidationError: The options are not valid.
    """
    if isinstance(options, TableInfo):
        data: Dict[str, Any] = options.model_dump()
    else:
        data = dict(options or {})
    data.update(kwargs)
    try:
        return TableInfo.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(str(e), "options") from e
