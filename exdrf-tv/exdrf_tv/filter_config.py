import logging
from numbers import Number
from typing import Any, Callable, Iterable, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from exdrf_tv.column import ColumnDescriptor
from exdrf_tv.constants import (
    FILTER_TYPE_BOOLEAN,
    FILTER_TYPE_DATE,
    FILTER_TYPE_NUMBER,
    FILTER_TYPE_TEXT,
    FILTER_TYPES,
)
from exdrf_tv.utils import get_property_value, has_property, is_date_like

logger = logging.getLogger(__name__)


class FilterConfig(BaseModel):
    """How one column can be filtered.

    Attributes:
        key: The id of the column.
        label: The text shown next to the filter control.
        type: One of the `FILTER_TYPE_*` constants.
        options: The choices of select filters.
        accessor: The property path used to read the value. Defaults to
            the key.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    key: str
    label: str = ""
    type: str = FILTER_TYPE_TEXT
    options: Optional[List[Any]] = None
    accessor: Union[str, Callable[[Any], Any], None] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v not in FILTER_TYPES:
            raise ValueError(f"Unknown filter type {v!r}")
        return v

    def value_of(self, record: Any) -> Any:
        """Read the filtered value from a record."""
        if callable(self.accessor):
            return self.accessor(record)
        return get_property_value(record, self.accessor or self.key)

    def has_value(self, record: Any) -> bool:
        """Tell if the record carries the filtered property at all."""
        if callable(self.accessor):
            return True
        return has_property(record, self.accessor or self.key)


def infer_filter_type(value: Any) -> str:
    """Guess the filter type from a sample value."""
    if isinstance(value, bool):
        return FILTER_TYPE_BOOLEAN
    if is_date_like(value):
        return FILTER_TYPE_DATE
    if isinstance(value, Number):
        return FILTER_TYPE_NUMBER
    return FILTER_TYPE_TEXT


def derive_filter_configs(
    columns: Iterable[ColumnDescriptor],
    data: Sequence[Any] = (),
    explicit: Optional[Iterable[FilterConfig]] = None,
) -> List[FilterConfig]:
    """Create the filter configuration of a table.

    Explicit configurations, when given, are used as they are. Otherwise
    each filterable column gets one; its type is the column's declared
    filter type or is inferred from the first value that is not `None`
    found in the data.

    Args:
        columns: The columns of the table.
        data: The records used to infer the types.
        explicit: The configurations supplied by the caller.
    """
    if explicit:
        return list(explicit)

    result: List[FilterConfig] = []
    for col in columns:
        if not col.filterable:
            continue
        f_type = col.filter_type
        if f_type is None:
            f_type = FILTER_TYPE_TEXT
            for record in data:
                sample = col.value_of(record)
                if sample is not None:
                    f_type = infer_filter_type(sample)
                    break
        result.append(
            FilterConfig(
                key=col.column_id,
                label=col.label,
                type=f_type,
                options=col.filter_options,
                accessor=col.accessor,
            )
        )
    logger.debug(
        "Derived filter configs: %s",
        [(c.key, c.type) for c in result],
    )
    return result
