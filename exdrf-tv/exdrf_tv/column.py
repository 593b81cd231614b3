import logging
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Union,
)

from attrs import define, field
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from exdrf_tv.constants import FILTER_TYPES
from exdrf_tv.errors import ValidationError
from exdrf_tv.utils import get_property_value, humanize, to_text

logger = logging.getLogger(__name__)

AccessorType = Union[str, Callable[[Any], Any], None]


@define
class Cell:
    """The render-ready content of one cell.

    Attributes:
        text: The text to show.
        value: The raw value the text was created from.
        column_id: The column that produced the cell.
    """

    text: str
    value: Any = field(default=None)
    column_id: str = field(default="")


@define
class CellContext:
    """Everything a renderer may need to know about a cell.

    Attributes:
        record: The record of the row.
        value: The value extracted from the record by the column accessor.
        index: The position of the row in the rendered page.
        column: The column being rendered.
    """

    record: Any
    value: Any
    index: int
    column: "ColumnDescriptor"


class CellRenderer(Protocol):
    """Capability of a column to turn a cell context into a `Cell`."""

    def render(self, ctx: CellContext) -> Cell: ...


@define
class TextRenderer:
    """Default renderer; converts the value to text."""

    def render(self, ctx: CellContext) -> Cell:
        column = ctx.column
        if isinstance(ctx.value, bool):
            text = column.true_str if ctx.value else column.false_str
        else:
            text = to_text(ctx.value)
        return Cell(text=text, value=ctx.value, column_id=column.column_id)


@define
class CallableRenderer:
    """Adapts a plain function to the renderer interface.

    The function receives the context and may return either a `Cell` or
    anything else, in which case it is converted to text.
    """

    func: Callable[[CellContext], Any]

    def render(self, ctx: CellContext) -> Cell:
        result = self.func(ctx)
        if isinstance(result, Cell):
            return result
        return Cell(
            text=to_text(result),
            value=ctx.value,
            column_id=ctx.column.column_id,
        )


@define
class ColumnDescriptor:
    """Static metadata describing one column of a table.

    Attributes:
        id: The unique identifier of the column. When empty, the accessor
            (if it is a string) is used instead.
        accessor: How the value is read from a record: a dot-separated
            property path or a callable receiving the record.
        label: The text shown in the header. Defaults to a humanized
            version of the identifier.
        filter_type: One of the `FILTER_TYPE_*` constants. When not set
            the type is inferred from the data.
        filter_options: The choices offered by select filters.
        sortable: Whether the user can sort by this column.
        filterable: Whether the user can filter by this column.
        exportable: Whether the column is included in exports.
        qsearch: Whether the column is part of the quick search set.
        default_visible: The initial visibility of the column, if the
            column has an opinion about it.
        true_str: The text used for `True` values.
        false_str: The text used for `False` values.
        renderer: The renderer used for the cells of this column. A plain
            callable is accepted and wrapped.
    """

    id: str = field(default="")
    accessor: AccessorType = field(default=None)
    label: str = field(default="")
    filter_type: Optional[str] = field(default=None)
    filter_options: Optional[List[Any]] = field(default=None)
    sortable: bool = field(default=True)
    filterable: bool = field(default=True)
    exportable: bool = field(default=True)
    qsearch: bool = field(default=True)
    default_visible: Optional[bool] = field(default=None)
    true_str: str = field(default="Yes")
    false_str: str = field(default="No")
    renderer: Any = field(default=None, repr=False)

    def __attrs_post_init__(self):
        if not self.id:
            if isinstance(self.accessor, str) and self.accessor:
                self.id = self.accessor
            else:
                raise ValidationError(
                    "A column needs an id or a string accessor", "id"
                )
        if self.accessor is None:
            self.accessor = self.id
        if not self.label:
            self.label = humanize(self.id)
        if self.filter_type is not None and (
            self.filter_type not in FILTER_TYPES
        ):
            raise ValidationError(
                f"Unknown filter type {self.filter_type!r} for column "
                f"{self.id!r}",
                "filter_type",
            )

        # The renderer is resolved once, here.
        if self.renderer is None:
            self.renderer = TextRenderer()
        elif not hasattr(self.renderer, "render") and callable(self.renderer):
            self.renderer = CallableRenderer(self.renderer)

    @property
    def column_id(self) -> str:
        """The identifier used for filtering, sorting and export."""
        return self.id

    @property
    def path(self) -> Optional[str]:
        """The property path of the column, if it uses one."""
        if isinstance(self.accessor, str):
            return self.accessor
        return None

    def value_of(self, record: Any) -> Any:
        """Extract the value of this column from a record."""
        if callable(self.accessor):
            return self.accessor(record)
        return get_property_value(record, self.accessor)  # type: ignore

    def render(self, record: Any, index: int = 0) -> Cell:
        """Render the cell of this column for the given record."""
        ctx = CellContext(
            record=record,
            value=self.value_of(record),
            index=index,
            column=self,
        )
        return self.renderer.render(ctx)


class ColumnInfo(BaseModel):
    """Parser for column descriptors received as plain data.

    Both snake_case and camelCase keys are accepted (`filterType`,
    `defaultVisible`, ...); `accessorKey` is an alias for `accessor`.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: Optional[str] = None
    accessor: Optional[str] = Field(default=None, alias="accessorKey")
    label: Optional[str] = Field(default=None, alias="header")
    filter_type: Optional[str] = None
    filter_options: Optional[List[Any]] = None
    sortable: Optional[bool] = None
    filterable: Optional[bool] = None
    exportable: Optional[bool] = None
    qsearch: Optional[bool] = None
    default_visible: Optional[bool] = None
    true_str: Optional[str] = None
    false_str: Optional[str] = None

    @field_validator("filter_type")
    @classmethod
    def validate_filter_type(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in FILTER_TYPES:
            raise ValueError(f"Unknown filter type {v!r}")
        return v

    def to_column(self) -> ColumnDescriptor:
        """Create the column descriptor."""
        return ColumnDescriptor(**self.model_dump(exclude_none=True))


def column_from_dict(data: Dict[str, Any]) -> ColumnDescriptor:
    """Create a column descriptor from a plain mapping.

    Raises:
        ValidationError: The mapping does not describe a valid column.
    """
    try:
        info = ColumnInfo.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(str(e), "columns") from e
    return info.to_column()


def normalize_columns(
    columns: Iterable[Union[ColumnDescriptor, Dict[str, Any]]],
) -> List[ColumnDescriptor]:
    """Bring a list of columns to `ColumnDescriptor` instances and check
    that the identifiers are unique.

    Raises:
        ValidationError: Two columns share the same identifier or one of
            them is invalid.
    """
    result: List[ColumnDescriptor] = []
    seen = set()
    for col in columns:
        if not isinstance(col, ColumnDescriptor):
            col = column_from_dict(col)
        if col.column_id in seen:
            raise ValidationError(
                f"Duplicate column id {col.column_id!r}", "columns"
            )
        seen.add(col.column_id)
        result.append(col)
    return result
