import json
import logging
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol

from attrs import define, field

from exdrf_tv.column import ColumnDescriptor
from exdrf_tv.constants import ExportSource
from exdrf_tv.errors import ValidationError

if TYPE_CHECKING:
    from exdrf_tv.orchestrator import TableStateOrchestrator  # noqa: F401

logger = logging.getLogger(__name__)


def format_export_value(value: Any, column: Optional[ColumnDescriptor]) -> str:
    """Convert a cell value to the text written in an export.

    Args:
        value: The raw value.
        column: The column of the value; provides the texts for booleans.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        if column is None:
            return "Yes" if value else "No"
        return column.true_str if value else column.false_str
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


@define
class ExportTable:
    """The tabular content of an export.

    Attributes:
        headers: The column headers; empty when headers are not included.
        rows: One list of cell texts for each record.
        column_ids: The ids of the exported columns.
    """

    headers: List[str] = field(factory=list)
    rows: List[List[str]] = field(factory=list)
    column_ids: List[str] = field(factory=list)

    def as_dicts(self) -> List[Dict[str, str]]:
        """The rows as mappings keyed by column id."""
        return [dict(zip(self.column_ids, row)) for row in self.rows]


class ExportSink(Protocol):
    """Consumer of an export table; it encodes and writes the content."""

    def write(self, table: ExportTable) -> Any: ...


SOURCES = ("filtered", "page", "selected", "all")


@define
class ExportProjection:
    """Projects the state of a table to an `ExportTable`.

    Only visible columns that are exportable take part.

    Attributes:
        table: The table to export.
        custom_headers: Column id -> header text that replaces the label.
        include_headers: Whether the header row is produced.
        source: Which records are exported: those passing the filters,
            those on the current page, the selected ones or all loaded
            records.
    """

    table: "TableStateOrchestrator"
    custom_headers: Dict[str, str] = field(factory=dict)
    include_headers: bool = field(default=True)
    source: ExportSource = field(default="filtered")

    def __attrs_post_init__(self):
        if self.source not in SOURCES:
            raise ValidationError(
                f"Invalid export source {self.source!r}", "source"
            )

    @property
    def columns(self) -> List[ColumnDescriptor]:
        return [c for c in self.table.visible_columns if c.exportable]

    def header_of(self, column: ColumnDescriptor) -> str:
        return self.custom_headers.get(
            column.column_id, column.label or column.column_id
        )

    def records(self) -> List[Any]:
        if self.source == "page":
            return self.table.rows
        if self.source == "selected":
            return self.table.selected_rows
        if self.source == "all":
            return self.table.data
        return self.table.filtered_rows

    def project(self) -> ExportTable:
        """Compute the headers and the formatted cells."""
        columns = self.columns
        rows = [
            [format_export_value(c.value_of(r), c) for c in columns]
            for r in self.records()
        ]
        logger.debug(
            "Exporting %d rows and %d columns", len(rows), len(columns)
        )
        return ExportTable(
            headers=(
                [self.header_of(c) for c in columns]
                if self.include_headers
                else []
            ),
            rows=rows,
            column_ids=[c.column_id for c in columns],
        )

    def export_to(self, sink: ExportSink) -> Any:
        """Hand the projection to a sink that performs the encoding."""
        return sink.write(self.project())
