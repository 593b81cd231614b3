from typing import Any, Iterable, List, Optional, Sequence

from attrs import define, field

from exdrf_tv.column import ColumnDescriptor
from exdrf_tv.utils import get_property_value, to_text


@define
class GlobalSearch:
    """Quick search across several columns of a table.

    A record matches when the (trimmed) search text is found inside the
    text of any of the searched fields.

    Attributes:
        columns: The columns of the table. Those with `qsearch` set are
            searched unless `fields` is given.
        fields: Explicit property paths or column ids to search in.
        case_sensitive: Whether the comparison respects case.
        text: The current search text.
    """

    columns: List[ColumnDescriptor] = field(factory=list)
    fields: List[str] = field(factory=list)
    case_sensitive: bool = field(default=False)
    text: str = field(default="")

    @property
    def term(self) -> str:
        """The normalized search text."""
        term = (self.text or "").strip()
        return term if self.case_sensitive else term.lower()

    @property
    def is_active(self) -> bool:
        return bool(self.term)

    def set_text(self, text: Optional[str]) -> bool:
        """Change the search text.

        Returns:
            True if the text changed.
        """
        text = text or ""
        if text == self.text:
            return False
        self.text = text
        return True

    def _values(self, record: Any) -> Iterable[Any]:
        by_id = {col.column_id: col for col in self.columns}
        if self.fields:
            for name in self.fields:
                col = by_id.get(name)
                if col is not None:
                    yield col.value_of(record)
                else:
                    yield get_property_value(record, name)
            return
        for col in self.columns:
            if col.qsearch:
                yield col.value_of(record)

    def matches(self, record: Any) -> bool:
        term = self.term
        if not term:
            return True
        for value in self._values(record):
            if value is None:
                continue
            text = to_text(value)
            if not self.case_sensitive:
                text = text.lower()
            if term in text:
                return True
        return False

    def apply(self, records: Sequence[Any]) -> List[Any]:
        if not self.is_active:
            return list(records)
        return [r for r in records if self.matches(r)]
