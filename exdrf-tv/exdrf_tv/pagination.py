import math
from typing import Any, Dict, List, Sequence, Tuple

from attrs import define, field

from exdrf_tv.constants import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_PAGE_SIZE_OPTIONS,
    PAGE_ELLIPSIS_END,
    PAGE_ELLIPSIS_START,
)
from exdrf_tv.errors import ValidationError
from exdrf_tv.utils import count_label


@define
class PaginationState:
    """The position of the user in a paginated list.

    Attributes:
        page_index: The 0-based index of the current page.
        page_size: The number of records on a page.
        total: The number of records across all pages.
        page_size_options: The page sizes offered to the user.
    """

    page_index: int = field(default=0)
    page_size: int = field(default=DEFAULT_PAGE_SIZE)
    total: int = field(default=0)
    page_size_options: Tuple[int, ...] = field(
        default=DEFAULT_PAGE_SIZE_OPTIONS
    )

    def __attrs_post_init__(self):
        if self.page_size < 1:
            raise ValidationError("Page size must be positive", "page_size")
        if self.page_index < 0:
            raise ValidationError(
                "Page index can't be negative", "page_index"
            )

    @property
    def total_pages(self) -> int:
        """The number of pages; 0 when there are no records."""
        return math.ceil(self.total / self.page_size)

    @property
    def page_count(self) -> int:
        """The number of pages the user can navigate (at least 1)."""
        return max(1, self.total_pages)

    @property
    def current_page(self) -> int:
        """The 1-based number of the current page."""
        return self.page_index + 1

    @property
    def can_previous(self) -> bool:
        return self.page_index > 0

    @property
    def can_next(self) -> bool:
        return self.page_index < self.page_count - 1

    @property
    def offset(self) -> int:
        return self.page_index * self.page_size

    @property
    def row_range(self) -> Tuple[int, int]:
        """The 1-based, inclusive range of the rows on the current page."""
        if self.total <= 0:
            return 0, 0
        start = self.offset + 1
        end = min((self.page_index + 1) * self.page_size, self.total)
        return start, end

    @property
    def row_range_label(self) -> str:
        start, end = self.row_range
        return f"{start}-{end} of {count_label(self.total, 'row')}"

    def clamp(self, page_index: int) -> int:
        return min(max(0, page_index), self.page_count - 1)

    def set_page(self, page_index: int) -> bool:
        """Move to a page, clamped to the valid range.

        Returns:
            True if the page changed.
        """
        new_index = self.clamp(page_index)
        if new_index == self.page_index:
            return False
        self.page_index = new_index
        return True

    def set_page_size(self, page_size: int) -> bool:
        """Change the page size and go back to the first page.

        Raises:
            ValidationError: The size is not positive.

        Returns:
            True if anything changed.
        """
        if page_size < 1:
            raise ValidationError("Page size must be positive", "page_size")
        changed = page_size != self.page_size or self.page_index != 0
        self.page_size = page_size
        self.page_index = 0
        return changed

    def set_total(self, total: int):
        """Update the record count, keeping the page index in range."""
        self.total = max(0, int(total))
        if self.page_index > self.page_count - 1:
            self.page_index = self.page_count - 1

    def next_page(self) -> bool:
        return self.set_page(self.page_index + 1)

    def previous_page(self) -> bool:
        return self.set_page(self.page_index - 1)

    def first_page(self) -> bool:
        return self.set_page(0)

    def last_page(self) -> bool:
        return self.set_page(self.page_count - 1)

    def slice(self, records: Sequence[Any]) -> List[Any]:
        """Extract the records of the current page."""
        return list(records[self.offset : self.offset + self.page_size])

    def visible_page_numbers(self, max_pages: int = 5) -> List[int]:
        """The 1-based page numbers to show in a pager.

        The first and the last pages are always included; gaps are marked
        with `PAGE_ELLIPSIS_START` and `PAGE_ELLIPSIS_END`.
        """
        count = self.page_count
        current = self.current_page
        if count <= max_pages:
            return list(range(1, count + 1))

        result = [1]
        start = max(2, current - (max_pages - 3) // 2)
        end = min(count - 1, start + max_pages - 4)
        if end == count - 1:
            start = max(2, end - (max_pages - 4))
        if start > 2:
            result.append(PAGE_ELLIPSIS_START)
        result.extend(range(start, end + 1))
        if end < count - 1:
            result.append(PAGE_ELLIPSIS_END)
        result.append(count)
        return result

    def to_dict(self) -> Dict[str, int]:
        return {
            "page_index": self.page_index,
            "page_size": self.page_size,
            "total": self.total,
            "total_pages": self.total_pages,
        }
