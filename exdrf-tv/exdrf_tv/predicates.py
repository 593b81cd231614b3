import logging
from datetime import datetime
from typing import Any, Optional, Union

from attrs import define, field

from exdrf_tv.constants import (
    BOOL_FILTER_ALL,
    FILTER_TYPE_BOOLEAN,
    FILTER_TYPE_CUSTOM,
    FILTER_TYPE_DATE,
    FILTER_TYPE_DATE_RANGE,
    FILTER_TYPE_MULTISELECT,
    FILTER_TYPE_NUMBER,
    FILTER_TYPE_NUMBER_RANGE,
    FILTER_TYPE_SELECT,
    FILTER_TYPE_TEXT,
)
from exdrf_tv.utils import (
    is_date_only,
    is_range,
    range_bounds,
    to_datetime,
    to_number,
    to_text,
)

logger = logging.getLogger(__name__)


@define
class FilterPredicate:
    """Base class for the predicates that implement a filter type.

    Attributes:
        uniq: The name of the filter type handled by the predicate.
    """

    uniq: str

    def matches(self, value: Any, filter_value: Any) -> bool:
        """Tell if a cell value passes the filter.

        The caller has already excluded empty filter values.

        Args:
            value: The raw value of the cell.
            filter_value: The value of the filter.
        """
        raise NotImplementedError


@define
class TextPredicate(FilterPredicate):
    """Case-insensitive substring match.

    Filter values that are not strings are ignored (pass).
    """

    uniq: str = field(default=FILTER_TYPE_TEXT, init=False)

    def matches(self, value: Any, filter_value: Any) -> bool:
        if not isinstance(filter_value, str):
            return True
        if value is None:
            return False
        return filter_value.lower() in to_text(value).lower()


@define
class SelectPredicate(FilterPredicate):
    """Equality of the string forms.

    A list filter value matches any of its elements; an empty list
    matches everything.
    """

    uniq: str = field(default=FILTER_TYPE_SELECT, init=False)

    def matches(self, value: Any, filter_value: Any) -> bool:
        cell = to_text(value)
        if isinstance(filter_value, (list, tuple, set, frozenset)):
            if len(filter_value) == 0:
                return True
            return any(to_text(v) == cell for v in filter_value)
        return to_text(filter_value) == cell


@define
class BooleanPredicate(FilterPredicate):
    """Strict comparison of a boolean cell with the filter.

    The filter value `all` matches everything; `True` and `"true"` mean
    true, anything else means false.
    """

    uniq: str = field(default=FILTER_TYPE_BOOLEAN, init=False)

    @staticmethod
    def coerce(filter_value: Any) -> bool:
        if isinstance(filter_value, str):
            return filter_value.strip().lower() == "true"
        return filter_value is True

    def matches(self, value: Any, filter_value: Any) -> bool:
        if isinstance(filter_value, str) and (
            filter_value.strip().lower() == BOOL_FILTER_ALL
        ):
            return True
        if not isinstance(value, bool):
            return False
        return value == self.coerce(filter_value)


def _after(moment: datetime, bound: Any) -> Optional[bool]:
    """Compare against a lower bound; `None` means the bound is unset."""
    if bound is None or bound == "":
        return None
    bound_dt = to_datetime(bound)
    if bound_dt is None:
        return None
    if is_date_only(bound):
        return moment.date() >= bound_dt.date()
    return moment >= bound_dt


def _before(moment: datetime, bound: Any) -> Optional[bool]:
    """Compare against an upper bound; `None` means the bound is unset."""
    if bound is None or bound == "":
        return None
    bound_dt = to_datetime(bound)
    if bound_dt is None:
        return None
    if is_date_only(bound):
        return moment.date() <= bound_dt.date()
    return moment <= bound_dt


@define
class DatePredicate(FilterPredicate):
    """Date comparison.

    A two-element filter value is an inclusive range where either end may
    be unset; bounds given as calendar days compare with the day of the
    cell. Any other filter value must fall on the same calendar day.
    """

    uniq: str = field(default=FILTER_TYPE_DATE, init=False)

    def matches(self, value: Any, filter_value: Any) -> bool:
        moment = to_datetime(value)
        if moment is None:
            return False

        if is_range(filter_value):
            start, end = range_bounds(filter_value)
            for check in (_after(moment, start), _before(moment, end)):
                if check is False:
                    return False
            return True

        target = to_datetime(filter_value)
        if target is None:
            return False
        return moment.date() == target.date()


@define
class NumberPredicate(FilterPredicate):
    """Numeric comparison.

    Cells that are not numbers never match. A two-element filter value
    is an inclusive `[min, max]` range where either end may be `None`.
    """

    uniq: str = field(default=FILTER_TYPE_NUMBER, init=False)

    def matches(self, value: Any, filter_value: Any) -> bool:
        number = to_number(value)
        if number is None:
            return False

        if is_range(filter_value):
            low, high = range_bounds(filter_value)
            low_n = to_number(low)
            high_n = to_number(high)
            if low_n is not None and number < low_n:
                return False
            if high_n is not None and number > high_n:
                return False
            return True

        target = to_number(filter_value)
        if target is None:
            return False
        return number == target


@define
class CustomPredicate(FilterPredicate):
    """Always passes; the semantics belong to the caller."""

    uniq: str = field(default=FILTER_TYPE_CUSTOM, init=False)

    def matches(self, value: Any, filter_value: Any) -> bool:
        return True


@define
class PredicateRegistry:
    """Registry for filter predicates.

    Attributes:
        _registry: The predicates by filter type.
    """

    _registry: dict[str, FilterPredicate] = field(factory=dict, repr=False)

    def __attrs_post_init__(self) -> None:
        self._registry = {
            FILTER_TYPE_TEXT: TextPredicate(),
            FILTER_TYPE_SELECT: SelectPredicate(),
            FILTER_TYPE_BOOLEAN: BooleanPredicate(),
            FILTER_TYPE_DATE: DatePredicate(),
            FILTER_TYPE_NUMBER: NumberPredicate(),
            FILTER_TYPE_CUSTOM: CustomPredicate(),
        }
        self._registry[FILTER_TYPE_MULTISELECT] = self._registry[
            FILTER_TYPE_SELECT
        ]
        self._registry[FILTER_TYPE_DATE_RANGE] = self._registry[
            FILTER_TYPE_DATE
        ]
        self._registry[FILTER_TYPE_NUMBER_RANGE] = self._registry[
            FILTER_TYPE_NUMBER
        ]

    def __getitem__(self, key: str) -> FilterPredicate:
        return self._registry[key]

    def get(self, key: str) -> Union[FilterPredicate, None]:
        """Return the predicate for a filter type.

        Args:
            key: The filter type.

        Returns:
            The predicate or None if the type is not known.
        """
        return self._registry.get(key, None)

    def register(self, key: str, predicate: FilterPredicate) -> None:
        """Add or replace the predicate of a filter type."""
        self._registry[key] = predicate


predicate_registry = PredicateRegistry()
