# Constants for filter types
from typing import Any, Dict, Literal

FILTER_TYPE_TEXT = "text"
FILTER_TYPE_SELECT = "select"
FILTER_TYPE_MULTISELECT = "multiselect"
FILTER_TYPE_BOOLEAN = "boolean"
FILTER_TYPE_DATE = "date"
FILTER_TYPE_DATE_RANGE = "dateRange"
FILTER_TYPE_NUMBER = "number"
FILTER_TYPE_NUMBER_RANGE = "numberRange"
FILTER_TYPE_CUSTOM = "custom"

FILTER_TYPES = (
    FILTER_TYPE_TEXT,
    FILTER_TYPE_SELECT,
    FILTER_TYPE_MULTISELECT,
    FILTER_TYPE_BOOLEAN,
    FILTER_TYPE_DATE,
    FILTER_TYPE_DATE_RANGE,
    FILTER_TYPE_NUMBER,
    FILTER_TYPE_NUMBER_RANGE,
    FILTER_TYPE_CUSTOM,
)

# The boolean filter uses this value to mean "do not filter".
BOOL_FILTER_ALL = "all"

GroupOperator = Literal["AND", "OR"]
OP_AND: GroupOperator = "AND"
OP_OR: GroupOperator = "OR"

SortDirection = Literal["asc", "desc"]
SORT_ASC: SortDirection = "asc"
SORT_DESC: SortDirection = "desc"

SelectionMode = Literal["single", "multiple"]

# Where the rows of an export are taken from.
ExportSource = Literal["filtered", "page", "selected", "all"]

DEFAULT_PAGE_SIZE = 10
DEFAULT_PAGE_SIZE_OPTIONS = (10, 20, 30, 50, 100)
DEFAULT_ROW_KEY = "id"

# Markers used by the page number helper for the ellipsis positions.
PAGE_ELLIPSIS_START = -1
PAGE_ELLIPSIS_END = -2

# Prefixes of the keys under which state is stored.
VISIBILITY_KEY_PREFIX = "column-visibility"
FILTERS_KEY_PREFIX = "filters"
PRESETS_KEY_PREFIX = "filter-presets"
ACTIVE_PRESET_KEY_PREFIX = "active-filter-preset"
GROUPS_KEY_PREFIX = "filter-groups"
SORTING_KEY_PREFIX = "sorting"

# Canonical form of a record identifier.
RecIdType = str

# Column id -> value of the filter for that column.
FilterValues = Dict[str, Any]
