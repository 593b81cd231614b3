from exdrf_tv.column import (  # noqa: F401
    Cell,
    CellContext,
    CellRenderer,
    ColumnDescriptor,
    ColumnInfo,
    column_from_dict,
    normalize_columns,
)
from exdrf_tv.constants import (  # noqa: F401
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
from exdrf_tv.data_source import FetchParams, FetchResult  # noqa: F401
from exdrf_tv.errors import (  # noqa: F401
    DataSourceError,
    ExTvError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from exdrf_tv.events import TableEvents  # noqa: F401
from exdrf_tv.export import (  # noqa: F401
    ExportProjection,
    ExportSink,
    ExportTable,
)
from exdrf_tv.filter_config import FilterConfig  # noqa: F401
from exdrf_tv.filter_engine import (  # noqa: F401
    FilterEngine,
    FilterGroup,
    FilterPreset,
)
from exdrf_tv.keys import KeySet  # noqa: F401
from exdrf_tv.options import TableInfo  # noqa: F401
from exdrf_tv.orchestrator import (  # noqa: F401
    TableStateOrchestrator,
    TableView,
)
from exdrf_tv.pagination import PaginationState  # noqa: F401
from exdrf_tv.persistence import (  # noqa: F401
    MemoryStore,
    PersistenceStore,
    make_storage_key,
)
from exdrf_tv.predicates import predicate_registry  # noqa: F401
from exdrf_tv.sorting import SortItem, SortManager  # noqa: F401
from exdrf_tv.visibility import ColumnVisibilityManager  # noqa: F401
