from typing import Any, Optional


class ExTvError(Exception):
    """Base class for all errors raised by the table view core.

    Attributes:
        message: Human readable description of the problem.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ExTvError):
    """The input provided by the caller is not acceptable.

    Attributes:
        field: The name of the offending argument or attribute, if known.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class NotFoundError(ExTvError):
    """An operation referenced an unknown preset, group or column.

    The core does not raise this from its mutators (those are no-ops for
    unknown ids); it is available to callers that want a strict lookup.

    Attributes:
        resource_type: The kind of the resource (preset, group, column).
        resource_id: The identifier that could not be found.
    """

    def __init__(self, resource_type: str, resource_id: Any):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} {resource_id!r} not found")


class DataSourceError(ExTvError):
    """The external data source failed to produce a page of records.

    Attributes:
        original: The exception raised by the data source, if any.
        token: The request token of the failed fetch.
    """

    def __init__(
        self,
        message: str,
        original: Optional[BaseException] = None,
        token: Optional[int] = None,
    ):
        self.original = original
        self.token = token
        super().__init__(message)


class PersistenceError(ExTvError):
    """Reading from or writing to the persistence store failed.

    Attributes:
        key: The storage key involved.
        operation: Either `get`, `set` or `decode`.
        original: The underlying exception.
    """

    def __init__(
        self,
        key: str,
        operation: str,
        original: Optional[BaseException] = None,
    ):
        self.key = key
        self.operation = operation
        self.original = original
        super().__init__(
            f"Failed to {operation} persisted state under {key!r}: "
            f"{original}"
        )
