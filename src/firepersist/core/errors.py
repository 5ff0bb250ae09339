from __future__ import annotations


class StorageError(Exception):
    """Base class for errors raised by the storage core itself.

    Backend errors (network, permission, deadline) are never wrapped in this
    type; they propagate unchanged to the caller.
    """


class RecordNotFoundError(StorageError, LookupError):
    """An update targeted a record that does not exist."""

    def __init__(self, kind: str, record_id: str, detail: str | None = None):
        self.kind = kind
        self.record_id = record_id
        msg = f"{kind} {record_id} not found"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class RecordDataUndefinedError(StorageError):
    """Decode was asked to turn an empty stored document into a record."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"{kind} data is undefined")


class InvalidPaginationError(StorageError, ValueError):
    def __init__(self, page: int, per_page: int):
        self.page = page
        self.per_page = per_page
        super().__init__(f"invalid pagination: page={page} per_page={per_page} (both must be >= 1)")
