__version__ = "0.1.0"

# Store
from .storage.store import DocumentStore  # facade over all persistence domains
from .storage.factory import build_store, build_document_backend, open_store

# Backends
from .storage.backends.inmem_backend import InMemoryDocumentBackend  # process-local, tests/dev

# Logging
from .services.logger.std import LoggingConfig, StdLoggerService

# Settings
from .config.config import AppSettings
from .config.runtime import get_settings

# Records
from .core.records import (
    AISpan,
    AITrace,
    AITracesFilters,
    EvalRow,
    Message,
    MessageInclude,
    PaginatedResult,
    PaginationInfo,
    Resource,
    Score,
    SelectBy,
    SortDirection,
    StoragePagination,
    Thread,
    Trace,
    WorkflowRun,
    WorkflowRuns,
    WorkflowRunState,
)

# Errors
from .core.errors import InvalidPaginationError, RecordDataUndefinedError, RecordNotFoundError, StorageError

__all__ = [
    # Store
    "DocumentStore", "build_store", "build_document_backend", "open_store",
    "InMemoryDocumentBackend",
    # Logging
    "LoggingConfig", "StdLoggerService",
    # Settings
    "AppSettings", "get_settings",
    # Records
    "AISpan", "AITrace", "AITracesFilters", "EvalRow", "Message", "MessageInclude",
    "PaginatedResult", "PaginationInfo", "Resource", "Score", "SelectBy", "SortDirection",
    "StoragePagination", "Thread", "Trace", "WorkflowRun", "WorkflowRuns", "WorkflowRunState",
    # Errors
    "StorageError", "RecordNotFoundError", "RecordDataUndefinedError", "InvalidPaginationError",
]
