from __future__ import annotations
from dataclasses import dataclass
from typing import Protocol, Optional, Mapping, Any
import logging


@dataclass(frozen=True)
class LogContext:
    collection: Optional[str] = None
    record_id: Optional[str] = None
    operation: Optional[str] = None

    def as_extra(self) -> Mapping[str, Any]:
        # Only include non-None fields; SafeFormatter fills the rest with "-".
        return {k: v for k, v in self.__dict__.items() if v is not None}


class ContextAdapter(logging.LoggerAdapter):
    """
    Injects contextual fields into LogRecord via `extra`.
    Per-call `extra` is merged over the bound context instead of replacing it.
    """
    def process(self, msg, kwargs):
        extra = kwargs.get("extra") or {}
        kwargs["extra"] = {**self.extra, **extra}
        return msg, kwargs


class LoggerService(Protocol):
    """Contract used by the storage layer and host processes that embed it."""

    def base(self) -> logging.Logger: ...
    def for_namespace(self, ns: str) -> logging.Logger: ...
    def with_context(self, logger: logging.Logger, ctx: LogContext) -> logging.Logger: ...

    def for_storage(self) -> logging.Logger: ...
    def for_collection_ctx(
        self, *, collection: str, operation: Optional[str] = None, record_id: Optional[str] = None
    ) -> logging.Logger: ...
    def shutdown(self) -> None: ...
