from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
import logging, queue
import logging.handlers

from typing import Optional, Mapping

from firepersist.config.config import AppSettings

from .base import ContextAdapter, LoggerService, LogContext
from .formatters import SafeFormatter, JsonFormatter, ColorFormatter


def _ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _level(name: str) -> int:
    return getattr(logging, str(name).upper(), logging.INFO)


@dataclass(frozen=True)
class LoggingConfig:
    """
    Configure sinks & formats.

    Attributes:
      root_ns: base logger name (`firepersist`); module loggers live below it.
      level: default level for the root logger.
      log_dir: directory for file logs (rotated).
      file_logs: True => add a rotating file sink under log_dir.
      use_json: True => JSON logs for files; console stays text.
      enable_queue: True => offload file IO via QueueHandler/Listener.
      per_namespace_levels: optional map (e.g. {"firepersist.storage.batch": "DEBUG"}).
      console_pattern / file_pattern: text format strings.
      max_bytes / backup_count: rotation for file handlers.
    """
    root_ns: str = "firepersist"
    level: str = "INFO"
    log_dir: str = "./logs"
    file_logs: bool = False
    use_json: bool = False
    enable_queue: bool = False
    per_namespace_levels: Optional[Mapping[str, str]] = None
    console_pattern: str = "%(asctime)s %(levelname)s \t%(name)s    coll=%(collection)s    op=%(operation)s - %(message)s"
    file_pattern: str = "%(asctime)s %(levelname)s %(name)s %(collection)s %(record_id)s %(operation)s %(message)s"
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5

    @staticmethod
    def from_env() -> "LoggingConfig":
        return LoggingConfig(
            level=os.getenv("FIREPERSIST_LOG_LEVEL", "INFO"),
            log_dir=os.getenv("FIREPERSIST_LOG_DIR", "./logs"),
            file_logs=os.getenv("FIREPERSIST_LOG_FILE", "0") == "1",
            use_json=os.getenv("FIREPERSIST_LOG_JSON", "0") == "1",
        )

    @staticmethod
    def from_cfg(cfg: AppSettings, log_dir: Optional[str] = None) -> "LoggingConfig":
        return LoggingConfig(
            level=cfg.logging.level,
            log_dir=log_dir or cfg.logging.log_dir,
            file_logs=cfg.logging.file_logs,
            use_json=cfg.logging.json_logs,
            enable_queue=cfg.logging.file_logs,
        )


class StdLoggerService(LoggerService):
    """
      • text/JSON formatters
      • per-namespace levels
      • optional rotating file sink, optionally behind a QueueHandler
      • context helpers (with_context / for_collection_ctx)
    """
    def __init__(self, base: logging.Logger, *, cfg: LoggingConfig, listener: Optional[logging.handlers.QueueListener] = None):
        self._base = base
        self._cfg = cfg
        self._listener = listener

    # --- LoggerService interface ---

    def base(self) -> logging.Logger:
        return self._base

    def for_namespace(self, ns: str) -> logging.Logger:
        return self._base.getChild(ns)

    def with_context(self, logger: logging.Logger, ctx: LogContext) -> logging.Logger:
        return ContextAdapter(logger, ctx.as_extra())

    def for_storage(self) -> logging.Logger:
        return self.for_namespace("storage")

    def for_collection_ctx(
        self, *, collection: str, operation: Optional[str] = None, record_id: Optional[str] = None
    ) -> logging.Logger:
        return self.with_context(
            self.for_storage(),
            LogContext(collection=collection, record_id=record_id, operation=operation),
        )

    def shutdown(self) -> None:
        if self._listener is not None:
            self._listener.stop()
            self._listener = None

    # --- builder ---

    @staticmethod
    def build(cfg: Optional[LoggingConfig] = None) -> "StdLoggerService":
        cfg = cfg or LoggingConfig.from_env()

        root = logging.getLogger(cfg.root_ns)
        # Reset handlers if rebuilding
        for h in list(root.handlers):
            root.removeHandler(h)
        root.setLevel(_level(cfg.level))
        root.propagate = False

        if cfg.per_namespace_levels:
            for ns, lvl in cfg.per_namespace_levels.items():
                logging.getLogger(ns).setLevel(_level(lvl))

        # Console handler (text)
        console = logging.StreamHandler()
        console.setLevel(_level(cfg.level))
        console.setFormatter(ColorFormatter(cfg.console_pattern))
        root.addHandler(console)

        listener = None
        if cfg.file_logs:
            _ensure_dir(Path(cfg.log_dir))
            fh = logging.handlers.RotatingFileHandler(
                Path(cfg.log_dir) / "firepersist.log",
                maxBytes=cfg.max_bytes,
                backupCount=cfg.backup_count,
                encoding="utf-8",
            )
            fh.setFormatter(JsonFormatter() if cfg.use_json else SafeFormatter(cfg.file_pattern))
            fh.setLevel(_level(cfg.level))

            if cfg.enable_queue:
                # Non-blocking file IO
                q = queue.Queue(-1)
                root.addHandler(logging.handlers.QueueHandler(q))
                listener = logging.handlers.QueueListener(q, fh, respect_handler_level=True)
                listener.start()
            else:
                root.addHandler(fh)

        return StdLoggerService(root, cfg=cfg, listener=listener)
