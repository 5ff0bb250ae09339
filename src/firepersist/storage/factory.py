import logging
import os

from firepersist.config.config import AppSettings
from firepersist.config.runtime import get_settings
from firepersist.contracts.storage.document_backend import DocumentBackend
from firepersist.services.logger.base import LoggerService
from firepersist.services.logger.std import LoggingConfig, StdLoggerService
from firepersist.storage.store import DocumentStore

logger = logging.getLogger(__name__)


def build_document_backend(cfg: AppSettings) -> DocumentBackend:
    """
    Decide which document backend to use based on AppSettings.storage.backend.
    """
    backend = cfg.storage.backend

    if backend == "memory":
        from firepersist.storage.backends.inmem_backend import InMemoryDocumentBackend

        return InMemoryDocumentBackend(
            max_batch_ops=cfg.storage.max_batch_size,
            max_in_values=cfg.storage.in_filter_limit,
        )

    if backend == "firestore":
        from firepersist.storage.backends.firestore_backend import (
            FirestoreDocumentBackend,  # late import to avoid loading grpc if unused
        )

        fs_cfg = cfg.firestore
        if fs_cfg.emulator_host:
            # the client library reads the emulator address from the environment
            os.environ["FIRESTORE_EMULATOR_HOST"] = fs_cfg.emulator_host
            logger.info("using firestore emulator at %s", fs_cfg.emulator_host)
        return FirestoreDocumentBackend.from_settings(
            project=fs_cfg.project,
            database=fs_cfg.database,
            credentials_path=fs_cfg.credentials_path,
        )

    raise ValueError(f"Unknown document backend: {backend!r}")


def build_logger_service(cfg: AppSettings) -> StdLoggerService:
    return StdLoggerService.build(LoggingConfig.from_cfg(cfg))


def build_store(
    cfg: AppSettings,
    backend: DocumentBackend | None = None,
    *,
    logger_service: LoggerService | None = None,
) -> DocumentStore:
    return DocumentStore(backend or build_document_backend(cfg), cfg.storage, logger_service=logger_service)


def open_store(cfg: AppSettings | None = None, backend: DocumentBackend | None = None) -> DocumentStore:
    """
    Process entry point: load settings (cached) when none are given, apply the
    logging section, then build the store. `store.close()` stops the logger
    service again.
    """
    cfg = cfg or get_settings()
    return build_store(cfg, backend, logger_service=build_logger_service(cfg))
