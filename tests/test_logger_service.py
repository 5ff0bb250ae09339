import json
import logging

import pytest

from firepersist import open_store
from firepersist.config.config import AppSettings, LoggingSettings
from firepersist.config.storage import StorageSettings
from firepersist.services.logger.base import LogContext
from firepersist.services.logger.formatters import JsonFormatter, SafeFormatter
from firepersist.services.logger.std import LoggingConfig, StdLoggerService


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger("firepersist")
    handlers, level, propagate = list(root.handlers), root.level, root.propagate
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)
    root.propagate = propagate


def _record(**extra) -> logging.LogRecord:
    rec = logging.LogRecord("firepersist.storage", logging.INFO, __file__, 1, "cleared %s", ("threads",), None)
    for k, v in extra.items():
        setattr(rec, k, v)
    return rec


def test_safe_formatter_fills_missing_context():
    fmt = SafeFormatter("%(collection)s|%(record_id)s|%(operation)s|%(message)s")
    assert fmt.format(_record()) == "-|-|-|cleared threads"
    assert fmt.format(_record(collection="threads", operation="clear")) == "threads|-|clear|cleared threads"


def test_json_formatter_includes_context():
    out = json.loads(JsonFormatter().format(_record(collection="threads", record_id="t1")))

    assert out["message"] == "cleared threads"
    assert out["level"] == "INFO"
    assert out["collection"] == "threads"
    assert out["record_id"] == "t1"
    assert "operation" not in out


def test_log_context_only_carries_set_fields():
    assert LogContext(collection="messages").as_extra() == {"collection": "messages"}


def test_from_cfg_maps_settings():
    cfg = AppSettings(logging=LoggingSettings(level="DEBUG", json_logs=True, file_logs=True, log_dir="/tmp/fp"))

    lc = LoggingConfig.from_cfg(cfg)

    assert lc.level == "DEBUG"
    assert lc.use_json is True
    assert lc.file_logs is True
    assert lc.log_dir == "/tmp/fp"


def test_build_with_file_sink_and_context(tmp_path, restore_root_logger):
    svc = StdLoggerService.build(LoggingConfig(log_dir=str(tmp_path), file_logs=True, use_json=True))

    log = svc.for_collection_ctx(collection="threads", operation="delete", record_id="t1")
    log.info("deleted thread", extra={"operation": "cascade"})
    for h in svc.base().handlers:
        h.flush()

    lines = (tmp_path / "firepersist.log").read_text().strip().splitlines()
    entry = json.loads(lines[-1])
    assert entry["logger"] == "firepersist.storage"
    assert entry["collection"] == "threads"
    assert entry["record_id"] == "t1"
    # per-call extra wins over the bound context
    assert entry["operation"] == "cascade"
    svc.shutdown()


def test_build_without_file_sink(tmp_path, restore_root_logger):
    svc = StdLoggerService.build(LoggingConfig(log_dir=str(tmp_path / "logs")))

    assert len(svc.base().handlers) == 1
    assert not (tmp_path / "logs").exists()
    assert svc.for_namespace("storage.batch").name == "firepersist.storage.batch"


@pytest.mark.asyncio
async def test_open_store_applies_logging_settings(tmp_path, restore_root_logger):
    cfg = AppSettings(
        storage=StorageSettings(backend="memory"),
        logging=LoggingSettings(level="DEBUG", json_logs=True, file_logs=True, log_dir=str(tmp_path)),
    )

    store = open_store(cfg)
    assert isinstance(store.logger_service, StdLoggerService)
    assert logging.getLogger("firepersist").level == logging.DEBUG

    await store.insert("widgets", {"id": "w1"})
    await store.clear_table("widgets")
    # stops the queue listener, which drains pending records to the file
    await store.close()

    entries = [json.loads(line) for line in (tmp_path / "firepersist.log").read_text().splitlines()]
    cleared = [e for e in entries if e.get("operation") == "clear"]
    assert cleared and cleared[0]["collection"] == "widgets"
    assert entries[-1]["message"] == "document store closed"
