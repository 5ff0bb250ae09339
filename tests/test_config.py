import os

import pytest
from pydantic import ValidationError

from firepersist.config.config import AppSettings
from firepersist.config.loader import load_settings
from firepersist.config.storage import StorageSettings
from firepersist.core.records import Thread
from firepersist.storage import factory
from firepersist.storage.backends.inmem_backend import InMemoryDocumentBackend
from firepersist.storage.factory import build_document_backend, build_store


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # no stray .env files or FIREPERSIST_* variables from the host
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("FIREPERSIST_"):
            monkeypatch.delenv(key)


def test_defaults():
    cfg = AppSettings()

    assert cfg.storage.backend == "firestore"
    assert cfg.storage.max_batch_size == 500
    assert cfg.storage.in_filter_limit == 10
    assert cfg.storage.default_per_page == 20
    assert cfg.storage.metadata_collection == "_metadata"
    assert cfg.storage.collections.threads == "threads"
    assert cfg.firestore.project is None
    assert cfg.logging.level == "INFO"


def test_nested_env_vars(monkeypatch):
    monkeypatch.setenv("FIREPERSIST_STORAGE__BACKEND", "memory")
    monkeypatch.setenv("FIREPERSIST_STORAGE__COLLECTIONS__THREADS", "mastra_threads")
    monkeypatch.setenv("FIREPERSIST_FIRESTORE__PROJECT", "demo-project")
    monkeypatch.setenv("FIREPERSIST_LOGGING__JSON_LOGS", "true")

    cfg = AppSettings()

    assert cfg.storage.backend == "memory"
    assert cfg.storage.collections.threads == "mastra_threads"
    assert cfg.storage.collections.messages == "messages"
    assert cfg.firestore.project == "demo-project"
    assert cfg.logging.json_logs is True


@pytest.mark.parametrize("field,value", [("max_batch_size", 501), ("max_batch_size", 0), ("in_filter_limit", 31)])
def test_storage_limits_are_validated(field, value):
    with pytest.raises(ValidationError):
        StorageSettings(**{field: value})


def test_load_settings_reads_env_files(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("FIREPERSIST_STORAGE__BACKEND=memory\nFIREPERSIST_LOGGING__LEVEL=WARNING\n")
    explicit = tmp_path / "override.env"
    explicit.write_text("FIREPERSIST_LOGGING__LEVEL=DEBUG\n")
    monkeypatch.setenv("FIREPERSIST_ENV_FILE", str(explicit))

    cfg = load_settings()

    assert cfg.storage.backend == "memory"
    assert cfg.logging.level == "DEBUG"


def test_load_settings_missing_explicit_file(tmp_path, monkeypatch):
    monkeypatch.setenv("FIREPERSIST_ENV_FILE", str(tmp_path / "nope.env"))
    with pytest.raises(FileNotFoundError):
        load_settings()


def test_load_settings_without_files_warns(caplog):
    with caplog.at_level("WARNING", logger="firepersist.config.loader"):
        cfg = load_settings()
    assert cfg.storage.backend == "firestore"
    assert "No env files found" in caplog.text


def test_build_memory_backend_uses_configured_limits():
    cfg = AppSettings(storage=StorageSettings(backend="memory", max_batch_size=100))
    backend = build_document_backend(cfg)
    assert isinstance(backend, InMemoryDocumentBackend)


@pytest.mark.asyncio
async def test_build_store_honours_collection_names(monkeypatch):
    monkeypatch.setenv("FIREPERSIST_STORAGE__BACKEND", "memory")
    monkeypatch.setenv("FIREPERSIST_STORAGE__COLLECTIONS__THREADS", "mastra_threads")
    store = build_store(AppSettings())

    await store.save_thread(Thread(id="t1", resource_id="r1"))

    assert await store.backend.get("mastra_threads", "t1") is not None
    assert await store.backend.get("threads", "t1") is None
    await store.close()


def test_firestore_backend_with_emulator(monkeypatch):
    captured = {}

    class FakeFirestoreBackend:
        @classmethod
        def from_settings(cls, **kwargs):
            captured.update(kwargs)
            return cls()

    # register the variable with monkeypatch so the factory's write is undone
    monkeypatch.setenv("FIRESTORE_EMULATOR_HOST", "unset")
    monkeypatch.setattr(
        "firepersist.storage.backends.firestore_backend.FirestoreDocumentBackend", FakeFirestoreBackend
    )
    monkeypatch.setenv("FIREPERSIST_FIRESTORE__EMULATOR_HOST", "localhost:8080")
    monkeypatch.setenv("FIREPERSIST_FIRESTORE__PROJECT", "demo-project")

    backend = factory.build_document_backend(AppSettings())

    assert isinstance(backend, FakeFirestoreBackend)
    assert os.environ["FIRESTORE_EMULATOR_HOST"] == "localhost:8080"
    assert captured == {"project": "demo-project", "database": None, "credentials_path": None}
