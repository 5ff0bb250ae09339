from typing import Literal

from pydantic import BaseModel, Field

# --- Per-backend settings ---


class FirestoreSettings(BaseModel):
    project: str | None = None  # None => resolved from the environment / ADC
    database: str | None = None  # None => "(default)"
    # host:port of a local emulator; exported as FIRESTORE_EMULATOR_HOST by the factory
    emulator_host: str | None = None
    # service-account JSON; None => application default credentials
    credentials_path: str | None = None


# --- Collection naming ---
class CollectionNames(BaseModel):
    threads: str = "threads"
    messages: str = "messages"
    resources: str = "resources"
    scores: str = "scores"
    traces: str = "traces"
    workflow_snapshots: str = "workflow_snapshots"
    evals: str = "evals"
    ai_spans: str = "ai_spans"


class StorageSettings(BaseModel):
    # which DocumentBackend the factory builds
    backend: Literal["firestore", "memory"] = "firestore"

    # Backend limits; defaults match Firestore.
    max_batch_size: int = Field(default=500, ge=1, le=500)
    in_filter_limit: int = Field(default=10, ge=1, le=30)

    default_per_page: int = Field(default=20, ge=1)

    # schema metadata for the generic table operations
    metadata_collection: str = "_metadata"
    collections: CollectionNames = CollectionNames()
