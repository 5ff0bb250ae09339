from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, Literal, TypeVar

# Core-level records handed to and returned from the host persistence interface.
# Stored documents use camelCase field names; the domain codecs translate.

T = TypeVar("T")

MessageFormat = Literal["v1", "v2"]


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


@dataclass
class StoragePagination:
    page: int = 1
    per_page: int = 20


@dataclass
class PaginationInfo:
    page: int
    per_page: int
    total: int
    has_more: bool


@dataclass
class PaginatedResult(Generic[T]):
    items: list[T]
    pagination: PaginationInfo


# --- memory ---


@dataclass
class Thread:
    id: str
    resource_id: str
    title: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Message:
    """
    A chat message. `content` is opaque to storage: a string or list for
    v1 messages, a dict (format/parts/metadata/content) for v2 messages.
    """

    id: str
    thread_id: str
    content: Any = None
    role: str = "user"
    type: str | None = None
    resource_id: str | None = None
    created_at: datetime | None = None


@dataclass
class MessageInclude:
    id: str
    thread_id: str | None = None


@dataclass
class SelectBy:
    include: list[MessageInclude] = field(default_factory=list)
    last: int | None = None
    pagination: StoragePagination | None = None


@dataclass
class Resource:
    id: str
    working_memory: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


# --- scores ---


@dataclass
class Score:
    scorer_id: str
    entity_id: str
    entity_type: str
    source: str
    score: float
    id: str | None = None
    run_id: str | None = None
    trace_id: str | None = None
    span_id: str | None = None
    reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    input: Any = None
    output: Any = None
    entity: dict[str, Any] = field(default_factory=dict)
    scorer: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None


# --- traces (legacy telemetry) ---


@dataclass
class Trace:
    id: str
    name: str | None = None
    trace_id: str | None = None
    parent_span_id: str | None = None
    scope: str | None = None
    kind: Any = None
    status: Any = None
    attributes: dict[str, Any] | None = None
    links: list[Any] | None = None
    events: list[Any] = field(default_factory=list)
    other: Any = field(default_factory=list)
    start_time: datetime | None = None
    end_time: datetime | None = None
    timestamp: datetime | None = None
    created_at: datetime | None = None


# --- workflows ---


@dataclass
class WorkflowRunState:
    run_id: str
    status: str
    value: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)
    results: dict[str, Any] = field(default_factory=dict)
    active_paths: list[Any] = field(default_factory=list)
    serialized_step_graph: list[Any] = field(default_factory=list)
    suspended_paths: dict[str, list[int]] = field(default_factory=dict)
    waiting_paths: dict[str, list[int]] = field(default_factory=dict)
    runtime_context: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    error: str | None = None
    timestamp: datetime | None = None


@dataclass
class WorkflowRun:
    workflow_name: str
    run_id: str
    snapshot: WorkflowRunState
    resource_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class WorkflowRuns:
    runs: list[WorkflowRun]
    total: int


# --- legacy evals ---


@dataclass
class EvalRow:
    agent_name: str
    input: Any = None
    output: Any = None
    result: dict[str, Any] = field(default_factory=dict)
    metric_name: str = "unknown"
    instructions: str = ""
    run_id: str = ""
    global_run_id: str = ""
    test_info: dict[str, Any] | None = None
    type: Literal["test", "live"] | None = None
    id: str | None = None
    created_at: datetime | None = None


# --- observability ---


@dataclass
class AISpan:
    trace_id: str
    span_id: str
    name: str
    span_type: str
    parent_span_id: str | None = None
    scope: dict[str, Any] | None = None
    entity_id: str | None = None
    entity_type: str | None = None
    attributes: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None
    links: list[Any] | None = None
    input: Any = None
    output: Any = None
    error: Any = None
    is_event: bool = False
    started_at: datetime | None = None
    ended_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class AITrace:
    trace_id: str
    spans: list[AISpan]


@dataclass
class AITracesFilters:
    name: str | None = None
    span_type: str | None = None
    entity_id: str | None = None
    entity_type: str | None = None
    started_after: datetime | None = None
    started_before: datetime | None = None
