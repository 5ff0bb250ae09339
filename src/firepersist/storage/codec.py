from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, timezone
from enum import Enum
import json
from typing import Any

from pydantic import BaseModel

from firepersist.core.errors import RecordDataUndefinedError

# Document codec shared by every collection.
#
# encode: primitives and dates pass through; nested dict/list values take a
# canonical JSON round trip so only plain data reaches the store; None stays an
# explicit null (the store distinguishes "absent" from "null").
#
# decode: backend-native timestamps become datetimes everywhere; declared
# date fields stored as strings or epoch numbers are parsed when possible.


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    # functions, handles and other non-plain values are dropped to null
    return None


def to_plain(value: Any) -> Any:
    """Canonical JSON round trip for nested values."""
    return json.loads(json.dumps(value, default=_json_default, ensure_ascii=False))


def encode_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (str, bool, int, float, datetime, date)):
        return value
    if isinstance(value, Enum):
        return value.value
    return to_plain(value)


def encode_document(record: Mapping[str, Any]) -> dict[str, Any]:
    return {str(key): encode_value(value) for key, value in record.items()}


def _is_native_timestamp(value: Any) -> bool:
    # google.protobuf Timestamp, or the {_seconds, _nanoseconds} shape other
    # SDKs serialize Firestore timestamps to.
    if hasattr(value, "ToDatetime"):
        return True
    return isinstance(value, Mapping) and "_seconds" in value and len(value) <= 2


def _native_to_datetime(value: Any) -> datetime:
    if hasattr(value, "ToDatetime"):
        return value.ToDatetime(tzinfo=timezone.utc)
    seconds = value["_seconds"] + value.get("_nanoseconds", 0) / 1e9
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def _plain_datetime(value: datetime) -> datetime:
    # The Firestore SDK returns DatetimeWithNanoseconds; hand back a plain datetime.
    if type(value) is datetime:
        return value
    return datetime(
        value.year,
        value.month,
        value.day,
        value.hour,
        value.minute,
        value.second,
        value.microsecond,
        tzinfo=value.tzinfo,
    )


def to_datetime(raw: Any) -> datetime | None:
    """Best-effort conversion; None when raw is not a recognisable date-time."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return _plain_datetime(raw)
    if _is_native_timestamp(raw):
        return _native_to_datetime(raw)
    if isinstance(raw, str):
        text = raw.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        # epoch milliseconds, as written by JavaScript clients
        return datetime.fromtimestamp(raw / 1000, tz=timezone.utc)
    return None


def decode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return _plain_datetime(value)
    if _is_native_timestamp(value):
        return _native_to_datetime(value)
    return value


def decode_document(
    data: Mapping[str, Any] | None,
    *,
    kind: str = "Record",
    date_fields: Iterable[str] = (),
) -> dict[str, Any]:
    if not data:
        raise RecordDataUndefinedError(kind)
    out = {key: decode_value(value) for key, value in data.items()}
    for name in date_fields:
        raw = out.get(name)
        if raw is None or isinstance(raw, datetime):
            continue
        parsed = to_datetime(raw)
        if parsed is not None:
            out[name] = parsed
    return out


def stamp(doc: dict[str, Any], *, now: datetime | None = None, created_field: str = "createdAt") -> dict[str, Any]:
    """createdAt on first write if absent, updatedAt on every write."""
    now = now or utc_now()
    if doc.get(created_field) is None:
        doc[created_field] = now
    doc["updatedAt"] = now
    return doc


def drop_none(values: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}
