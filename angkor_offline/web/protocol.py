"""
Event and report serialization for the web API.

Converts OfflineEvent subclasses to JSON-safe dicts:
    {"type": "<event_type>", "data": {...}}

Enums are converted to their string values. Timestamps are floats (epoch).
"""

import dataclasses
from enum import Enum
from typing import Any, Dict, Optional, Type

from ..events import (
    ConnectivityEvent,
    DiagnosticEvent,
    ErrorEvent,
    IndicatorEvent,
    OfflineEvent,
    SyncEvent,
    UpdateAvailableEvent,
    WorkerEvent,
)
from ..types import OfflineHealth, SyncQueueItem, SyncResult

# Maps event classes to WebSocket message type strings
EVENT_TYPE_MAP: Dict[Type[OfflineEvent], str] = {
    ConnectivityEvent: "connectivity",
    IndicatorEvent: "indicator",
    SyncEvent: "sync",
    WorkerEvent: "worker",
    UpdateAvailableEvent: "update_available",
    DiagnosticEvent: "diagnostic",
    ErrorEvent: "error",
}


def _serialize_value(val: Any) -> Any:
    """Recursively convert enums and non-JSON types to JSON-safe values."""
    if isinstance(val, Enum):
        return val.value
    if isinstance(val, dict):
        return {k: _serialize_value(v) for k, v in val.items()}
    if isinstance(val, (list, tuple)):
        return [_serialize_value(item) for item in val]
    return val


def _dataclass_to_dict(obj: Any) -> Dict[str, Any]:
    return {f.name: _serialize_value(getattr(obj, f.name)) for f in dataclasses.fields(obj)}


def event_to_dict(event: OfflineEvent) -> Optional[Dict[str, Any]]:
    """Convert an OfflineEvent to a message dict.

    Returns:
        {"type": "sync", "data": {...}} or None if unknown event type.
    """
    event_type = EVENT_TYPE_MAP.get(type(event))
    if event_type is None:
        return None
    return {"type": event_type, "data": _dataclass_to_dict(event)}


def health_to_dict(health: OfflineHealth) -> Dict[str, Any]:
    return _dataclass_to_dict(health)


def sync_result_to_dict(result: SyncResult) -> Dict[str, Any]:
    data = _dataclass_to_dict(result)
    data["ok"] = bool(result)
    return data


def queue_item_to_dict(item: SyncQueueItem) -> Dict[str, Any]:
    return item.to_dict()
