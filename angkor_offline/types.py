"""
Angkor Offline type definitions.

This module contains the public value types shared by the cache, the
diagnostics pass, the sync queue and the service worker model.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable


class ConnectivityState(Enum):
    """Connectivity state as seen by the page."""
    ONLINE = "online"
    OFFLINE = "offline"


class SyncStatus(Enum):
    """Sync queue status — drives the sync indicator."""
    READY = "ready"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"


class Severity(Enum):
    """Diagnostic issue severity."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class HealthLevel(Enum):
    """Overall health classification of a diagnostics run."""
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class IssueType(Enum):
    """Categories of problems the diagnostics pass can detect."""
    BROWSER_CACHE = "browser_cache"
    LOCAL_STORAGE = "localStorage"
    LOCAL_STORAGE_ERROR = "localStorage_error"
    SESSION_STORAGE = "sessionStorage"
    SESSION_STORAGE_ERROR = "sessionStorage_error"
    FIREBASE_CACHE = "firebase_cache"
    FIREBASE_ERROR = "firebase_error"
    MEMORY_USAGE = "memory_usage"
    STALE_SESSION = "stale_session"
    CORRUPTED_DATA = "corrupted_data"


class NavigationType(Enum):
    """How the current view was loaded."""
    NAVIGATE = "navigate"
    RELOAD = "reload"
    BACK_FORWARD = "back_forward"


class WorkerState(Enum):
    """Service worker lifecycle state."""
    PARSED = "parsed"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"
    REDUNDANT = "redundant"


@dataclass
class CacheEntry:
    """A cached value with its absolute expiry (ms since epoch)."""
    key: str
    value: Any
    expires_at: int

    def is_live(self, now_ms: int) -> bool:
        return now_ms < self.expires_at


@dataclass
class SyncQueueItem:
    """A mutation waiting to be delivered to the sync endpoint."""
    id: int
    data: Any
    timestamp: str
    retries: int = 0
    idempotency_key: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "data": self.data,
            "timestamp": self.timestamp,
            "retries": self.retries,
            "idempotency_key": self.idempotency_key,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "SyncQueueItem":
        return cls(
            id=int(raw["id"]),
            data=raw.get("data"),
            timestamp=raw.get("timestamp", ""),
            retries=int(raw.get("retries", 0)),
            idempotency_key=raw.get("idempotency_key", "") or str(raw["id"]),
        )


@dataclass
class SyncResult:
    """Outcome of one sync flush."""
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: bool = False

    def __bool__(self) -> bool:
        """Allow `if result:` checks."""
        return not self.skipped and self.failed == 0


@dataclass
class DiagnosticIssue:
    """A problem found by a diagnostics run, with its remediation."""
    type: IssueType
    severity: Severity
    message: str
    fix: Callable[[], Any] | None = None  # may return an awaitable


@dataclass
class FixResult:
    """Outcome of applying one issue's remediation."""
    issue: str
    status: str  # "fixed" | "failed"
    error: str | None = None


@dataclass
class DiagnosticSummary:
    """Counts per severity and the overall health level."""
    total: int = 0
    critical: int = 0
    medium: int = 0
    low: int = 0
    status: HealthLevel = HealthLevel.HEALTHY


@dataclass
class DiagnosticReport:
    """Result of run_diagnostics()."""
    issues: list[DiagnosticIssue] = field(default_factory=list)
    fixes: list[FixResult] = field(default_factory=list)
    summary: DiagnosticSummary = field(default_factory=DiagnosticSummary)


@dataclass
class Notification:
    """A notification the worker asks the platform to show."""
    title: str
    body: str
    icon: str = "/favicon.png"
    badge: str = "/favicon.png"
    actions: list[dict[str, str]] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


@dataclass
class OfflineHealth:
    """Runtime health snapshot."""
    online: bool
    sync_status: str
    pending_sync: int = 0
    worker_state: str = WorkerState.PARSED.value
    static_cached: int = 0
    dynamic_cached: int = 0
    memory_entries: int = 0
    storage_bytes: int = 0
    uptime_seconds: float = 0.0
