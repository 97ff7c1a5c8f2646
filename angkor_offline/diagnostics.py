"""
Cache diagnostics and automatic remediation.

run_diagnostics() inspects the environment in a fixed order and records
each problem as a DiagnosticIssue carrying its own fix. apply_fixes()
then runs every fix once, in order, recording whether it worked. A
failing fix never stops the remaining ones.

Checks:
    1. Navigation restored from the back/forward cache
    2. Durable store usage and readability
    3. Durable values that are not valid JSON
    4. Session store usage
    5. Remote data service connectivity
    6. Memory pressure
    7. Signed-in session older than the staleness window
"""

import asyncio
import inspect
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx

from .cache import PersistentCache
from .capabilities import Capabilities
from .remote import RemoteDataProvider
from .storage import DEFAULT_QUOTA_BYTES, KeyValueStore, StorageError
from .types import (
    DiagnosticIssue,
    DiagnosticReport,
    DiagnosticSummary,
    FixResult,
    HealthLevel,
    IssueType,
    NavigationType,
    Severity,
)

logger = logging.getLogger(__name__)

RECOMMENDATIONS = {
    IssueType.BROWSER_CACHE: "Consider implementing proper cache headers for better performance",
    IssueType.LOCAL_STORAGE: "Implement cache size monitoring and automatic cleanup",
    IssueType.FIREBASE_CACHE: "Add remote data service connection monitoring and retry logic",
    IssueType.MEMORY_USAGE: "Optimize memory usage by implementing lazy loading and cleanup",
}


class CacheDiagnostics:
    """
    Detects cache and session problems and applies their fixes.

    Args:
        cache: The persistent cache (expired entries are swept on memory pressure)
        store: Durable store to inspect
        session_store: Session store to inspect
        capabilities: Host capability provider
        remote: Readiness handle for the remote data service
        reload_page: Called to force a fresh load of the current view
        protected_keys: Extra durable keys the storage cleanup never removes
        remote_ready_timeout: How long to wait for the remote data service to be
            attached before skipping its check
    """

    def __init__(
        self,
        cache: PersistentCache,
        store: KeyValueStore,
        session_store: Optional[KeyValueStore] = None,
        capabilities: Optional[Capabilities] = None,
        remote: Optional[RemoteDataProvider] = None,
        reload_page: Optional[Callable[[], Any]] = None,
        protected_keys: Iterable[str] = (),
        quota_bytes: int = DEFAULT_QUOTA_BYTES,
        quota_threshold: float = 0.9,
        memory_threshold: float = 0.8,
        stale_session_hours: float = 24.0,
        remote_timeout: float = 5.0,
        remote_ready_timeout: float = 0.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache = cache
        self._store = store
        self._session_store = session_store
        self._capabilities = capabilities or Capabilities()
        self._remote = remote
        self._reload_page = reload_page
        self._protected_keys = frozenset(protected_keys)
        self._quota_bytes = quota_bytes
        self._quota_threshold = quota_threshold
        self._memory_threshold = memory_threshold
        self._stale_session_hours = stale_session_hours
        self._remote_timeout = remote_timeout
        self._remote_ready_timeout = remote_ready_timeout
        self._clock = clock

        self.issues: List[DiagnosticIssue] = []
        self.fixes: List[FixResult] = []

    async def run_diagnostics(self) -> DiagnosticReport:
        """Run every check and return the issues found."""
        logger.info("Running cache diagnostics")
        self.issues = []
        self.fixes = []

        self._check_browser_cache()
        self._check_durable_store()
        self._check_session_store()
        await self._check_remote()
        self._check_memory()
        self._check_stale_session()

        summary = self.generate_summary()
        logger.info(
            f"Diagnostics finished: {summary.total} issues, status {summary.status.value}"
        )
        return DiagnosticReport(issues=list(self.issues), fixes=[], summary=summary)

    async def apply_fixes(self) -> List[FixResult]:
        """Apply each recorded issue's fix in order."""
        logger.info(f"Applying fixes for {len(self.issues)} issues")
        for issue in self.issues:
            if issue.fix is None:
                continue
            try:
                outcome = issue.fix()
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.warning(f"Fix failed for {issue.type.value}: {e}")
                self.fixes.append(FixResult(issue=issue.message, status="failed", error=str(e)))
            else:
                self.fixes.append(FixResult(issue=issue.message, status="fixed"))
        return list(self.fixes)

    def generate_summary(self) -> DiagnosticSummary:
        critical = sum(1 for i in self.issues if i.severity is Severity.HIGH)
        medium = sum(1 for i in self.issues if i.severity is Severity.MEDIUM)
        low = sum(1 for i in self.issues if i.severity is Severity.LOW)
        if critical:
            status = HealthLevel.CRITICAL
        elif medium:
            status = HealthLevel.WARNING
        else:
            status = HealthLevel.HEALTHY
        return DiagnosticSummary(
            total=len(self.issues),
            critical=critical,
            medium=medium,
            low=low,
            status=status,
        )

    def generate_recommendations(self) -> List[str]:
        found = {issue.type for issue in self.issues}
        return [text for issue_type, text in RECOMMENDATIONS.items() if issue_type in found]

    def create_report(self) -> Dict[str, Any]:
        """Serializable report of the last run and any applied fixes."""
        summary = self.generate_summary()
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "summary": {
                "total": summary.total,
                "critical": summary.critical,
                "medium": summary.medium,
                "low": summary.low,
                "status": summary.status.value,
            },
            "issues": [
                {"type": i.type.value, "severity": i.severity.value, "message": i.message}
                for i in self.issues
            ],
            "fixes": [
                {"issue": f.issue, "status": f.status, **({"error": f.error} if f.error else {})}
                for f in self.fixes
            ],
            "recommendations": self.generate_recommendations(),
        }

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _add(self, issue_type: IssueType, severity: Severity, message: str,
             fix: Optional[Callable[[], Any]]) -> None:
        logger.debug(f"Issue detected: {issue_type.value} ({severity.value}) {message}")
        self.issues.append(DiagnosticIssue(type=issue_type, severity=severity, message=message, fix=fix))

    def _check_browser_cache(self) -> None:
        if self._capabilities.navigation_type() is NavigationType.BACK_FORWARD:
            self._add(
                IssueType.BROWSER_CACHE, Severity.MEDIUM,
                "Page loaded from browser cache (back/forward navigation)",
                self._force_reload,
            )

    def _check_durable_store(self) -> None:
        try:
            used = self._store.size_bytes()
            keys = self._store.keys()
        except StorageError:
            self._add(
                IssueType.LOCAL_STORAGE_ERROR, Severity.HIGH,
                "Durable storage access error",
                self._store.clear,
            )
            return

        if used > self._quota_bytes * self._quota_threshold:
            self._add(
                IssueType.LOCAL_STORAGE, Severity.HIGH,
                f"Durable storage usage is high: {used / 1024 / 1024:.2f}MB",
                self._prune_durable_store,
            )

        skip = set(self._cache.essential_keys) | {self._cache.version_key}
        for key in keys:
            if key in skip:
                continue
            raw = self._store.get_item(key)
            if raw is None:
                continue
            try:
                json.loads(raw)
            except json.JSONDecodeError:
                self._add(
                    IssueType.CORRUPTED_DATA, Severity.MEDIUM,
                    f"Corrupted data in durable storage: {key}",
                    lambda k=key: self._store.remove_item(k),
                )

    def _check_session_store(self) -> None:
        if self._session_store is None:
            return
        try:
            used = self._session_store.size_bytes()
        except StorageError:
            self._add(
                IssueType.SESSION_STORAGE_ERROR, Severity.MEDIUM,
                "Session storage access error",
                self._session_store.clear,
            )
            return
        if used > self._quota_bytes * self._quota_threshold:
            self._add(
                IssueType.SESSION_STORAGE, Severity.MEDIUM,
                f"Session storage usage is high: {used / 1024 / 1024:.2f}MB",
                self._session_store.clear,
            )

    async def _check_remote(self) -> None:
        if self._remote is None:
            return
        service = await self._remote.get(timeout=self._remote_ready_timeout)
        if service is None:
            logger.debug("Remote data service not attached, skipping its check")
            return
        try:
            connected = await asyncio.wait_for(
                service.check_connection(self._remote_timeout),
                timeout=self._remote_timeout,
            )
        except (asyncio.TimeoutError, httpx.TransportError):
            connected = False
        except Exception as e:
            logger.warning(f"Remote data service check failed: {e}")
            self._add(
                IssueType.FIREBASE_ERROR, Severity.HIGH,
                "Remote data service cache error",
                service.clear_persistence,
            )
            return
        if not connected:
            self._add(
                IssueType.FIREBASE_CACHE, Severity.HIGH,
                "Remote data service connection issues detected",
                service.enable_network,
            )

    def _check_memory(self) -> None:
        usage = self._capabilities.heap_usage()
        if not usage:
            return
        used, limit = usage
        if limit <= 0:
            return
        ratio = used / limit
        if ratio > self._memory_threshold:
            self._add(
                IssueType.MEMORY_USAGE, Severity.HIGH,
                f"High memory usage: {ratio * 100:.1f}%",
                self._cleanup_memory,
            )

    def _check_stale_session(self) -> None:
        role = self._store.get_item("userRole")
        name = self._store.get_item("userName")
        last_login = self._store.get_item("lastLogin")
        if not (role and name and last_login):
            return
        try:
            login_ms = int(last_login)
        except ValueError:
            logger.debug(f"Unparseable lastLogin value: {last_login!r}")
            return
        hours = (self._clock() * 1000 - login_ms) / (1000 * 60 * 60)
        if hours > self._stale_session_hours:
            self._add(
                IssueType.STALE_SESSION, Severity.MEDIUM,
                "User session may be stale",
                self._refresh_user_session,
            )

    # ------------------------------------------------------------------
    # Fixes
    # ------------------------------------------------------------------

    def _force_reload(self) -> None:
        if self._reload_page is None:
            raise RuntimeError("No page reload handler configured")
        self._reload_page()

    def _prune_durable_store(self) -> None:
        keep = set(self._cache.essential_keys) | {self._cache.version_key} | self._protected_keys
        for key in self._store.keys():
            if key not in keep:
                self._store.remove_item(key)

    def _cleanup_memory(self) -> None:
        self._cache.clear_expired_cache()
        self._capabilities.collect_garbage()

    async def _refresh_user_session(self) -> None:
        service = self._remote.service if self._remote is not None else None
        if service is None:
            raise RuntimeError("Remote data service is not available")
        await service.reload_user()
        self._store.set_item("lastLogin", str(int(self._clock() * 1000)))
