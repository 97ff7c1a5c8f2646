"""
Angkor Offline configuration handling.

Provides YAML configuration loading and validation.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

DEFAULT_STATIC_FILES: List[str] = [
    "/",
    "/index.html",
    "/offline.html",
    "/pages/auth/login.html",
    "/pages/auth/register.html",
    "/pages/worker-portal/worker-dashboard.html",
    "/pages/factory-admin/factory-dashboard.html",
    "/pages/auditor/auditor-dashboard.html",
    "/pages/super-admin/super-admin-dashboard.html",
    "/pages/hr/hr-dashboard.html",
    "/pages/grievance-committee/case-management-dashboard.html",
    "/assets/css/main-2025.css",
    "/assets/js/navigation-config.js",
    "/assets/js/navigation-template.js",
    "/manifest.json",
    "/favicon.png",
    "/logo.png",
]


@dataclass
class OfflineConfig:
    """
    Angkor Offline configuration.

    Can be loaded from a YAML file or created programmatically.
    """
    # Application
    app_name: str = "angkor-compliance"
    build_version: str = "1.0.0"
    cache_version: str = "v2-2025"
    origin: str = "http://localhost:8000"

    # Storage
    storage_path: str = ""  # empty = in-memory
    storage_quota_bytes: int = 5 * 1024 * 1024
    cache_prefix: str = "angkor_compliance_"
    default_ttl_ms: int = 300000

    # Service worker
    static_files: List[str] = field(default_factory=lambda: list(DEFAULT_STATIC_FILES))
    offline_page: str = "/offline.html"
    dynamic_cache_max_entries: int = 200
    dynamic_cache_max_bytes: int = 50 * 1024 * 1024
    install_max_attempts: int = 3
    install_backoff: float = 1.0

    # Sync queue
    sync_endpoint: str = "/api/sync"
    sync_storage_key: str = "syncQueue"
    sync_batch_clear: bool = False
    sync_timeout: float = 10.0

    # Connectivity
    probe_url: str = "/api/health"
    probe_timeout: float = 5.0
    online_toast_seconds: float = 3.0
    diagnose_on_reconnect: bool = False

    # Diagnostics
    quota_threshold: float = 0.9
    memory_threshold: float = 0.8
    stale_session_hours: float = 24.0
    remote_timeout: float = 5.0

    # Remote data service
    remote_query_url: str = ""
    remote_user_url: str = ""
    remote_ready_timeout: float = 0.0

    # Logging
    log_level: str = "INFO"
    log_file: str = ""
    log_format: str = "%(asctime)s %(name)s %(levelname)s %(message)s"
    log_max_bytes: int = 10485760  # 10MB
    log_backup_count: int = 3

    # Metrics
    metrics_enabled: bool = True

    @property
    def static_cache_name(self) -> str:
        return f"{self.app_name}-static-{self.cache_version}"

    @property
    def dynamic_cache_name(self) -> str:
        return f"{self.app_name}-dynamic-{self.cache_version}"

    @classmethod
    def load(cls, path: str) -> "OfflineConfig":
        """
        Load configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file

        Returns:
            OfflineConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If config file is invalid YAML
        """
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OfflineConfig":
        """
        Create configuration from a dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            OfflineConfig instance
        """
        defaults = cls()
        app_cfg = data.get("app", {})
        storage_cfg = data.get("storage", {})
        worker_cfg = data.get("worker", {})
        sync_cfg = data.get("sync", {})
        conn_cfg = data.get("connectivity", {})
        diag_cfg = data.get("diagnostics", {})
        remote_cfg = data.get("remote", {})
        logging_cfg = data.get("logging", {})
        metrics_cfg = data.get("metrics", {})

        return cls(
            app_name=app_cfg.get("name", defaults.app_name),
            build_version=str(app_cfg.get("build_version", defaults.build_version)),
            cache_version=str(app_cfg.get("cache_version", defaults.cache_version)),
            origin=app_cfg.get("origin", defaults.origin).rstrip("/"),
            storage_path=storage_cfg.get("path", ""),
            storage_quota_bytes=storage_cfg.get("quota_bytes", defaults.storage_quota_bytes),
            cache_prefix=storage_cfg.get("prefix", defaults.cache_prefix),
            default_ttl_ms=storage_cfg.get("default_ttl_ms", defaults.default_ttl_ms),
            static_files=list(worker_cfg.get("static_files", defaults.static_files)),
            offline_page=worker_cfg.get("offline_page", defaults.offline_page),
            dynamic_cache_max_entries=worker_cfg.get("dynamic_max_entries", defaults.dynamic_cache_max_entries),
            dynamic_cache_max_bytes=worker_cfg.get("dynamic_max_bytes", defaults.dynamic_cache_max_bytes),
            install_max_attempts=worker_cfg.get("install_max_attempts", defaults.install_max_attempts),
            install_backoff=worker_cfg.get("install_backoff", defaults.install_backoff),
            sync_endpoint=sync_cfg.get("endpoint", defaults.sync_endpoint),
            sync_storage_key=sync_cfg.get("storage_key", defaults.sync_storage_key),
            sync_batch_clear=sync_cfg.get("batch_clear", False),
            sync_timeout=sync_cfg.get("timeout", defaults.sync_timeout),
            probe_url=conn_cfg.get("probe_url", defaults.probe_url),
            probe_timeout=conn_cfg.get("probe_timeout", defaults.probe_timeout),
            online_toast_seconds=conn_cfg.get("online_toast_seconds", defaults.online_toast_seconds),
            diagnose_on_reconnect=conn_cfg.get("diagnose_on_reconnect", False),
            quota_threshold=diag_cfg.get("quota_threshold", defaults.quota_threshold),
            memory_threshold=diag_cfg.get("memory_threshold", defaults.memory_threshold),
            stale_session_hours=diag_cfg.get("stale_session_hours", defaults.stale_session_hours),
            remote_timeout=diag_cfg.get("remote_timeout", defaults.remote_timeout),
            remote_query_url=remote_cfg.get("query_url", ""),
            remote_user_url=remote_cfg.get("user_url", ""),
            remote_ready_timeout=remote_cfg.get("ready_timeout", defaults.remote_ready_timeout),
            log_level=logging_cfg.get("level", "INFO"),
            log_file=logging_cfg.get("file", ""),
            log_format=logging_cfg.get("format", defaults.log_format),
            log_max_bytes=logging_cfg.get("max_bytes", 10485760),
            log_backup_count=logging_cfg.get("backup_count", 3),
            metrics_enabled=metrics_cfg.get("enabled", True),
        )

    def get_storage_path(self) -> Optional[Path]:
        """Resolved durable storage path, or None for in-memory storage."""
        if self.storage_path:
            return Path(self.storage_path).expanduser().resolve()
        return None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary.

        Returns:
            Configuration as dictionary
        """
        return {
            "app": {
                "name": self.app_name,
                "build_version": self.build_version,
                "cache_version": self.cache_version,
                "origin": self.origin,
            },
            "storage": {
                "path": self.storage_path,
                "quota_bytes": self.storage_quota_bytes,
                "prefix": self.cache_prefix,
                "default_ttl_ms": self.default_ttl_ms,
            },
            "worker": {
                "static_files": list(self.static_files),
                "offline_page": self.offline_page,
                "dynamic_max_entries": self.dynamic_cache_max_entries,
                "dynamic_max_bytes": self.dynamic_cache_max_bytes,
                "install_max_attempts": self.install_max_attempts,
                "install_backoff": self.install_backoff,
            },
            "sync": {
                "endpoint": self.sync_endpoint,
                "storage_key": self.sync_storage_key,
                "batch_clear": self.sync_batch_clear,
                "timeout": self.sync_timeout,
            },
            "connectivity": {
                "probe_url": self.probe_url,
                "probe_timeout": self.probe_timeout,
                "online_toast_seconds": self.online_toast_seconds,
                "diagnose_on_reconnect": self.diagnose_on_reconnect,
            },
            "diagnostics": {
                "quota_threshold": self.quota_threshold,
                "memory_threshold": self.memory_threshold,
                "stale_session_hours": self.stale_session_hours,
                "remote_timeout": self.remote_timeout,
            },
            "remote": {
                "query_url": self.remote_query_url,
                "user_url": self.remote_user_url,
                "ready_timeout": self.remote_ready_timeout,
            },
            "logging": {
                "level": self.log_level,
                "file": self.log_file,
                "format": self.log_format,
                "max_bytes": self.log_max_bytes,
                "backup_count": self.log_backup_count,
            },
            "metrics": {
                "enabled": self.metrics_enabled,
            },
        }

    def save(self, path: str) -> None:
        """
        Save configuration to a YAML file.

        Args:
            path: Path to save the configuration file
        """
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, allow_unicode=True)
