"""
Platform capability providers.

Diagnostics need a few facts about the host: how the current view was
loaded, how much memory is in use, and a way to ask for a collection.
Hosts that cannot answer a question return None and the related check
is skipped.
"""

import gc
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Tuple

from .types import NavigationType

logger = logging.getLogger(__name__)


class Capabilities:
    """No-op provider: every optional capability is absent."""

    def navigation_type(self) -> Optional[NavigationType]:
        return None

    def heap_usage(self) -> Optional[Tuple[int, int]]:
        """Return (used_bytes, limit_bytes), or None when unknown."""
        return None

    def collect_garbage(self) -> bool:
        """Request a collection. Returns False when unsupported."""
        return False


class ProcessCapabilities(Capabilities):
    """
    Capabilities backed by the current Python process.

    Memory usage is the current resident set size measured against the
    address-space limit. Hosts without /proc report the peak resident size
    instead. Without a finite limit, or on platforms with no `resource`
    module, heap_usage() returns None.
    """

    def __init__(self, navigation: Optional[NavigationType] = None) -> None:
        self._navigation = navigation

    def record_navigation(self, navigation: Optional[NavigationType]) -> None:
        """Record how the host loaded the current view."""
        self._navigation = navigation

    def navigation_type(self) -> Optional[NavigationType]:
        return self._navigation

    def heap_usage(self) -> Optional[Tuple[int, int]]:
        try:
            import resource
            soft, _hard = resource.getrlimit(resource.RLIMIT_AS)
        except (ImportError, OSError, ValueError) as e:
            logger.debug(f"Memory limit unavailable: {e}")
            return None
        if soft == resource.RLIM_INFINITY or soft <= 0:
            return None
        used = self._current_rss()
        if used is None:
            # Peak resident size; bytes on macOS, kilobytes elsewhere
            peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
            used = peak if sys.platform == "darwin" else peak * 1024
        return used, soft

    def _current_rss(self) -> Optional[int]:
        statm = Path("/proc/self/statm")
        try:
            resident_pages = int(statm.read_text().split()[1])
            return resident_pages * os.sysconf("SC_PAGE_SIZE")
        except (OSError, ValueError, IndexError, AttributeError):
            return None

    def collect_garbage(self) -> bool:
        collected = gc.collect()
        logger.debug(f"Garbage collection freed {collected} objects")
        return True
