"""
Angkor Offline Web API — FastAPI transport for the offline runtime.

Usage:
    from angkor_offline.web import create_app

    app = create_app(config_path="angkor-offline.yaml")
    # Run with: python -m angkor_offline.web -c angkor-offline.yaml
"""

from .protocol import EVENT_TYPE_MAP, event_to_dict
from .server import create_app

__all__ = [
    "create_app",
    "event_to_dict",
    "EVENT_TYPE_MAP",
]
