"""
Disk usage probe sidecar.
"""
from .app import create_probe_app
from .disk import collect_disk_usage

__all__ = [
    "create_probe_app",
    "collect_disk_usage",
]
