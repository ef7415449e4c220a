"""
磁盘用量探测
Filesystem statistics of the PVCs mounted into the probe sidecar at <mount>/<pvc>.
"""

import os
from typing import List, Tuple

import structlog

from ..schemas.probe import DiskUsageResponse

logger = structlog.get_logger(__name__)


def split_pvc_names(pvcs: str) -> List[str]:
    """Comma separated names, first occurrence wins, empty names dropped."""
    names: List[str] = []
    for name in pvcs.split(","):
        if name and name not in names:
            names.append(name)
    return names


def stat_pvc(pvc: str, mount: str) -> DiskUsageResponse:
    directory = os.path.normpath(f"{mount}/{pvc}")
    try:
        stats = os.statvfs(directory)
    except OSError as exc:
        return DiskUsageResponse(dir=directory, pvc_name=pvc, error=exc.strerror or str(exc))
    return DiskUsageResponse(
        dir=directory,
        pvc_name=pvc,
        all_bytes=stats.f_blocks * stats.f_frsize,
        free_bytes=stats.f_bfree * stats.f_frsize,
    )


def collect_disk_usage(pvcs: str, mount: str) -> Tuple[int, List[DiskUsageResponse]]:
    """
    采集所有 PVC 的磁盘用量

    Returns:
        (HTTP 状态码, 响应列表)；没有 PVC 或任一 PVC 失败时状态码为 500
    """
    names = split_pvc_names(pvcs)
    if not names:
        return 500, []

    responses = [stat_pvc(name, mount) for name in names]
    failed = [resp for resp in responses if resp.error]
    if failed:
        logger.warning("probe.stat_failed", pvcs=[resp.pvc_name for resp in failed])
        return 500, responses
    return 200, responses
