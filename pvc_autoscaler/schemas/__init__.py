from .autoscaling import (
    ObjectMeta,
    PodDiskInspector,
    PodDiskInspectorSpec,
    PodDiskInspectorStatus,
    PVCDiskUsage,
    PVCScalingSpec,
    ScalingStatus,
    VolumeSnapshot,
)
from .probe import DiskUsageResponse

__all__ = [
    "ObjectMeta",
    "PodDiskInspector",
    "PodDiskInspectorSpec",
    "PodDiskInspectorStatus",
    "PVCDiskUsage",
    "PVCScalingSpec",
    "ScalingStatus",
    "VolumeSnapshot",
    "DiskUsageResponse",
]
