from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from kubernetes import client
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from ..services.k8s.utils import (
    format_duration,
    format_storage_quantity,
    parse_duration,
    parse_storage_quantity,
    safe_dict,
    volume_key,
)


class PVCScalingSpec(BaseModel):
    """Scaling policy for a PVC.

    used_space_percentage: usage (0-100) at or above which the PVC grows.
    increase_quantity: a percentage ("20%") of the current capacity or a storage
        quantity ("100Gi") added to it.
    cooldown: minimum time between two resize requests; zero disables it.
    max_size: capacity ceiling in bytes; zero means unbounded.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    used_space_percentage: int = Field(default=0, alias="usedSpacePercentage")
    increase_quantity: str = Field(default="", alias="increaseQuantity")
    cooldown: timedelta = Field(default=timedelta(0))
    max_size: int = Field(default=0, alias="maxSize", ge=0)

    @field_validator("cooldown", mode="before")
    @classmethod
    def _parse_cooldown(cls, value: Any) -> Any:
        if value is None or value == "":
            return timedelta(0)
        if isinstance(value, str):
            return parse_duration(value)
        return value

    @field_validator("max_size", mode="before")
    @classmethod
    def _parse_max_size(cls, value: Any) -> Any:
        if value is None or value == "":
            return 0
        if isinstance(value, str):
            return parse_storage_quantity(value)
        return value

    @field_serializer("cooldown")
    def _dump_cooldown(self, value: timedelta) -> str:
        return format_duration(value)

    @field_serializer("max_size")
    def _dump_max_size(self, value: int) -> str:
        return format_storage_quantity(value)


class ScalingStatus(BaseModel):
    """History entry: the last size requested for a PVC and when."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    requested_size: int = Field(default=0, alias="requestedSize", ge=0)
    requested_at: datetime | None = Field(default=None, alias="requestedAt")

    @field_validator("requested_size", mode="before")
    @classmethod
    def _parse_size(cls, value: Any) -> Any:
        if value is None or value == "":
            return 0
        if isinstance(value, str):
            return parse_storage_quantity(value)
        return value

    @field_validator("requested_at", mode="after")
    @classmethod
    def _ensure_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_serializer("requested_size")
    def _dump_size(self, value: int) -> str:
        return format_storage_quantity(value)

    @field_serializer("requested_at")
    def _dump_at(self, value: datetime | None) -> str | None:
        if value is None:
            return None
        # metav1.Time is serialized with second precision.
        return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class ObjectMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    namespace: str = "default"
    resource_version: str | None = Field(default=None, alias="resourceVersion")
    uid: str | None = None
    annotations: dict[str, str] = Field(default_factory=dict)
    labels: dict[str, str] = Field(default_factory=dict)


class PodDiskInspectorSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    image: str = ""
    pvc_scaling: PVCScalingSpec | None = Field(default=None, alias="pvcScaling")


class PodDiskInspectorStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    pvc_scaling_status: dict[str, ScalingStatus] | None = Field(default=None, alias="pvcScalingStatus")


class PodDiskInspector(BaseModel):
    """The managed resource: default scaling policy plus the persisted scaling history."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    api_version: str = Field(default="autoscaler.pvc.io/v1alpha1", alias="apiVersion")
    kind: str = "PodDiskInspector"
    metadata: ObjectMeta
    spec: PodDiskInspectorSpec = Field(default_factory=PodDiskInspectorSpec)
    status: PodDiskInspectorStatus = Field(default_factory=PodDiskInspectorStatus)

    @property
    def key(self) -> str:
        return volume_key(self.metadata.namespace, self.metadata.name)

    @property
    def history(self) -> dict[str, ScalingStatus]:
        return self.status.pvc_scaling_status or {}

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> "PodDiskInspector":
        return cls.model_validate(obj)

    def to_object(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class VolumeSnapshot(BaseModel):
    """Immutable copy of the PVC fields needed to build a resize patch."""

    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str
    requests: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_pvc(cls, pvc: client.V1PersistentVolumeClaim) -> "VolumeSnapshot":
        resources = getattr(getattr(pvc, "spec", None), "resources", None)
        requests = safe_dict(getattr(resources, "requests", None))
        return cls(
            name=pvc.metadata.name,
            namespace=pvc.metadata.namespace,
            requests={str(k): str(v) for k, v in requests.items()},
        )

    def requests_with_storage(self, size: int) -> dict[str, str]:
        requests = dict(self.requests)
        requests["storage"] = format_storage_quantity(size)
        return requests


class PVCDiskUsage(BaseModel):
    """Usage of one PVC observed during a single collection pass."""

    name: str
    namespace: str
    percent_used: int
    capacity: int
    policy: PVCScalingSpec | None = None
    volume: VolumeSnapshot

    @property
    def key(self) -> str:
        return volume_key(self.namespace, self.name)
