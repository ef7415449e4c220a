"""Shared fixtures: an in-memory ResourceStore and builders for Kubernetes objects."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
from kubernetes import client

from pvc_autoscaler.exceptions import FetchError, PersistenceError, ResourceNotFoundError
from pvc_autoscaler.schemas import (
    DiskUsageResponse,
    PodDiskInspector,
    PVCDiskUsage,
    PVCScalingSpec,
    VolumeSnapshot,
)
from pvc_autoscaler.services.k8s.annotations import (
    OPERATOR_ENABLED,
    OPERATOR_NAME,
    OPERATOR_NAMESPACE,
    is_enabled,
    pod_index_key,
)
from pvc_autoscaler.services.k8s.utils import parse_storage_quantity, volume_key

GiB = 1024**3
T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_resource(
    name: str = "inspector",
    namespace: str = "default",
    policy: Optional[Dict[str, Any]] = None,
    history: Optional[Dict[str, Dict[str, str]]] = None,
) -> PodDiskInspector:
    obj: Dict[str, Any] = {
        "apiVersion": "autoscaler.pvc.io/v1alpha1",
        "kind": "PodDiskInspector",
        "metadata": {"name": name, "namespace": namespace, "resourceVersion": "1", "uid": "uid-1"},
        "spec": {"image": "probe:latest"},
    }
    if policy is not None:
        obj["spec"]["pvcScaling"] = policy
    if history is not None:
        obj["status"] = {"pvcScalingStatus": history}
    return PodDiskInspector.from_object(obj)


def make_pod(
    name: str,
    ip: str,
    owner: str = "default/inspector",
    namespace: str = "default",
    annotations: Optional[Dict[str, str]] = None,
) -> client.V1Pod:
    owner_namespace, owner_name = owner.split("/")
    merged = {OPERATOR_ENABLED: "true", OPERATOR_NAME: owner_name, OPERATOR_NAMESPACE: owner_namespace}
    merged.update(annotations or {})
    return client.V1Pod(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, annotations=merged),
        status=client.V1PodStatus(pod_ip=ip),
    )


def make_pvc(
    name: str,
    capacity: str = "100Gi",
    namespace: str = "default",
    annotations: Optional[Dict[str, str]] = None,
) -> client.V1PersistentVolumeClaim:
    return client.V1PersistentVolumeClaim(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, annotations=annotations or {}),
        spec=client.V1PersistentVolumeClaimSpec(
            access_modes=["ReadWriteOnce"],
            resources=client.V1VolumeResourceRequirements(requests={"storage": capacity}),
        ),
        status=client.V1PersistentVolumeClaimStatus(capacity={"storage": capacity}),
    )


def make_usage(
    name: str,
    percent_used: int,
    capacity: str = "100Gi",
    policy: Optional[Dict[str, Any]] = None,
    namespace: str = "default",
) -> PVCDiskUsage:
    return PVCDiskUsage(
        name=name,
        namespace=namespace,
        percent_used=percent_used,
        capacity=parse_storage_quantity(capacity),
        policy=PVCScalingSpec.model_validate(policy) if policy is not None else None,
        volume=VolumeSnapshot(name=name, namespace=namespace, requests={"storage": capacity}),
    )


def disk(pvc_name: str, all_bytes: int, free_bytes: int) -> DiskUsageResponse:
    return DiskUsageResponse(dir=f"/mnt/{pvc_name}", pvc_name=pvc_name, all_bytes=all_bytes, free_bytes=free_bytes)


class FakeStore:
    """In-memory ResourceStore."""

    def __init__(self) -> None:
        self.resources: Dict[str, PodDiskInspector] = {}
        self.pods: List[client.V1Pod] = []
        self.pvcs: Dict[str, client.V1PersistentVolumeClaim] = {}
        self.patches: List[tuple] = []
        self.status_updates: List[PodDiskInspector] = []
        self.events: List[tuple] = []
        self.fail_patch: set = set()
        self.fail_update = False
        self.list_pods_error: Optional[Exception] = None

    def add_resource(self, resource: PodDiskInspector) -> PodDiskInspector:
        self.resources[resource.key] = resource
        return resource

    def add_pvc(self, pvc: client.V1PersistentVolumeClaim) -> None:
        self.pvcs[volume_key(pvc.metadata.namespace, pvc.metadata.name)] = pvc

    async def get_managed_resource(self, namespace: str, name: str) -> PodDiskInspector:
        key = volume_key(namespace, name)
        if key not in self.resources:
            raise ResourceNotFoundError(f"get PodDiskInspector {key}: not found")
        return self.resources[key].model_copy(deep=True)

    async def list_managed_resources(self) -> List[PodDiskInspector]:
        return [resource.model_copy(deep=True) for resource in self.resources.values()]

    async def list_pods_by_index(self, index_value: str) -> List[client.V1Pod]:
        if self.list_pods_error is not None:
            raise self.list_pods_error
        return [
            pod
            for pod in self.pods
            if is_enabled(pod.metadata.annotations) and pod_index_key(pod.metadata.annotations) == index_value
        ]

    async def get_pvc(self, namespace: str, name: str) -> client.V1PersistentVolumeClaim:
        key = volume_key(namespace, name)
        if key not in self.pvcs:
            raise ResourceNotFoundError(f"get pvc {key}: not found")
        return self.pvcs[key]

    async def patch_pvc_storage(self, volume: VolumeSnapshot, size: int) -> None:
        key = volume_key(volume.namespace, volume.name)
        if key in self.fail_patch:
            raise PersistenceError(f"patch pvc {key}: forbidden")
        self.patches.append((key, size, volume.requests_with_storage(size)))

    async def update_status(self, resource: PodDiskInspector) -> PodDiskInspector:
        if self.fail_update:
            raise PersistenceError(f"update status {resource.key}: conflict")
        version = int(resource.metadata.resource_version or "0") + 1
        saved = resource.model_copy(deep=True)
        saved.metadata.resource_version = str(version)
        self.resources[resource.key] = saved
        self.status_updates.append(saved)
        return saved.model_copy(deep=True)

    async def create_event(self, resource: PodDiskInspector, event_type: str, reason: str, message: str) -> None:
        self.events.append((resource.key, event_type, reason, message))


class FakeDiskClient:
    """Serves canned probe responses per host; an Exception value is raised instead."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None, delays: Optional[Dict[str, float]] = None) -> None:
        self.responses = responses or {}
        self.delays = delays or {}
        self.calls: List[str] = []

    async def disk_usage(self, host: str) -> List[DiskUsageResponse]:
        self.calls.append(host)
        if host in self.delays:
            await asyncio.sleep(self.delays[host])
        result = self.responses.get(host)
        if result is None:
            raise FetchError("http do: connection refused")
        if isinstance(result, Exception):
            raise result
        return result


class FixedClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def default_policy():
    return {"usedSpacePercentage": 80, "increaseQuantity": "20%", "cooldown": "1h"}
