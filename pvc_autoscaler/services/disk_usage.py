"""
PVC disk usage collection.

For one PodDiskInspector, query the disk usage sidecar of every pod that points at it,
match each reported PVC with its live capacity and resolve the PVC's effective policy.
"""

from __future__ import annotations

import asyncio
from fractions import Fraction
from typing import Protocol

import structlog
from kubernetes import client

from ..exceptions import AutoscalerError, CollectionError, FetchError, NoInstancesFound, join_errors
from ..schemas.autoscaling import PodDiskInspector, PVCDiskUsage, VolumeSnapshot
from ..schemas.probe import DiskUsageResponse
from .k8s.store import ResourceStore
from .k8s.utils import parse_storage_quantity, round_half_up, safe_dict, volume_key
from .policy import resolve_policy

logger = structlog.get_logger(__name__)

DEFAULT_PROBE_TIMEOUT = 10.0


class DiskUsager(Protocol):
    async def disk_usage(self, host: str) -> list[DiskUsageResponse]: ...


def percent_used(all_bytes: int, free_bytes: int) -> int:
    """Used space as a whole percentage, rounded half up like `df`."""
    return round_half_up(Fraction(all_bytes - free_bytes, all_bytes) * 100)


def _storage_capacity(pvc: client.V1PersistentVolumeClaim) -> int:
    capacity = safe_dict(getattr(getattr(pvc, "status", None), "capacity", None))
    try:
        return parse_storage_quantity(capacity.get("storage") or "0")
    except ValueError:
        return 0


class DiskUsageCollector:
    def __init__(self, disk_client: DiskUsager, store: ResourceStore, *, probe_timeout: float = DEFAULT_PROBE_TIMEOUT) -> None:
        self.disk_client = disk_client
        self.store = store
        self.probe_timeout = probe_timeout

    async def collect(self, resource: PodDiskInspector) -> list[PVCDiskUsage]:
        """Collect disk usage for every PVC of every pod indexed to ``resource``.

        Failing pods are dropped as long as at least one pod succeeds.

        Raises:
            CollectionError: listing pods failed, or every pod failed.
            NoInstancesFound: no pod points at ``resource``.
        """
        try:
            pods = await self.store.list_pods_by_index(resource.key)
        except Exception as exc:
            raise CollectionError([AutoscalerError(f"list pods: {exc}")]) from exc

        if not pods:
            raise NoInstancesFound()

        results = await asyncio.gather(
            *(self._collect_pod(resource, pod) for pod in pods),
            return_exceptions=True,
        )

        found: list[PVCDiskUsage] = []
        probe_errors: list[BaseException] = []
        nested_errors: list[BaseException] = []
        for pod, result in zip(pods, results):
            if isinstance(result, BaseException):
                if not isinstance(result, (Exception, asyncio.CancelledError)):
                    raise result
                probe_errors.append(FetchError(f"pod {pod.metadata.name}: {str(result) or type(result).__name__}"))
                continue
            usages, nested = result
            found.extend(usages)
            if nested is not None:
                nested_errors.append(nested)

        # Only a failed probe on every pod fails the batch; PVC lookup errors never do.
        if len(probe_errors) == len(pods):
            raise CollectionError(probe_errors)
        errors = probe_errors + nested_errors
        if errors:
            logger.warning(
                "disk_usage.partial_failure",
                resource=resource.key,
                failed=len(errors),
                pods=len(pods),
                error=str(join_errors(errors)),
            )
        return found

    async def _collect_pod(
        self, resource: PodDiskInspector, pod: client.V1Pod
    ) -> tuple[list[PVCDiskUsage], BaseException | None]:
        pod_ip = getattr(getattr(pod, "status", None), "pod_ip", None) or ""
        try:
            responses = await asyncio.wait_for(
                self.disk_client.disk_usage(f"http://{pod_ip}"),
                timeout=self.probe_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise FetchError(f"probe timed out after {self.probe_timeout:g}s") from exc

        namespace = pod.metadata.namespace
        pod_annotations = safe_dict(pod.metadata.annotations)
        usages: list[PVCDiskUsage] = []
        nested: list[BaseException] = []
        for item in responses:
            key = volume_key(namespace, item.pvc_name)
            try:
                pvc = await self.store.get_pvc(namespace, item.pvc_name)
            except Exception as exc:
                nested.append(FetchError(f"get pvc {key}: {exc}"))
                continue

            policy = resolve_policy(
                resource.spec.pvc_scaling,
                pod_annotations,
                safe_dict(pvc.metadata.annotations),
            )
            usages.append(
                PVCDiskUsage(
                    name=item.pvc_name,
                    namespace=namespace,
                    percent_used=percent_used(item.all_bytes, item.free_bytes),
                    capacity=_storage_capacity(pvc),
                    policy=policy,
                    volume=VolumeSnapshot.from_pvc(pvc),
                )
            )

        nested_error = None
        if nested:
            nested_error = FetchError(f"pod {pod.metadata.name}: " + "\n".join(str(err) for err in nested))
        return usages, nested_error
