"""
Kubernetes资源读写模块
Thin async wrapper around the Kubernetes Python client for the objects the autoscaler
touches: PodDiskInspector custom resources, pods, PVCs and events.
"""

from __future__ import annotations

import asyncio
import random
import string
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from ...config import Settings, get_settings
from ...exceptions import AutoscalerError, PersistenceError, ResourceNotFoundError
from ...schemas.autoscaling import PodDiskInspector, VolumeSnapshot
from .annotations import is_enabled, pod_index_key
from .utils import format_storage_quantity, volume_key

logger = structlog.get_logger(__name__)


class ResourceStore(Protocol):
    async def get_managed_resource(self, namespace: str, name: str) -> PodDiskInspector: ...

    async def list_managed_resources(self) -> list[PodDiskInspector]: ...

    async def list_pods_by_index(self, index_value: str) -> list[client.V1Pod]: ...

    async def get_pvc(self, namespace: str, name: str) -> client.V1PersistentVolumeClaim: ...

    async def patch_pvc_storage(self, volume: VolumeSnapshot, size: int) -> None: ...

    async def update_status(self, resource: PodDiskInspector) -> PodDiskInspector: ...

    async def create_event(self, resource: PodDiskInspector, event_type: str, reason: str, message: str) -> None: ...


def _api_error(exc: ApiException, what: str) -> AutoscalerError:
    if exc.status == 404:
        return ResourceNotFoundError(f"{what}: not found", details={"status": 404})
    return AutoscalerError(f"{what}: {exc.status} {exc.reason}", code="KUBERNETES_API_ERROR", details={"status": exc.status})


class KubernetesResourceStore:
    """ResourceStore backed by the Kubernetes API. Blocking calls run in worker threads."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self._client_lock = asyncio.Lock()
        self._api_client: client.ApiClient | None = None
        self._core_v1: client.CoreV1Api | None = None
        self._custom: client.CustomObjectsApi | None = None

    # ========== PodDiskInspector ==========

    async def get_managed_resource(self, namespace: str, name: str) -> PodDiskInspector:
        _, custom = await self._ensure_clients()
        s = self.settings

        def _read() -> dict[str, Any]:
            return custom.get_namespaced_custom_object(
                group=s.crd_group, version=s.crd_version, namespace=namespace, plural=s.crd_plural, name=name
            )

        try:
            obj = await asyncio.to_thread(_read)
        except ApiException as exc:
            raise _api_error(exc, f"get {s.crd_kind} {volume_key(namespace, name)}") from exc
        return PodDiskInspector.from_object(obj)

    async def list_managed_resources(self) -> list[PodDiskInspector]:
        _, custom = await self._ensure_clients()
        s = self.settings

        def _list() -> dict[str, Any]:
            return custom.list_cluster_custom_object(group=s.crd_group, version=s.crd_version, plural=s.crd_plural)

        try:
            resp = await asyncio.to_thread(_list)
        except ApiException as exc:
            raise _api_error(exc, f"list {s.crd_plural}") from exc

        resources: list[PodDiskInspector] = []
        for item in resp.get("items", []) or []:
            try:
                resources.append(PodDiskInspector.from_object(item))
            except ValueError as exc:
                meta = item.get("metadata", {}) or {}
                logger.warning(
                    "store.invalid_resource",
                    resource=volume_key(meta.get("namespace", ""), meta.get("name", "")),
                    error=str(exc),
                )
        return resources

    async def update_status(self, resource: PodDiskInspector) -> PodDiskInspector:
        """Replace the status subresource. The resourceVersion guards against lost updates."""
        _, custom = await self._ensure_clients()
        s = self.settings
        body = resource.to_object()

        def _replace() -> dict[str, Any]:
            return custom.replace_namespaced_custom_object_status(
                group=s.crd_group,
                version=s.crd_version,
                namespace=resource.metadata.namespace,
                plural=s.crd_plural,
                name=resource.metadata.name,
                body=body,
            )

        try:
            obj = await asyncio.to_thread(_replace)
        except ApiException as exc:
            raise PersistenceError(
                f"update {s.crd_kind} status {resource.key}: {exc.status} {exc.reason}",
                details={"status": exc.status},
            ) from exc
        return PodDiskInspector.from_object(obj)

    # ========== Pod / PVC ==========

    async def list_pods_by_index(self, index_value: str) -> list[client.V1Pod]:
        """Enabled pods whose operator-name/operator-namespace annotations point at ``index_value``."""
        core_v1, _ = await self._ensure_clients()

        def _list() -> list[client.V1Pod]:
            return core_v1.list_pod_for_all_namespaces().items or []

        try:
            pods = await asyncio.to_thread(_list)
        except ApiException as exc:
            raise _api_error(exc, "list pods") from exc
        return [
            pod
            for pod in pods
            if is_enabled(pod.metadata.annotations) and pod_index_key(pod.metadata.annotations) == index_value
        ]

    async def get_pvc(self, namespace: str, name: str) -> client.V1PersistentVolumeClaim:
        core_v1, _ = await self._ensure_clients()
        try:
            return await asyncio.to_thread(core_v1.read_namespaced_persistent_volume_claim, name, namespace)
        except ApiException as exc:
            raise _api_error(exc, f"get pvc {volume_key(namespace, name)}") from exc

    async def patch_pvc_storage(self, volume: VolumeSnapshot, size: int) -> None:
        """Merge-patch spec.resources.requests, replacing only the storage request."""
        core_v1, _ = await self._ensure_clients()
        body = {"spec": {"resources": {"requests": volume.requests_with_storage(size)}}}

        def _patch() -> None:
            core_v1.patch_namespaced_persistent_volume_claim(name=volume.name, namespace=volume.namespace, body=body)

        try:
            await asyncio.to_thread(_patch)
        except ApiException as exc:
            raise PersistenceError(
                f"patch pvc {volume_key(volume.namespace, volume.name)} to {format_storage_quantity(size)}: "
                f"{exc.status} {exc.reason}",
                details={"status": exc.status},
            ) from exc

    # ========== Events ==========

    async def create_event(self, resource: PodDiskInspector, event_type: str, reason: str, message: str) -> None:
        core_v1, _ = await self._ensure_clients()
        now = datetime.now(timezone.utc)
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=10))
        body = client.CoreV1Event(
            metadata=client.V1ObjectMeta(name=f"{resource.metadata.name}.{suffix}", namespace=resource.metadata.namespace),
            involved_object=client.V1ObjectReference(
                api_version=resource.api_version,
                kind=resource.kind,
                name=resource.metadata.name,
                namespace=resource.metadata.namespace,
                uid=resource.metadata.uid,
                resource_version=resource.metadata.resource_version,
            ),
            reason=reason,
            message=message,
            type=event_type,
            source=client.V1EventSource(component=self.settings.event_component),
            first_timestamp=now,
            last_timestamp=now,
            count=1,
        )

        try:
            await asyncio.to_thread(core_v1.create_namespaced_event, resource.metadata.namespace, body)
        except ApiException as exc:
            raise _api_error(exc, f"create event {reason} for {resource.key}") from exc

    # ========== Clients ==========

    async def _ensure_clients(self) -> tuple[client.CoreV1Api, client.CustomObjectsApi]:
        if self._core_v1 and self._custom:
            return self._core_v1, self._custom

        async with self._client_lock:
            if self._core_v1 and self._custom:
                return self._core_v1, self._custom

            def _build_clients() -> client.ApiClient:
                try:
                    if self.settings.in_cluster:
                        config.load_incluster_config()
                    else:
                        config.load_kube_config(
                            config_file=self.settings.kube_config_path,
                            context=self.settings.kube_context,
                        )
                except ConfigException as exc:
                    logger.warning("kubernetes.config_missing", error=str(exc))
                return client.ApiClient()

            api_client = await asyncio.to_thread(_build_clients)
            self._api_client = api_client
            self._core_v1 = client.CoreV1Api(api_client)
            self._custom = client.CustomObjectsApi(api_client)
            return self._core_v1, self._custom

    async def close(self) -> None:
        api_client = self._api_client
        self._api_client = None
        self._core_v1 = None
        self._custom = None
        if api_client is not None:
            await asyncio.to_thread(api_client.close)
