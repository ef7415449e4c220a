"""Tests for KubernetesResourceStore with stubbed API clients."""

import asyncio

import pytest
from kubernetes.client.rest import ApiException

from conftest import make_pod, make_pvc, make_resource
from pvc_autoscaler.config import Settings
from pvc_autoscaler.exceptions import PersistenceError, ResourceNotFoundError
from pvc_autoscaler.schemas import VolumeSnapshot
from pvc_autoscaler.services.k8s.annotations import OPERATOR_ENABLED
from pvc_autoscaler.services.k8s.store import KubernetesResourceStore


class StubList:
    def __init__(self, items):
        self.items = items


class StubCoreV1:
    def __init__(self, pods=None, pvcs=None, patch_error=None):
        self.pods = pods or []
        self.pvcs = pvcs or {}
        self.patch_error = patch_error
        self.patched = []
        self.events = []

    def list_pod_for_all_namespaces(self):
        return StubList(self.pods)

    def read_namespaced_persistent_volume_claim(self, name, namespace):
        try:
            return self.pvcs[(namespace, name)]
        except KeyError:
            raise ApiException(status=404, reason="Not Found") from None

    def patch_namespaced_persistent_volume_claim(self, name, namespace, body):
        if self.patch_error:
            raise self.patch_error
        self.patched.append((namespace, name, body))

    def create_namespaced_event(self, namespace, body):
        self.events.append((namespace, body))


class StubCustomObjects:
    def __init__(self, objects=None, status_error=None):
        self.objects = objects or {}
        self.status_error = status_error
        self.replaced = []

    def get_namespaced_custom_object(self, group, version, namespace, plural, name):
        try:
            return self.objects[(namespace, name)]
        except KeyError:
            raise ApiException(status=404, reason="Not Found") from None

    def list_cluster_custom_object(self, group, version, plural):
        return {"items": list(self.objects.values()) + [{"metadata": {"namespace": "bad"}, "spec": []}]}

    def replace_namespaced_custom_object_status(self, group, version, namespace, plural, name, body):
        if self.status_error:
            raise self.status_error
        self.replaced.append(body)
        saved = dict(body)
        saved["metadata"] = dict(body["metadata"], resourceVersion="2")
        return saved


def build_store(core_v1, custom):
    store = KubernetesResourceStore(Settings())
    store._core_v1 = core_v1
    store._custom = custom
    return store


class TestKubernetesResourceStore:
    """Tests for KubernetesResourceStore."""

    def test_get_managed_resource(self):
        obj = make_resource(policy={"usedSpacePercentage": 80, "increaseQuantity": "20%"}).to_object()
        store = build_store(StubCoreV1(), StubCustomObjects({("default", "inspector"): obj}))

        resource = asyncio.run(store.get_managed_resource("default", "inspector"))

        assert resource.key == "default/inspector"
        assert resource.spec.pvc_scaling.used_space_percentage == 80

    def test_get_missing_resource(self):
        store = build_store(StubCoreV1(), StubCustomObjects())

        with pytest.raises(ResourceNotFoundError):
            asyncio.run(store.get_managed_resource("default", "gone"))

    def test_list_skips_invalid_objects(self):
        obj = make_resource().to_object()
        store = build_store(StubCoreV1(), StubCustomObjects({("default", "inspector"): obj}))

        resources = asyncio.run(store.list_managed_resources())

        assert [resource.key for resource in resources] == ["default/inspector"]

    def test_list_pods_by_index(self):
        pods = [
            make_pod("pod-0", "10.0.0.1"),
            make_pod("pod-1", "10.0.0.2", owner="other/inspector"),
            make_pod("pod-2", "10.0.0.3", annotations={"unrelated": "x"}),
            make_pod("pod-3", "10.0.0.4", annotations={OPERATOR_ENABLED: "false"}),
        ]
        store = build_store(StubCoreV1(pods=pods), StubCustomObjects())

        matched = asyncio.run(store.list_pods_by_index("default/inspector"))

        assert [pod.metadata.name for pod in matched] == ["pod-0", "pod-2"]

    def test_get_pvc(self):
        pvc = make_pvc("data-0")
        store = build_store(StubCoreV1(pvcs={("default", "data-0"): pvc}), StubCustomObjects())

        assert asyncio.run(store.get_pvc("default", "data-0")) is pvc
        with pytest.raises(ResourceNotFoundError):
            asyncio.run(store.get_pvc("default", "data-1"))

    def test_patch_pvc_storage(self):
        core_v1 = StubCoreV1()
        store = build_store(core_v1, StubCustomObjects())
        volume = VolumeSnapshot(name="data-0", namespace="db", requests={"storage": "100Gi", "iops": "3000"})

        asyncio.run(store.patch_pvc_storage(volume, 120 * 1024**3))

        assert core_v1.patched == [
            ("db", "data-0", {"spec": {"resources": {"requests": {"storage": "120Gi", "iops": "3000"}}}})
        ]

    def test_patch_failure(self):
        store = build_store(StubCoreV1(patch_error=ApiException(status=403, reason="Forbidden")), StubCustomObjects())
        volume = VolumeSnapshot(name="data-0", namespace="db", requests={"storage": "100Gi"})

        with pytest.raises(PersistenceError, match="403 Forbidden"):
            asyncio.run(store.patch_pvc_storage(volume, 120 * 1024**3))

    def test_update_status(self):
        custom = StubCustomObjects()
        store = build_store(StubCoreV1(), custom)
        resource = make_resource(history={"default/data-0": {"requestedSize": "120Gi", "requestedAt": "2024-01-01T12:00:00Z"}})

        saved = asyncio.run(store.update_status(resource))

        assert custom.replaced[0]["metadata"]["resourceVersion"] == "1"
        assert custom.replaced[0]["status"]["pvcScalingStatus"]["default/data-0"]["requestedSize"] == "120Gi"
        assert saved.metadata.resource_version == "2"

    def test_update_status_conflict(self):
        custom = StubCustomObjects(status_error=ApiException(status=409, reason="Conflict"))
        store = build_store(StubCoreV1(), custom)

        with pytest.raises(PersistenceError, match="409 Conflict"):
            asyncio.run(store.update_status(make_resource()))

    def test_create_event(self):
        core_v1 = StubCoreV1()
        store = build_store(core_v1, StubCustomObjects())

        asyncio.run(store.create_event(make_resource(), "Warning", "PVCAutoScaleResize", "patch failed"))

        namespace, body = core_v1.events[0]
        assert namespace == "default"
        assert body.reason == "PVCAutoScaleResize"
        assert body.type == "Warning"
        assert body.involved_object.kind == "PodDiskInspector"
        assert body.involved_object.name == "inspector"
        assert body.source.component == "pvc-autoscaler"
        assert body.metadata.name.startswith("inspector.")
