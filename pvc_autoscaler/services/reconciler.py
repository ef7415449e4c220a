"""
PVC 扩容调和循环
One pass per PodDiskInspector: collect disk usage, then resize. Failures become
events on the resource and the pass is retried after the requeue interval.
"""

from __future__ import annotations

import asyncio

import structlog

from ..exceptions import AutoscalerError, ResizeError, ResourceNotFoundError
from ..schemas.autoscaling import PodDiskInspector
from .autoscaler import RESIZE_REASON, PVCAutoScaler
from .disk_usage import DiskUsageCollector
from .k8s.store import ResourceStore
from .k8s.utils import volume_key
from .reporter import EventReporter

logger = structlog.get_logger(__name__)

REQUEUE_AFTER_SECONDS = 60
COLLECT_REASON = "PVCAutoScaleCollectUsage"


class PVCScalingReconciler:
    def __init__(
        self,
        store: ResourceStore,
        collector: DiskUsageCollector,
        scaler: PVCAutoScaler,
        *,
        requeue_after: int = REQUEUE_AFTER_SECONDS,
    ) -> None:
        self.store = store
        self.collector = collector
        self.scaler = scaler
        self.requeue_after = requeue_after
        self._locks: dict[str, asyncio.Lock] = {}

    async def reconcile(self, namespace: str, name: str) -> int | None:
        """Run one pass for ``namespace/name``.

        Returns the number of seconds after which the pass should run again, or None
        when the resource is gone or a pass for it is already running.
        """
        key = volume_key(namespace, name)
        lock = self._locks.setdefault(key, asyncio.Lock())
        if lock.locked():
            logger.debug("reconciler.pass_in_flight", resource=key)
            return None

        async with lock:
            reporter = EventReporter(self.store)
            reporter.info("reconciler.enter", request=key)
            try:
                resource = await self.store.get_managed_resource(namespace, name)
            except ResourceNotFoundError:
                # Deleted; the next listing will not return it.
                self._locks.pop(key, None)
                return None
            except AutoscalerError as exc:
                logger.warning("reconciler.get_failed", resource=key, error=str(exc))
                return self.requeue_after

            await self._autoscale(reporter.for_resource(resource), resource)
            return self.requeue_after

    async def _autoscale(self, reporter: EventReporter, resource: PodDiskInspector) -> None:
        if resource.spec.pvc_scaling is None:
            err = AutoscalerError("no default PVCScalingSpec found in PodDiskInspectorSpec", code="MISSING_POLICY")
            reporter.error("reconciler.policy_missing", err)
            await reporter.record_error(COLLECT_REASON, err)
            return

        try:
            usage = await self.collector.collect(resource)
        except AutoscalerError as exc:
            reporter.error("reconciler.collect_failed", exc)
            # Probe errors are noisy, keep the details in the logs only.
            await reporter.record_error(COLLECT_REASON, AutoscalerError("failed to collect pvc disk usage"))
            return

        try:
            await self.scaler.process(resource, usage, reporter)
        except ResizeError as exc:
            if exc.errors and all(isinstance(err, ResourceNotFoundError) for err in exc.errors):
                reporter.debug("reconciler.resource_deleted")
                return
            reporter.error("reconciler.resize_failed", exc)
            await reporter.record_error(RESIZE_REASON, exc)

    async def reconcile_all(self) -> dict[str, int | None]:
        """Reconcile every PodDiskInspector concurrently."""
        try:
            resources = await self.store.list_managed_resources()
        except AutoscalerError as exc:
            logger.warning("reconciler.list_failed", error=str(exc))
            return {}

        keys = [resource.key for resource in resources]
        # Resources deleted since the last sweep are not listed anymore.
        for stale in set(self._locks) - set(keys):
            if not self._locks[stale].locked():
                del self._locks[stale]

        results = await asyncio.gather(
            *(self.reconcile(r.metadata.namespace, r.metadata.name) for r in resources),
            return_exceptions=True,
        )
        outcome: dict[str, int | None] = {}
        for key, result in zip(keys, results):
            if isinstance(result, Exception):
                logger.error("reconciler.pass_crashed", resource=key, error=str(result))
                outcome[key] = self.requeue_after
            elif isinstance(result, BaseException):
                raise result
            else:
                outcome[key] = result
        logger.debug("reconciler.sweep_done", resources=len(keys))
        return outcome
