"""
PVC autoscaler worker.

Periodically reconciles every PodDiskInspector: probe the disk usage of its pods and
grow the PVCs that crossed their threshold.
"""

from __future__ import annotations

import asyncio
import signal

import httpx

from .config import Settings, get_settings
from .core.logging import get_logger
from .services.autoscaler import PVCAutoScaler
from .services.disk_usage import DiskUsageCollector
from .services.k8s.store import KubernetesResourceStore
from .services.probe_client import ProbeClient
from .services.reconciler import PVCScalingReconciler
from .workers.scheduler import PeriodicTask


def build_reconciler(
    settings: Settings,
    store: KubernetesResourceStore,
    http_client: httpx.AsyncClient,
) -> PVCScalingReconciler:
    probe_client = ProbeClient(http_client, port=settings.probe_port, timeout=settings.probe_timeout_seconds)
    collector = DiskUsageCollector(probe_client, store, probe_timeout=settings.probe_timeout_seconds)
    return PVCScalingReconciler(
        store,
        collector,
        PVCAutoScaler(store),
        requeue_after=settings.reconcile_interval_seconds,
    )


async def run_background_worker(settings: Settings | None = None) -> None:
    logger = get_logger(__name__)
    settings = settings or get_settings()

    stop_event = asyncio.Event()

    def _request_stop() -> None:
        if not stop_event.is_set():
            logger.info("worker.stop_requested")
            stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler.
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(_request_stop))

    store = KubernetesResourceStore(settings)
    http_client = httpx.AsyncClient(timeout=settings.probe_timeout_seconds)
    reconciler = build_reconciler(settings, store, http_client)
    task = PeriodicTask(settings.reconcile_interval_seconds, reconciler.reconcile_all, name="pvc_autoscale")

    try:
        task.start()
        logger.info(
            "worker.started",
            interval=settings.reconcile_interval_seconds,
            probe_port=settings.probe_port,
            resource=f"{settings.crd_plural}.{settings.crd_group}/{settings.crd_version}",
        )
        await stop_event.wait()
    finally:
        await task.stop()
        await http_client.aclose()
        await store.close()
        logger.info("worker.stopped")
