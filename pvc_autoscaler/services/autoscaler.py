"""
PVC 自动扩容模块
Decides which PVCs grow, patches their storage requests and records each request
in the PodDiskInspector status so the next pass neither repeats it nor ignores
its cooldown.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from fractions import Fraction

import structlog

from ..exceptions import (
    AutoscalerError,
    IncreaseQuantityError,
    PersistenceError,
    ResizeError,
    ResourceNotFoundError,
)
from ..schemas.autoscaling import PodDiskInspector, PVCDiskUsage, ScalingStatus
from .k8s.store import ResourceStore
from .k8s.utils import format_duration, format_storage_quantity, parse_percentage, parse_storage_quantity, round_half_up
from .reporter import NopReporter, Reporter

logger = structlog.get_logger(__name__)

RESIZE_REASON = "PVCAutoScaleResize"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_capacity(current: int, increase: str) -> int:
    """
    计算扩容后的容量

    Args:
        current: 当前容量（字节）
        increase: 百分比（"20%"，按当前容量计算并四舍五入）或存储容量（"100Gi"）

    Returns:
        新容量（字节）

    Raises:
        IncreaseQuantityError: increase 既不是百分比也不是容量，或为负数
    """
    prefix = "increaseQuantity must be a percentage string (e.g. 10%) or a storage quantity (e.g. 100Gi)"

    percent = parse_percentage(increase)
    if percent is not None:
        if percent < 0:
            raise IncreaseQuantityError(f"{prefix}: negative percentage {increase!r}", details={"value": increase})
        return current + round_half_up(Fraction(current * percent, 100))

    try:
        quantity = parse_storage_quantity(increase)
    except ValueError as exc:
        raise IncreaseQuantityError(f"{prefix}: {exc}", details={"value": increase}) from exc
    return current + quantity


class PVCAutoScaler:
    def __init__(self, store: ResourceStore, now: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.now = now

    async def process(
        self,
        resource: PodDiskInspector,
        records: Iterable[PVCDiskUsage],
        reporter: Reporter | None = None,
    ) -> PodDiskInspector | None:
        """Grow every PVC in ``records`` that its policy says should grow.

        Returns the resource as persisted when new scaling history was written,
        otherwise None. Patches that succeeded stay in effect even if recording
        them fails.

        Raises:
            ResizeError: one or more volumes could not be processed, or the history
                could not be persisted. Every other volume is still handled.
        """
        reporter = reporter or NopReporter()
        history = resource.history
        pending: dict[str, ScalingStatus] = {}
        decided: set[str] = set()
        errors: list[BaseException] = []

        for record in records:
            policy = record.policy
            if policy is None:
                continue
            if record.percent_used < policy.used_space_percentage:
                continue

            try:
                candidate = next_capacity(record.capacity, policy.increase_quantity)
            except IncreaseQuantityError as exc:
                reporter.error("autoscaler.invalid_increase", exc, pvc=record.key)
                errors.append(exc)
                continue

            if policy.max_size > 0:
                if record.capacity >= policy.max_size:
                    reporter.debug("autoscaler.max_size_reached", pvc=record.key, max_size=format_storage_quantity(policy.max_size))
                    continue
                candidate = min(candidate, policy.max_size)

            key = record.key
            if key in decided:
                continue

            previous = history.get(key)
            if previous is not None:
                if previous.requested_size >= candidate:
                    reporter.debug("autoscaler.already_requested", pvc=key, size=format_storage_quantity(candidate))
                    continue
                if policy.cooldown and previous.requested_at is not None:
                    if self.now() < previous.requested_at + policy.cooldown:
                        reporter.debug(
                            "autoscaler.cooldown_active",
                            pvc=key,
                            requested_at=previous.requested_at.isoformat(),
                            cooldown=format_duration(policy.cooldown),
                        )
                        continue

            decided.add(key)
            size = format_storage_quantity(candidate)
            reporter.info("autoscaler.pvc_patching", pvc=key, size=size)
            try:
                await self.store.patch_pvc_storage(record.volume, candidate)
            except Exception as exc:
                err = exc if isinstance(exc, PersistenceError) else PersistenceError(f"patch pvc {key} to {size}: {exc}")
                reporter.error("autoscaler.pvc_patch_failed", err, pvc=key, size=size)
                await reporter.record_error(RESIZE_REASON, err)
                errors.append(err)
                continue

            reporter.info("autoscaler.pvc_patched", pvc=key, size=size)
            pending[key] = ScalingStatus(requested_size=candidate, requested_at=self.now())

        updated = None
        if pending:
            try:
                updated = await self._record_history(resource, pending)
            except AutoscalerError as exc:
                errors.append(exc)

        if errors:
            raise ResizeError(errors)
        return updated

    async def _record_history(self, resource: PodDiskInspector, pending: dict[str, ScalingStatus]) -> PodDiskInspector:
        """Merge ``pending`` into the freshest copy of the resource and persist the status."""
        try:
            latest = await self.store.get_managed_resource(resource.metadata.namespace, resource.metadata.name)
        except ResourceNotFoundError:
            raise
        except Exception as exc:
            raise PersistenceError(f"get {resource.key}: {exc}") from exc

        merged = dict(latest.history)
        merged.update(pending)
        latest = latest.model_copy(
            update={"status": latest.status.model_copy(update={"pvc_scaling_status": merged})}
        )

        try:
            saved = await self.store.update_status(latest)
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(f"update status {resource.key}: {exc}") from exc

        logger.info("autoscaler.history_recorded", resource=resource.key, pvcs=sorted(pending))
        return saved
