"""
事件上报模块
Structured logs bound to a PodDiskInspector, plus Kubernetes Events on its behalf.
"""

from __future__ import annotations

from typing import Any, Protocol

import structlog

from ..schemas.autoscaling import PodDiskInspector
from .k8s.store import ResourceStore

EVENT_WARNING = "Warning"


class Reporter(Protocol):
    def debug(self, event: str, **kwargs: Any) -> None: ...

    def info(self, event: str, **kwargs: Any) -> None: ...

    def error(self, event: str, error: BaseException | None = None, **kwargs: Any) -> None: ...

    async def record_error(self, reason: str, error: BaseException) -> None: ...


class EventReporter:
    def __init__(self, store: ResourceStore | None, resource: PodDiskInspector | None = None, logger: Any = None) -> None:
        self.store = store
        self.resource = resource
        self._logger = logger or structlog.get_logger("pvc_autoscaler.reconciler")
        if resource is not None:
            self._logger = self._logger.bind(resource=resource.key)

    def for_resource(self, resource: PodDiskInspector) -> "EventReporter":
        """A reporter whose logs and events refer to ``resource``."""
        return EventReporter(self.store, resource, self._logger)

    def debug(self, event: str, **kwargs: Any) -> None:
        self._logger.debug(event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        self._logger.info(event, **kwargs)

    def error(self, event: str, error: BaseException | None = None, **kwargs: Any) -> None:
        if error is not None:
            kwargs["error"] = str(error)
        self._logger.error(event, **kwargs)

    async def record_error(self, reason: str, error: BaseException) -> None:
        await self._record(EVENT_WARNING, reason, str(error))

    async def _record(self, event_type: str, reason: str, message: str) -> None:
        if self.store is None or self.resource is None:
            return
        try:
            await self.store.create_event(self.resource, event_type, reason, message)
        except Exception as exc:
            # Events are best effort.
            self._logger.warning("reporter.event_failed", reason=reason, error=str(exc))


class NopReporter:
    """Discards everything. Useful in tests."""

    def debug(self, event: str, **kwargs: Any) -> None:
        pass

    def info(self, event: str, **kwargs: Any) -> None:
        pass

    def error(self, event: str, error: BaseException | None = None, **kwargs: Any) -> None:
        pass

    async def record_error(self, reason: str, error: BaseException) -> None:
        pass
