from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Dict, Optional


class AutoscalerError(Exception):
    """Base class for autoscaler failures, carrying a stable code for events and logs."""

    code = "AUTOSCALER_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class FetchError(AutoscalerError):
    """Probe or network failure. Transient: the next pass retries."""

    code = "FETCH_ERROR"


class NoInstancesFound(AutoscalerError):
    code = "NO_INSTANCES"

    def __init__(self, message: str = "no pods found") -> None:
        super().__init__(message)


class IncreaseQuantityError(AutoscalerError):
    """increaseQuantity is neither a percentage nor a storage quantity."""

    code = "PARSE_ERROR"


class PersistenceError(AutoscalerError):
    """A PVC patch or status update failed."""

    code = "PERSISTENCE_ERROR"


class ResourceNotFoundError(AutoscalerError):
    code = "NOT_FOUND"


class JoinedError(AutoscalerError):
    """Several independent failures reported together.

    The message lists each wrapped error on its own line.
    """

    code = "JOINED_ERROR"

    def __init__(self, errors: Iterable[BaseException]) -> None:
        self.errors = _flatten(errors)
        super().__init__("\n".join(str(err) for err in self.errors))

    def contains(self, error_type: type[BaseException]) -> bool:
        return any(isinstance(err, error_type) for err in self.errors)


class CollectionError(JoinedError):
    """Disk usage could not be collected from any pod."""

    code = "COLLECTION_ERROR"


class ResizeError(JoinedError):
    code = "RESIZE_ERROR"


def _flatten(errors: Iterable[BaseException]) -> list[BaseException]:
    flat: list[BaseException] = []
    for err in errors:
        if err is None:
            continue
        if type(err) is JoinedError:
            flat.extend(err.errors)
        else:
            flat.append(err)
    return flat


def join_errors(errors: Iterable[Optional[BaseException]], cls: type[JoinedError] = JoinedError) -> Optional[JoinedError]:
    """Join non-None errors into ``cls``; return None when there are none."""
    present = [err for err in errors if err is not None]
    if not present:
        return None
    return cls(present)
