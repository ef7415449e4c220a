"""
Effective scaling policy resolution.

A PVC's policy starts from the PodDiskInspector default and is overridden, field by
field, by pod annotations and then by PVC annotations. Each override provider is a
pure function; values that do not parse are ignored.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import structlog

from ..schemas.autoscaling import PVCScalingSpec
from .k8s.annotations import COOLDOWN, INCREASE_QUANTITY, MAX_SIZE, USED_SPACE_PERCENTAGE
from .k8s.utils import parse_duration, parse_storage_quantity

logger = structlog.get_logger(__name__)

OverrideProvider = Callable[[PVCScalingSpec, Mapping[str, str]], PVCScalingSpec]

_INT32_MIN, _INT32_MAX = -(2**31), 2**31 - 1


def _parse_percentage(value: str) -> int:
    number = int(value.strip(), 10)
    if not _INT32_MIN <= number <= _INT32_MAX:
        raise ValueError(f"out of range: {value}")
    return number


_FIELD_PARSERS: dict[str, tuple[str, Callable[[str], Any]]] = {
    USED_SPACE_PERCENTAGE: ("used_space_percentage", _parse_percentage),
    INCREASE_QUANTITY: ("increase_quantity", str),
    COOLDOWN: ("cooldown", parse_duration),
    MAX_SIZE: ("max_size", parse_storage_quantity),
}


def override_policy(policy: PVCScalingSpec, annotations: Mapping[str, str] | None) -> PVCScalingSpec:
    """Return a copy of ``policy`` with every parsable override annotation applied."""
    updates: dict[str, Any] = {}
    for annotation, (field, parse) in _FIELD_PARSERS.items():
        raw = (annotations or {}).get(annotation, "")
        if not raw:
            continue
        try:
            updates[field] = parse(raw)
        except ValueError:
            logger.debug("policy.override_ignored", annotation=annotation, value=raw)
    if not updates:
        return policy.model_copy()
    return policy.model_copy(update=updates)


def resolve_policy(
    default: PVCScalingSpec | None,
    *sources: Mapping[str, str] | None,
    providers: tuple[OverrideProvider, ...] = (override_policy,),
) -> PVCScalingSpec | None:
    """Apply each annotation source in increasing precedence on top of ``default``.

    Returns None when there is no default policy to start from.
    """
    if default is None:
        return None
    policy = default.model_copy()
    for source in sources:
        for provider in providers:
            policy = provider(policy, source or {})
    return policy
