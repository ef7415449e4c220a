"""
Pod/PVC 注解约定
Pods opt in to autoscaling and name their PodDiskInspector through annotations.
"""

from typing import Mapping, Optional

from .utils import volume_key

ANNOTATION_PREFIX = "pvc-autoscaler-operator.kubernetes.io/"

OPERATOR_ENABLED = ANNOTATION_PREFIX + "enabled"
OPERATOR_NAME = ANNOTATION_PREFIX + "operator-name"
OPERATOR_NAMESPACE = ANNOTATION_PREFIX + "operator-namespace"

# Policy overrides, read from pod and PVC annotations.
USED_SPACE_PERCENTAGE = ANNOTATION_PREFIX + "used-space-percentage"
INCREASE_QUANTITY = ANNOTATION_PREFIX + "increase-quantity"
COOLDOWN = ANNOTATION_PREFIX + "cooldown"
MAX_SIZE = ANNOTATION_PREFIX + "max-size"


def pod_index_key(annotations: Optional[Mapping[str, str]]) -> Optional[str]:
    """Index value "<namespace>/<name>" of the PodDiskInspector a pod points at, if any."""
    annotations = annotations or {}
    name = annotations.get(OPERATOR_NAME, "")
    namespace = annotations.get(OPERATOR_NAMESPACE, "")
    if not name or not namespace:
        return None
    return volume_key(namespace, name)


def is_enabled(annotations: Optional[Mapping[str, str]]) -> bool:
    value = (annotations or {}).get(OPERATOR_ENABLED, "")
    return value.strip().lower() == "true"

