from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DiskUsageResponse(BaseModel):
    """Filesystem statistics of one PVC mount, in bytes, as served by the probe sidecar."""

    model_config = ConfigDict(extra="ignore")

    dir: str = ""
    pvc_name: str = ""
    all_bytes: int = Field(default=0, ge=0)
    free_bytes: int = Field(default=0, ge=0)
    error: str = ""

    def to_wire(self) -> dict[str, Any]:
        # Zero byte counts and an empty error are omitted on the wire.
        payload: dict[str, Any] = {"dir": self.dir, "pvc_name": self.pvc_name}
        if self.all_bytes:
            payload["all_bytes"] = self.all_bytes
        if self.free_bytes:
            payload["free_bytes"] = self.free_bytes
        if self.error:
            payload["error"] = self.error
        return payload

    @property
    def usable(self) -> bool:
        return not self.error and self.all_bytes != 0
