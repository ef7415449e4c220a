from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Autoscaler configuration sourced from environment variables."""

    model_config = SettingsConfigDict(env_file=(".env",), env_file_encoding="utf-8", extra="ignore")

    app_env: Literal["development", "production", "test"] = "development"
    log_level: str = "INFO"
    log_json: bool = False
    # Kubernetes connection
    kube_context: str | None = None
    kube_config_path: str | None = Field(default=None, alias="KUBE_CONFIG_PATH")
    in_cluster: bool = Field(default=False, description="Load the service account config instead of a kubeconfig")
    # PodDiskInspector custom resource
    crd_group: str = "autoscaler.pvc.io"
    crd_version: str = "v1alpha1"
    crd_plural: str = "poddiskinspectors"
    crd_kind: str = "PodDiskInspector"
    # Disk usage probe (sidecar) settings
    probe_port: int = Field(default=1251, description="Port the disk usage sidecar listens on")
    probe_timeout_seconds: float = Field(default=10.0, description="Per-pod probe timeout")
    probe_mount: str = Field(default="/mnt", description="PVCs are mounted on <probe_mount>/<pvc>")
    probe_pvcs: str = Field(default="", description="Comma separated PVC names served by the probe")
    probe_host: str = "0.0.0.0"
    # Reconcile loop
    reconcile_interval_seconds: int = 60
    event_component: str = "pvc-autoscaler"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]
