"""
Configuration for Evict to Rollout.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Pod selector: only pods annotated key=value opt in
    annotation_key: str = "evict-with-rollout"
    annotation_value: str = "true"

    # Log intended restarts without patching anything
    dry_run: bool = False

    # Kubernetes
    # Uses in-cluster config by default
    kubeconfig_path: Optional[str] = None
    api_timeout_seconds: Optional[float] = None

    # Pod template annotation written on restart (same marker as kubectl)
    restart_annotation: str = "kubectl.kubernetes.io/restartedAt"

    # Logging
    log_level: str = "info"
    log_json: bool = True

    # Prometheus Pushgateway (metrics are pushed once per run when set)
    pushgateway_url: Optional[str] = None
    metrics_job_name: str = "evict-to-rollout"

    class Config:
        env_prefix = "EVICT_TO_ROLLOUT_"


settings = Settings()
