"""Configuration model for cluster access."""

from pydantic import BaseModel, Field


class KubernetesConfig(BaseModel):
    """Configuration for the Kubernetes API client."""

    api_url: str = Field(
        default="https://kubernetes.default.svc", description="API server base URL"
    )
    token: str = Field(default="", description="Bearer token")
    verify_ssl: bool = Field(default=True, description="Verify the server certificate")
    poll_interval: float = Field(
        default=10.0, description="Seconds between pod status polls"
    )
    pod_deletion_timeout: float = Field(
        default=300.0,
        description="Seconds to wait for a leftover pod to be deleted",
    )
