"""Kubernetes REST API client implementation."""

import asyncio
import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import TypeVar

import aiohttp

from ciops.multi_stage_test.cluster.base import ClusterClient
from ciops.multi_stage_test.errors import (
    AlreadyExistsError,
    ClusterError,
    NotFoundError,
)
from ciops.multi_stage_test.models.cluster_config import KubernetesConfig
from ciops.multi_stage_test.models.workload import KubeObject

logger = logging.getLogger(__name__)

ObjectT = TypeVar("ObjectT", bound=KubeObject)


class KubernetesClient(ClusterClient):
    """Cluster client talking to the Kubernetes API server."""

    def __init__(self, config: KubernetesConfig) -> None:
        """Initialize Kubernetes client with configuration."""
        self.config = config
        self.base_url = config.api_url.rstrip("/")
        self.poll_interval = config.poll_interval
        self.pod_deletion_timeout = config.pod_deletion_timeout

    async def create(self, obj: KubeObject) -> None:
        """Create an object."""
        url = self._collection_url(type(obj), obj.namespace)
        action = f"create {obj.kind} {obj.name}"
        with _translate_errors(action):
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    url, headers=self._headers(), json=obj.to_api(), ssl=self._ssl()
                ) as response:
                    await self._check(response, action)

    async def get(self, kind: type[ObjectT], namespace: str, name: str) -> ObjectT:
        """Read an object."""
        url = f"{self._collection_url(kind, namespace)}/{name}"
        action = f"get {kind.kind} {name}"
        with _translate_errors(action):
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    url, headers=self._headers(), ssl=self._ssl()
                ) as response:
                    await self._check(response, action)
                    data: Mapping[str, object] = await response.json()

        return kind.model_validate(data)

    async def delete(self, obj: KubeObject) -> None:
        """Delete an object."""
        url = f"{self._collection_url(type(obj), obj.namespace)}/{obj.name}"
        action = f"delete {obj.kind} {obj.name}"
        with _translate_errors(action):
            async with aiohttp.ClientSession() as session:
                async with session.delete(
                    url, headers=self._headers(), ssl=self._ssl()
                ) as response:
                    await self._check(response, action)

    async def delete_all_of(
        self, kind: type[KubeObject], namespace: str, labels: dict[str, str]
    ) -> None:
        """Delete every object of a kind matching all labels in a namespace."""
        url = self._collection_url(kind, namespace)
        selector = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        params = {"labelSelector": selector}
        action = f"delete {kind.kind} with {selector}"
        with _translate_errors(action):
            async with aiohttp.ClientSession() as session:
                async with session.delete(
                    url, headers=self._headers(), params=params, ssl=self._ssl()
                ) as response:
                    await self._check(response, action)

    def _collection_url(self, kind: type[KubeObject], namespace: str) -> str:
        """Return the URL of the namespaced collection holding a kind."""
        if "/" in kind.api_version:
            prefix = f"{self.base_url}/apis/{kind.api_version}"
        else:
            prefix = f"{self.base_url}/api/{kind.api_version}"
        return f"{prefix}/namespaces/{namespace}/{kind.resource}"

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    def _ssl(self) -> bool | None:
        return None if self.config.verify_ssl else False

    async def _check(self, response: aiohttp.ClientResponse, action: str) -> None:
        """Map error responses to cluster errors."""
        if response.status < 300:
            return
        text = await response.text()
        if response.status == 404:
            raise NotFoundError(f"Failed to {action}: not found")
        if response.status == 409:
            raise AlreadyExistsError(f"Failed to {action}: already exists")
        raise ClusterError(f"Failed to {action}: {response.status} {text}")


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    """Report transport failures talking to the API server as cluster errors."""
    try:
        yield
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise ClusterError(f"Failed to {action}: {type(e).__name__}: {e}") from e
