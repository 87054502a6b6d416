"""Tests for Kubernetes REST API client."""

import asyncio
import re

import aiohttp
import pytest
from aioresponses import aioresponses

from ciops.multi_stage_test.cluster.kube import KubernetesClient
from ciops.multi_stage_test.errors import (
    AlreadyExistsError,
    ClusterError,
    NotFoundError,
)
from ciops.multi_stage_test.models.cluster_config import KubernetesConfig
from ciops.multi_stage_test.models.workload import (
    ImageStreamTag,
    ObjectMeta,
    Pod,
    Role,
)

API = "https://api.ci.example.com:6443"
PODS = f"{API}/api/v1/namespaces/ci-op-1234/pods"


@pytest.fixture
def kube_client() -> KubernetesClient:
    """Create test Kubernetes client."""
    return KubernetesClient(
        KubernetesConfig(api_url=f"{API}/", token="sha256~token", poll_interval=1.0)
    )


def _pod(name: str = "e2e-run") -> Pod:
    return Pod(metadata=ObjectMeta(name=name, namespace="ci-op-1234"))


def _request(m: aioresponses):  # type: ignore[no-untyped-def]
    calls = [call for calls in m.requests.values() for call in calls]
    assert len(calls) == 1
    return calls[0]


def test_client_config(kube_client: KubernetesClient) -> None:
    """The client takes its URL and polling interval from configuration."""
    assert kube_client.base_url == API
    assert kube_client.poll_interval == 1.0
    assert kube_client.pod_deletion_timeout == 300.0
    assert kube_client.objects() == []


async def test_create(kube_client: KubernetesClient) -> None:
    """create posts the object's wire form with the bearer token."""
    with aioresponses() as m:
        m.post(PODS, status=201, payload={})

        await kube_client.create(_pod())

        call = _request(m)
    assert call.kwargs["headers"]["Authorization"] == "Bearer sha256~token"
    body = call.kwargs["json"]
    assert body["apiVersion"] == "v1"
    assert body["kind"] == "Pod"
    assert body["metadata"]["name"] == "e2e-run"
    assert body["spec"]["restartPolicy"] == "Never"


async def test_create_group_resource(kube_client: KubernetesClient) -> None:
    """Objects in API groups are created under /apis."""
    role = Role(metadata=ObjectMeta(name="e2e", namespace="ci-op-1234"))
    with aioresponses() as m:
        m.post(
            f"{API}/apis/rbac.authorization.k8s.io/v1/namespaces/ci-op-1234/roles",
            status=201,
            payload={},
        )

        await kube_client.create(role)


async def test_create_conflict(kube_client: KubernetesClient) -> None:
    """A conflict maps to AlreadyExistsError."""
    with aioresponses() as m:
        m.post(PODS, status=409, payload={"reason": "AlreadyExists"})

        with pytest.raises(AlreadyExistsError):
            await kube_client.create(_pod())


async def test_get(kube_client: KubernetesClient) -> None:
    """get parses the returned object."""
    with aioresponses() as m:
        m.get(
            f"{PODS}/e2e-run",
            payload={
                "apiVersion": "v1",
                "kind": "Pod",
                "metadata": {"name": "e2e-run", "namespace": "ci-op-1234"},
                "spec": {"containers": [], "activeDeadlineSeconds": 600},
                "status": {
                    "phase": "Failed",
                    "reason": "DeadlineExceeded",
                    "containerStatuses": [
                        {
                            "name": "test",
                            "state": {"terminated": {"exitCode": 137}},
                            "ready": False,
                        }
                    ],
                },
            },
        )

        pod = await kube_client.get(Pod, "ci-op-1234", "e2e-run")

    assert pod.spec.active_deadline_seconds == 600
    assert pod.status is not None
    assert pod.status.reason == "DeadlineExceeded"
    terminated = pod.status.container_statuses[0].state.terminated
    assert terminated is not None
    assert terminated.exit_code == 137


async def test_get_image_stream_tag(kube_client: KubernetesClient) -> None:
    """Image stream tags are read from the OpenShift image API."""
    with aioresponses() as m:
        m.get(
            f"{API}/apis/image.openshift.io/v1/namespaces/ci-op-1234/"
            "imagestreamtags/pipeline:src",
            payload={
                "metadata": {"name": "pipeline:src", "namespace": "ci-op-1234"},
                "image": {"dockerImageReference": "registry/ci-op-1234@sha256:abc"},
            },
        )

        tag = await kube_client.get(ImageStreamTag, "ci-op-1234", "pipeline:src")

    assert tag.image.docker_image_reference == "registry/ci-op-1234@sha256:abc"


async def test_get_not_found(kube_client: KubernetesClient) -> None:
    """A missing object maps to NotFoundError."""
    with aioresponses() as m:
        m.get(f"{PODS}/e2e-run", status=404, payload={"reason": "NotFound"})

        with pytest.raises(NotFoundError):
            await kube_client.get(Pod, "ci-op-1234", "e2e-run")


async def test_delete_server_error(kube_client: KubernetesClient) -> None:
    """Other error statuses map to ClusterError with the response body."""
    with aioresponses() as m:
        m.delete(f"{PODS}/e2e-run", status=500, body="etcd unavailable")

        with pytest.raises(ClusterError, match="500 etcd unavailable"):
            await kube_client.delete(_pod())


async def test_delete_all_of(kube_client: KubernetesClient) -> None:
    """delete_all_of deletes the collection filtered by a label selector."""
    with aioresponses() as m:
        m.delete(re.compile(rf"^{re.escape(PODS)}\?.*$"), status=200, payload={})

        await kube_client.delete_all_of(
            Pod, "ci-op-1234", {"ci.openshift.io/multi-stage-test": "e2e", "a": "b"}
        )

        call = _request(m)
    assert call.kwargs["params"] == {
        "labelSelector": "a=b,ci.openshift.io/multi-stage-test=e2e"
    }


async def test_insecure_connection() -> None:
    """Certificate checks can be disabled."""
    client = KubernetesClient(KubernetesConfig(api_url=API, verify_ssl=False))
    with aioresponses() as m:
        m.delete(f"{PODS}/e2e-run", status=200, payload={})

        await client.delete(_pod())

        call = _request(m)
    assert call.kwargs["ssl"] is False
    assert "Authorization" not in call.kwargs["headers"]


async def test_get_connection_error(kube_client: KubernetesClient) -> None:
    """Transport failures are reported as cluster errors."""
    with aioresponses() as m:
        m.get(
            f"{PODS}/e2e-run",
            exception=aiohttp.ClientConnectionError("connection refused"),
        )

        with pytest.raises(
            ClusterError,
            match="Failed to get Pod e2e-run: ClientConnectionError: connection",
        ):
            await kube_client.get(Pod, "ci-op-1234", "e2e-run")


async def test_create_timeout(kube_client: KubernetesClient) -> None:
    """Request timeouts are reported as cluster errors."""
    with aioresponses() as m:
        m.post(PODS, exception=asyncio.TimeoutError())

        with pytest.raises(ClusterError, match="Failed to create Pod e2e-run"):
            await kube_client.create(_pod())
