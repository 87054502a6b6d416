"""Tests for cluster client base class."""

import asyncio

import pytest

from ciops.multi_stage_test.cluster.dry_run import DryRunClient
from ciops.multi_stage_test.context import RunContext
from ciops.multi_stage_test.errors import (
    ClusterError,
    ContextCancelledError,
    WorkloadError,
)
from ciops.multi_stage_test.models.workload import (
    ContainerState,
    ContainerStateTerminated,
    ContainerStatus,
    KubeObject,
    ObjectMeta,
    Pod,
    PodStatus,
)
from ciops.multi_stage_test.notifier import TestCaseNotifier

NAMESPACE = "ci-op-1234"


class PhasedClient(DryRunClient):
    """Client whose pod moves through a fixed sequence of phases."""

    def __init__(self, *phases: str) -> None:
        """Initialize with the phases reported by successive reads."""
        super().__init__()
        self.phases = list(phases)
        self.reads = 0
        self.deleted: list[str] = []

    async def get(self, kind, namespace, name):  # type: ignore[no-untyped-def]
        """Advance the pod to its next phase on every read."""
        obj = await super().get(kind, namespace, name)
        self.reads += 1
        if isinstance(obj, Pod) and self.phases:
            obj.status = _status(self.phases.pop(0))
        return obj

    async def delete(self, obj: KubeObject) -> None:
        """Record deletes."""
        self.deleted.append(obj.name)
        await super().delete(obj)


class StuckPodClient(DryRunClient):
    """Client whose pods never go away once created."""

    async def delete(self, obj: KubeObject) -> None:
        """Ignore deletes, as if a finalizer held the object."""


def _status(phase: str) -> PodStatus:
    exit_code = 1 if phase == "Failed" else 0
    return PodStatus(
        phase=phase,
        container_statuses=[
            ContainerStatus(
                name="test",
                state=ContainerState(
                    terminated=ContainerStateTerminated(exit_code=exit_code)
                    if phase in ("Succeeded", "Failed")
                    else None
                ),
            )
        ],
    )


def _pod(name: str = "e2e-run") -> Pod:
    return Pod(metadata=ObjectMeta(name=name, namespace=NAMESPACE))


async def test_create_or_restart_pod_new(client: DryRunClient) -> None:
    """A new pod is created directly."""
    await client.create_or_restart_pod(RunContext(), _pod())

    assert [o.name for o in client.objects()] == ["e2e-run"]


async def test_create_or_restart_pod_existing() -> None:
    """A leftover pod is deleted and the pod created again."""
    client = PhasedClient()
    client.add(_pod())

    await client.create_or_restart_pod(RunContext(), _pod())

    assert client.deleted == ["e2e-run"]
    assert [o.name for o in client.objects()] == ["e2e-run"]


async def test_create_or_restart_pod_cancelled() -> None:
    """Cancellation stops the wait for a leftover pod to be deleted."""
    client = StuckPodClient()
    client.poll_interval = 0.01
    client.add(_pod())
    ctx = RunContext()
    asyncio.get_running_loop().call_later(0.05, ctx.cancel)

    with pytest.raises(ContextCancelledError, match="to be deleted"):
        await asyncio.wait_for(client.create_or_restart_pod(ctx, _pod()), 5.0)

    assert client.objects() == []


async def test_create_or_restart_pod_deletion_timeout() -> None:
    """A leftover pod that is never deleted fails after the timeout."""
    client = StuckPodClient()
    client.poll_interval = 0.01
    client.pod_deletion_timeout = 0.05
    client.add(_pod())

    with pytest.raises(ClusterError, match="timed out after 0.05s"):
        await client.create_or_restart_pod(RunContext.background(), _pod())

    assert client.objects() == []


async def test_wait_for_pod_completion_succeeded() -> None:
    """Waiting polls until the pod succeeds and notifies the result."""
    client = PhasedClient("Pending", "Running", "Succeeded")
    client.add(_pod())
    notifier = TestCaseNotifier()

    pod = await client.wait_for_pod_completion(
        RunContext(), NAMESPACE, "e2e-run", notifier
    )

    assert client.reads == 3
    assert pod.status is not None
    assert pod.status.phase == "Succeeded"
    assert [t.passed for t in notifier.sub_tests("")] == [True]


async def test_wait_for_pod_completion_failed() -> None:
    """A failed pod raises with the final pod state attached."""
    client = PhasedClient("Running", "Failed")
    client.add(_pod())
    notifier = TestCaseNotifier()

    with pytest.raises(WorkloadError, match="failed after containers test failed") as e:
        await client.wait_for_pod_completion(
            RunContext(), NAMESPACE, "e2e-run", notifier
        )

    assert e.value.pod.name == "e2e-run"
    assert [t.failure for t in notifier.sub_tests("")] == [
        "container test exited with code 1"
    ]


async def test_wait_for_pod_completion_cancelled() -> None:
    """A cancelled context stops the wait before the pod finishes."""
    client = PhasedClient("Running")
    client.add(_pod())
    ctx = RunContext()
    ctx.cancel()

    with pytest.raises(ContextCancelledError):
        await client.wait_for_pod_completion(
            ctx, NAMESPACE, "e2e-run", TestCaseNotifier()
        )

    assert client.reads == 0
