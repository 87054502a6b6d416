"""Abstract base class for the cluster object store."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import TypeVar

from ciops.multi_stage_test.context import RunContext
from ciops.multi_stage_test.errors import (
    AlreadyExistsError,
    ClusterError,
    ContextCancelledError,
    NotFoundError,
    WorkloadError,
)
from ciops.multi_stage_test.models.workload import KubeObject, Pod
from ciops.multi_stage_test.notifier import TestCaseNotifier

logger = logging.getLogger(__name__)

ObjectT = TypeVar("ObjectT", bound=KubeObject)


class ClusterClient(ABC):
    """Abstract base for clients of the cluster API."""

    poll_interval: float = 10.0
    pod_deletion_timeout: float = 300.0

    @abstractmethod
    async def create(self, obj: KubeObject) -> None:
        """Create an object.

        Raises:
            AlreadyExistsError: If an object with the same name exists
            ClusterError: On any other failure

        """

    @abstractmethod
    async def get(self, kind: type[ObjectT], namespace: str, name: str) -> ObjectT:
        """Read an object.

        Raises:
            NotFoundError: If the object does not exist
            ClusterError: On any other failure

        """

    @abstractmethod
    async def delete(self, obj: KubeObject) -> None:
        """Delete an object.

        Raises:
            NotFoundError: If the object does not exist
            ClusterError: On any other failure

        """

    @abstractmethod
    async def delete_all_of(
        self, kind: type[KubeObject], namespace: str, labels: dict[str, str]
    ) -> None:
        """Delete every object of a kind matching all labels in a namespace."""

    def objects(self) -> list[KubeObject]:
        """Return the objects this client recorded as created.

        Clients that do not keep such a record return an empty list.
        """
        return []

    async def create_or_restart_pod(self, ctx: RunContext, pod: Pod) -> None:
        """Create a pod, replacing a same-named pod left by a prior attempt.

        Raises:
            ClusterError: If the old pod is not gone within
                pod_deletion_timeout seconds, or on any request failure
            ContextCancelledError: If ctx was cancelled while waiting for the
                old pod to go away

        """
        try:
            await self.create(pod)
            return
        except AlreadyExistsError:
            logger.info(f"Pod {pod.name} already exists, recreating it")

        try:
            await self.delete(pod)
        except NotFoundError:
            pass
        await self._wait_for_pod_deletion(ctx, pod)
        await self.create(pod)

    async def _wait_for_pod_deletion(self, ctx: RunContext, pod: Pod) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.pod_deletion_timeout
        while True:
            if ctx.cancelled:
                raise ContextCancelledError(
                    f"cancelled while waiting for pod {pod.name} to be deleted"
                )

            try:
                await self.get(Pod, pod.namespace, pod.name)
            except NotFoundError:
                return
            if loop.time() >= deadline:
                raise ClusterError(
                    f"timed out after {self.pod_deletion_timeout}s waiting for "
                    f"pod {pod.name} to be deleted"
                )

            try:
                await asyncio.wait_for(ctx.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue

    async def wait_for_pod_completion(
        self,
        ctx: RunContext,
        namespace: str,
        name: str,
        notifier: TestCaseNotifier,
    ) -> Pod:
        """Wait for a pod to reach a terminal phase.

        Args:
            ctx: Context bounding the wait
            namespace: Namespace of the pod
            name: Name of the pod
            notifier: Receives the pod once it terminates

        Returns:
            Final pod state

        Raises:
            WorkloadError: If the pod failed
            ContextCancelledError: If ctx was cancelled before the pod finished

        """
        while True:
            if ctx.cancelled:
                raise ContextCancelledError(
                    f"cancelled while waiting for pod {name} to complete"
                )

            pod = await self.get(Pod, namespace, name)
            phase = pod.status.phase if pod.status is not None else "Pending"
            if phase == "Succeeded":
                notifier.complete(pod)
                return pod
            if phase == "Failed":
                notifier.complete(pod)
                raise WorkloadError(_failure_message(pod), pod)

            try:
                await asyncio.wait_for(ctx.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue


def _failure_message(pod: Pod) -> str:
    """Summarise why a pod failed."""
    pod_id = f"{pod.namespace}/{pod.name}"
    failed = []
    if pod.status is not None:
        for status in pod.status.container_statuses:
            terminated = status.state.terminated
            if terminated is not None and terminated.exit_code != 0:
                failed.append(status.name)
    if failed:
        return f"the pod {pod_id} failed after containers {', '.join(failed)} failed"
    reason = pod.status.reason if pod.status is not None else None
    return f"the pod {pod_id} failed: {reason or 'unknown reason'}"
