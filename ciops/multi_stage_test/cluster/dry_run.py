"""In-memory cluster client recording objects instead of creating them."""

import logging
from typing import TypeVar

from ciops.multi_stage_test.cluster.base import ClusterClient
from ciops.multi_stage_test.errors import AlreadyExistsError, NotFoundError
from ciops.multi_stage_test.models.workload import (
    KubeObject,
    Pod,
    PodStatus,
)

logger = logging.getLogger(__name__)

ObjectT = TypeVar("ObjectT", bound=KubeObject)


class DryRunClient(ClusterClient):
    """Cluster client keeping objects in memory.

    Pods report ``Succeeded`` as soon as they are created. Objects can be
    seeded with :meth:`add` to stand in for pre-existing cluster state.
    """

    poll_interval = 0.0

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._objects: dict[tuple[str, str, str], KubeObject] = {}
        self._created: list[KubeObject] = []

    def add(self, obj: KubeObject) -> None:
        """Seed an object without recording it as created."""
        self._objects[self._key(type(obj), obj.namespace, obj.name)] = obj

    def objects(self) -> list[KubeObject]:
        """Return every object created through this client, in order."""
        return list(self._created)

    async def create(self, obj: KubeObject) -> None:
        """Store an object."""
        key = self._key(type(obj), obj.namespace, obj.name)
        if key in self._objects:
            raise AlreadyExistsError(f"{obj.kind} {obj.namespace}/{obj.name} exists")
        obj = obj.model_copy(deep=True)
        if isinstance(obj, Pod):
            obj.status = self.pod_status(obj)
        logger.debug(f"Dry run: created {obj.kind} {obj.namespace}/{obj.name}")
        self._objects[key] = obj
        self._created.append(obj)

    async def get(self, kind: type[ObjectT], namespace: str, name: str) -> ObjectT:
        """Return a copy of a stored object."""
        obj = self._objects.get(self._key(kind, namespace, name))
        if obj is None:
            raise NotFoundError(f"{kind.kind} {namespace}/{name} not found")
        return obj.model_copy(deep=True)  # type: ignore[return-value]

    async def delete(self, obj: KubeObject) -> None:
        """Remove a stored object."""
        key = self._key(type(obj), obj.namespace, obj.name)
        if key not in self._objects:
            raise NotFoundError(f"{obj.kind} {obj.namespace}/{obj.name} not found")
        del self._objects[key]

    async def delete_all_of(
        self, kind: type[KubeObject], namespace: str, labels: dict[str, str]
    ) -> None:
        """Remove every stored object of a kind matching all labels."""
        for key, obj in list(self._objects.items()):
            if key[0] != kind.kind or key[1] != namespace:
                continue
            if all(obj.metadata.labels.get(k) == v for k, v in labels.items()):
                del self._objects[key]

    def pod_status(self, pod: Pod) -> PodStatus:
        """Return the status a newly created pod reports."""
        return PodStatus(phase="Succeeded")

    @staticmethod
    def _key(kind: type[KubeObject], namespace: str, name: str) -> tuple[str, str, str]:
        return kind.kind, namespace, name
