"""Models for the cluster objects created while running a multi-stage test.

Field names follow Python conventions; serialisation uses the camelCase names
of the Kubernetes API.
"""

from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class KubeModel(BaseModel):
    """Base for models exchanged with the Kubernetes API."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    def to_api(self) -> dict[str, object]:
        """Serialise to the API wire form."""
        return self.model_dump(by_alias=True, exclude_none=True)


class OwnerReference(KubeModel):
    """Reference to an object owning another for garbage collection."""

    api_version: str = Field(..., description="API version of the owner")
    kind: str = Field(..., description="Kind of the owner")
    name: str = Field(..., description="Name of the owner")
    uid: str = Field(..., description="UID of the owner")
    controller: bool | None = Field(default=None)
    block_owner_deletion: bool | None = Field(default=None)


class ObjectMeta(KubeModel):
    """Standard object metadata."""

    name: str = Field(..., description="Object name")
    namespace: str = Field(default="", description="Object namespace")
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    owner_references: list[OwnerReference] = Field(default_factory=list)


class KubeObject(KubeModel):
    """Top-level API object with metadata."""

    api_version: ClassVar[str] = "v1"
    kind: ClassVar[str] = ""
    resource: ClassVar[str] = ""

    metadata: ObjectMeta

    @property
    def name(self) -> str:
        """Object name."""
        return self.metadata.name

    @property
    def namespace(self) -> str:
        """Object namespace."""
        return self.metadata.namespace

    def to_api(self) -> dict[str, object]:
        """Serialise with apiVersion and kind."""
        data = super().to_api()
        return {"apiVersion": self.api_version, "kind": self.kind, **data}


class EnvVar(KubeModel):
    """Environment variable set in a container."""

    name: str
    value: str = ""


class VolumeMount(KubeModel):
    """Mount of a pod volume into a container."""

    name: str
    mount_path: str
    read_only: bool | None = None


class SecretVolumeSource(KubeModel):
    """Volume backed by a secret."""

    secret_name: str


class EmptyDirVolumeSource(KubeModel):
    """Scratch volume living as long as the pod."""


class Volume(KubeModel):
    """Pod volume."""

    name: str
    secret: SecretVolumeSource | None = None
    empty_dir: EmptyDirVolumeSource | None = None


class ResourceRequirements(KubeModel):
    """Compute resources of a container."""

    requests: dict[str, str] = Field(default_factory=dict)
    limits: dict[str, str] = Field(default_factory=dict)


class Container(KubeModel):
    """Container in a pod."""

    name: str
    image: str = ""
    command: list[str] = Field(default_factory=list)
    args: list[str] = Field(default_factory=list)
    env: list[EnvVar] = Field(default_factory=list)
    volume_mounts: list[VolumeMount] = Field(default_factory=list)
    resources: ResourceRequirements | None = None
    termination_message_policy: str | None = None

    def env_value(self, name: str) -> str | None:
        """Return the last value set for an environment variable."""
        value = None
        for env in self.env:
            if env.name == name:
                value = env.value
        return value


class PodSpec(KubeModel):
    """Desired state of a pod."""

    containers: list[Container] = Field(default_factory=list)
    init_containers: list[Container] = Field(default_factory=list)
    volumes: list[Volume] = Field(default_factory=list)
    restart_policy: str = "Never"
    service_account_name: str | None = None
    active_deadline_seconds: int | None = None
    termination_grace_period_seconds: int | None = None


class ContainerStateTerminated(KubeModel):
    """Terminal state of a container."""

    exit_code: int = 0
    reason: str | None = None
    message: str | None = None
    started_at: str | None = None
    finished_at: str | None = None


class ContainerState(KubeModel):
    """Observed state of a container."""

    terminated: ContainerStateTerminated | None = None


class ContainerStatus(KubeModel):
    """Observed status of a single container."""

    name: str
    state: ContainerState = Field(default_factory=ContainerState)


class PodStatus(KubeModel):
    """Observed state of a pod."""

    phase: str = "Pending"
    reason: str | None = None
    message: str | None = None
    container_statuses: list[ContainerStatus] = Field(default_factory=list)


class Pod(KubeObject):
    """A workload submitted for one test step."""

    kind: ClassVar[str] = "Pod"
    resource: ClassVar[str] = "pods"

    spec: PodSpec = Field(default_factory=PodSpec)
    status: PodStatus | None = None


class Secret(KubeObject):
    """Opaque or typed secret."""

    kind: ClassVar[str] = "Secret"
    resource: ClassVar[str] = "secrets"

    type: str | None = None
    data: dict[str, str] | None = None
    string_data: dict[str, str] | None = None


class ServiceAccount(KubeObject):
    """Identity pods run as."""

    kind: ClassVar[str] = "ServiceAccount"
    resource: ClassVar[str] = "serviceaccounts"


class PolicyRule(KubeModel):
    """Single permission granted by a role."""

    api_groups: list[str] = Field(default_factory=list)
    resources: list[str] = Field(default_factory=list)
    resource_names: list[str] | None = None
    verbs: list[str] = Field(default_factory=list)


class Role(KubeObject):
    """Namespaced set of permissions."""

    api_version: ClassVar[str] = "rbac.authorization.k8s.io/v1"
    kind: ClassVar[str] = "Role"
    resource: ClassVar[str] = "roles"

    rules: list[PolicyRule] = Field(default_factory=list)


class Subject(KubeModel):
    """Identity a role binding applies to."""

    kind: str
    name: str
    namespace: str | None = None


class RoleRef(KubeModel):
    """Role referenced by a binding."""

    kind: str
    name: str
    api_group: str = "rbac.authorization.k8s.io"


class RoleBinding(KubeObject):
    """Grant of a role to subjects."""

    api_version: ClassVar[str] = "rbac.authorization.k8s.io/v1"
    kind: ClassVar[str] = "RoleBinding"
    resource: ClassVar[str] = "rolebindings"

    role_ref: RoleRef
    subjects: list[Subject] = Field(default_factory=list)


class TagImage(KubeModel):
    """Image an image stream tag points to."""

    docker_image_reference: str = ""


class ImageStreamTag(KubeObject):
    """Tag of an image stream, named `<stream>:<tag>`."""

    api_version: ClassVar[str] = "image.openshift.io/v1"
    kind: ClassVar[str] = "ImageStreamTag"
    resource: ClassVar[str] = "imagestreamtags"

    image: TagImage = Field(default_factory=TagImage)
