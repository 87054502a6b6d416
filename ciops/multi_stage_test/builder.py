"""Translate declared test steps into pod definitions."""

import logging
import posixpath

from ciops.multi_stage_test.cluster.base import ClusterClient
from ciops.multi_stage_test.environment import profile_secret_name
from ciops.multi_stage_test.errors import AggregateError, ClusterError, aggregate
from ciops.multi_stage_test.images import image_digest_for
from ciops.multi_stage_test.models.build_config import (
    PIPELINE_IMAGE_STREAM,
    ReleaseBuildConfiguration,
    cluster_type_for,
    release_stream_for,
)
from ciops.multi_stage_test.models.job_spec import JobSpec
from ciops.multi_stage_test.models.test_definition import (
    CredentialReference,
    LiteralTestStep,
    MultiStageTestConfiguration,
    StepDependency,
)
from ciops.multi_stage_test.models.workload import (
    Container,
    EmptyDirVolumeSource,
    EnvVar,
    Pod,
    SecretVolumeSource,
    Volume,
    VolumeMount,
)
from ciops.multi_stage_test.pods import (
    SAVE_CONTAINER_LOGS_ANNOTATION,
    generate_base_pod,
    resources_for,
)
from ciops.multi_stage_test.provisioner import MULTI_STAGE_TEST_LABEL

logger = logging.getLogger(__name__)

CLUSTER_PROFILE_MOUNT_PATH = "/var/run/secrets/ci.openshift.io/cluster-profile"
CLUSTER_PROFILE_MOUNT_ENV = "CLUSTER_PROFILE_DIR"
SECRET_MOUNT_PATH = "/var/run/secrets/ci.openshift.io/multi-stage"
SECRET_MOUNT_ENV = "SHARED_DIR"
CLI_MOUNT_PATH = "/cli"
CLI_ENV = "CLI_DIR"
HOME_PATH = "/alabama"
HOME_VOLUME_NAME = "home"
CONTAINER_NAME = "test"

SECRET_WRAPPER_IMAGE = "registry.ci.openshift.org/ci/secret-wrapper:latest"
SECRET_WRAPPER_DIR = "/tmp/secret-wrapper"
SECRET_WRAPPER_BIN = posixpath.join(SECRET_WRAPPER_DIR, "secret-wrapper")

COMMAND_PREAMBLE = (
    "#!/bin/bash",
    "set -eu",
    # writeable kubeconfig for this step only, changes are not passed on
    "if [[ -e ${KUBECONFIG:-} ]]; then "
    "WRITEABLE_KUBECONFIG_LOCATION=$(mktemp) && "
    "cp $KUBECONFIG $WRITEABLE_KUBECONFIG_LOCATION && "
    "export KUBECONFIG=$WRITEABLE_KUBECONFIG_LOCATION && "
    "unset WRITEABLE_KUBECONFIG_LOCATION; fi",
    # a home lets kubectl cache discovery
    f"if ! [[ -d ${{HOME:-}} ]]; then export HOME={HOME_PATH}; fi",
)
CLI_PATH_EXPORT = 'export PATH="${PATH}:${CLI_DIR}"'


class StepScript:
    """Shell script a step runs: a fixed preamble followed by its commands."""

    def __init__(self, body: str) -> None:
        """Initialize with the step's commands."""
        self.preamble = list(COMMAND_PREAMBLE)
        self.body = body

    def render(self) -> str:
        """Return the full script."""
        return "".join(f"{line}\n" for line in self.preamble) + self.body


class StepPod:
    """Pod under construction for one step."""

    def __init__(self, pod: Pod, script: StepScript) -> None:
        """Initialize from a base pod and the step's script."""
        self.pod = pod
        self.script = script
        self.wrapped = False

    @property
    def container(self) -> Container:
        """Main container of the pod."""
        return self.pod.spec.containers[0]

    def finalize(self) -> Pod:
        """Set the main container command from the script and return the pod."""
        command = ["/bin/bash", "-c", self.script.render()]
        if self.wrapped:
            self.container.args = [*command, *self.container.args]
            self.container.command = [SECRET_WRAPPER_BIN]
        else:
            self.container.command = command
        return self.pod


def add_secret_wrapper(step_pod: StepPod) -> None:
    """Run the step through a wrapper that syncs the shared directory."""
    volume = "secret-wrapper"
    pod = step_pod.pod
    pod.spec.volumes.append(Volume(name=volume, empty_dir=EmptyDirVolumeSource()))
    mount = VolumeMount(name=volume, mount_path=SECRET_WRAPPER_DIR)
    pod.spec.init_containers.append(
        Container(
            name="cp-secret-wrapper",
            image=SECRET_WRAPPER_IMAGE,
            command=["cp"],
            args=["/bin/secret-wrapper", SECRET_WRAPPER_BIN],
            volume_mounts=[mount],
            termination_message_policy="FallbackToLogsOnError",
        )
    )
    step_pod.container.volume_mounts.append(mount)
    step_pod.wrapped = True


def add_secret(secret: str, step_pod: StepPod) -> None:
    """Mount the shared directory secret."""
    step_pod.pod.spec.volumes.append(
        Volume(name=secret, secret=SecretVolumeSource(secret_name=secret))
    )
    container = step_pod.container
    container.volume_mounts.append(
        VolumeMount(name=secret, mount_path=SECRET_MOUNT_PATH)
    )
    container.env.append(EnvVar(name=SECRET_MOUNT_ENV, value=SECRET_MOUNT_PATH))


def add_credentials(credentials: list[CredentialReference], step_pod: StepPod) -> None:
    """Mount each mirrored credential at its declared path."""
    for credential in credentials:
        name = credential.mirrored_name
        step_pod.pod.spec.volumes.append(
            Volume(name=name, secret=SecretVolumeSource(secret_name=name))
        )
        step_pod.container.volume_mounts.append(
            VolumeMount(name=name, mount_path=credential.mount_path)
        )


def add_profile(secret: str, profile: str, step_pod: StepPod) -> None:
    """Mount the cluster profile and expose its location and cluster type."""
    volume = "cluster-profile"
    step_pod.pod.spec.volumes.append(
        Volume(name=volume, secret=SecretVolumeSource(secret_name=secret))
    )
    container = step_pod.container
    container.volume_mounts.append(
        VolumeMount(name=volume, mount_path=CLUSTER_PROFILE_MOUNT_PATH)
    )
    container.env.extend(
        [
            EnvVar(name="CLUSTER_TYPE", value=cluster_type_for(profile)),
            EnvVar(name=CLUSTER_PROFILE_MOUNT_ENV, value=CLUSTER_PROFILE_MOUNT_PATH),
        ]
    )


def add_cli_injector(release: str, step_pod: StepPod) -> None:
    """Copy the CLI of a release into the pod and put it on the PATH."""
    volume = "cli"
    step_pod.pod.spec.volumes.append(
        Volume(name=volume, empty_dir=EmptyDirVolumeSource())
    )
    step_pod.pod.spec.init_containers.append(
        Container(
            name="inject-cli",
            image=f"{release_stream_for(release)}:cli",
            command=["/bin/cp"],
            args=["/usr/bin/oc", CLI_MOUNT_PATH],
            volume_mounts=[VolumeMount(name=volume, mount_path=CLI_MOUNT_PATH)],
        )
    )
    step_pod.script.preamble.append(CLI_PATH_EXPORT)
    container = step_pod.container
    container.volume_mounts.append(VolumeMount(name=volume, mount_path=CLI_MOUNT_PATH))
    container.env.append(EnvVar(name=CLI_ENV, value=CLI_MOUNT_PATH))


def should_skip(
    test: MultiStageTestConfiguration, step: LiteralTestStep, has_prev_errs: bool
) -> bool:
    """Whether an optional step is left out because nothing has failed."""
    return (
        bool(test.allow_skip_on_success)
        and bool(step.optional_on_success)
        and not has_prev_errs
    )


class WorkloadBuilder:
    """Builds the pods running the steps of one multi-stage test."""

    def __init__(
        self,
        test: MultiStageTestConfiguration,
        config: ReleaseBuildConfiguration,
        job_spec: JobSpec,
        client: ClusterClient,
    ) -> None:
        """Initialize builder for a test."""
        self.test = test
        self.config = config
        self.job_spec = job_spec
        self.client = client

    @property
    def name(self) -> str:
        """Name of the test."""
        return self.test.name

    async def generate_pods(
        self,
        steps: list[LiteralTestStep],
        env: list[EnvVar],
        has_prev_errs: bool,
    ) -> tuple[list[Pod], AggregateError | None]:
        """Build pods for steps.

        Steps that cannot be built are left out; their errors are returned
        together with the pods that were built.
        """
        pods: list[Pod] = []
        errors: list[BaseException] = []
        for step in steps:
            if should_skip(self.test, step, has_prev_errs):
                logger.info(f"Skipping optional step {self.name}-{step.name}")
                continue
            try:
                pods.append(await self.generate_pod(step, env))
            except (ValueError, AggregateError) as e:
                logger.error(f"Failed to build pod for step {step.name}: {e}")
                errors.append(e)
        return pods, aggregate(errors)

    async def generate_pod(self, step: LiteralTestStep, env: list[EnvVar]) -> Pod:
        """Build the pod for a single step.

        Raises:
            ValueError: If the step's resources are invalid
            AggregateError: If the step's dependencies cannot be resolved

        """
        image = self._image_for(step)
        resources = resources_for(step.resources)
        step_pod = StepPod(
            generate_base_pod(
                self.job_spec,
                f"{self.name}-{step.name}",
                CONTAINER_NAME,
                [],
                image,
                resources,
            ),
            StepScript(step.commands),
        )
        pod = step_pod.pod
        pod.metadata.annotations[SAVE_CONTAINER_LOGS_ANNOTATION] = "true"
        pod.metadata.labels[MULTI_STAGE_TEST_LABEL] = self.name
        pod.spec.active_deadline_seconds = step.active_deadline_seconds
        pod.spec.service_account_name = self.name
        pod.spec.termination_grace_period_seconds = step.termination_grace_period_seconds
        pod.spec.volumes.append(
            Volume(name=HOME_VOLUME_NAME, empty_dir=EmptyDirVolumeSource())
        )
        for container in pod.spec.containers:
            if container.name == CONTAINER_NAME:
                container.volume_mounts.append(
                    VolumeMount(name=HOME_VOLUME_NAME, mount_path=HOME_PATH)
                )

        if not step.readonly_shared_dir:
            add_secret_wrapper(step_pod)

        container = step_pod.container
        container.env.extend(
            [
                EnvVar(name="NAMESPACE", value=self.job_spec.namespace),
                EnvVar(name="JOB_NAME_SAFE", value=self.name.replace("_", "-")),
                EnvVar(name="JOB_NAME_HASH", value=self.job_spec.job_name_hash()),
            ]
        )
        container.env.extend(env)
        container.env.extend(self.generate_params(step))
        container.env.extend(await self.env_for_dependencies(step))

        if self.job_spec.owner is not None:
            pod.metadata.owner_references.append(self.job_spec.owner)
        if self.test.cluster_profile:
            add_profile(
                profile_secret_name(self.name), self.test.cluster_profile, step_pod
            )
            container.env.extend(
                [
                    EnvVar(
                        name="KUBECONFIG",
                        value=posixpath.join(SECRET_MOUNT_PATH, "kubeconfig"),
                    ),
                    EnvVar(
                        name="KUBEADMIN_PASSWORD_FILE",
                        value=posixpath.join(SECRET_MOUNT_PATH, "kubeadmin-password"),
                    ),
                ]
            )
        if step.cli:
            add_cli_injector(step.cli, step_pod)
        add_secret(self.name, step_pod)
        add_credentials(step.credentials, step_pod)
        return step_pod.finalize()

    def generate_params(self, step: LiteralTestStep) -> list[EnvVar]:
        """Resolve declared parameters.

        A step-level override wins over a test-level one, which wins over
        the declared default.
        """
        env = []
        for param in step.env:
            value = param.default or ""
            if param.name in self.test.environment:
                value = self.test.environment[param.name]
            if param.name in step.environment:
                value = step.environment[param.name]
            env.append(EnvVar(name=param.name, value=value))
        return env

    async def env_for_dependencies(self, step: LiteralTestStep) -> list[EnvVar]:
        """Resolve pull specs for the images a step depends on.

        Raises:
            AggregateError: If any dependency cannot be resolved

        """
        env: list[EnvVar] = []
        errors: list[BaseException] = []
        for dependency in step.dependencies:
            stream, tag = self.config.dependency_parts(dependency)
            try:
                ref = await image_digest_for(
                    self.client, self.job_spec.namespace, stream, tag
                )
            except ClusterError:
                errors.append(
                    ClusterError(
                        f"could not determine image pull spec for image "
                        f"{dependency.name} on step {step.name}"
                    )
                )
                continue
            env.append(EnvVar(name=dependency.env, value=ref))
        if errors:
            raise AggregateError(errors)
        return env

    def _image_for(self, step: LiteralTestStep) -> str:
        tag = step.from_image_tag()
        if tag is not None:
            return f"{PIPELINE_IMAGE_STREAM}:{tag}"
        stream, tag = self.config.dependency_parts(
            StepDependency(name=step.source, env="")
        )
        return f"{stream}:{tag}"
