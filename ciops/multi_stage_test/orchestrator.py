"""Test orchestrator running the phases of a multi-stage test."""

import logging
import time

from ciops.multi_stage_test.builder import WorkloadBuilder
from ciops.multi_stage_test.cluster.base import ClusterClient
from ciops.multi_stage_test.context import RunContext
from ciops.multi_stage_test.environment import resolve_environment
from ciops.multi_stage_test.errors import (
    AggregateError,
    ClusterError,
    MultiStageTestError,
    NotFoundError,
    PhaseError,
    WorkloadError,
    aggregate,
)
from ciops.multi_stage_test.links import requires
from ciops.multi_stage_test.models.build_config import ReleaseBuildConfiguration
from ciops.multi_stage_test.models.job_spec import JobSpec
from ciops.multi_stage_test.models.test_definition import (
    LiteralTestStep,
    MultiStageTestConfiguration,
)
from ciops.multi_stage_test.models.test_result import StepLink, SubTest, TestResult
from ciops.multi_stage_test.models.workload import EnvVar, KubeObject, Pod
from ciops.multi_stage_test.notifier import TestCaseNotifier
from ciops.multi_stage_test.parameters import Parameters
from ciops.multi_stage_test.provisioner import (
    MULTI_STAGE_TEST_LABEL,
    create_credentials,
    create_secret,
    setup_rbac,
)

logger = logging.getLogger(__name__)

REGISTRY_INFO_URL = "https://steps.ci.openshift.org"


class TestOrchestrator:
    """Orchestrates the pre, test and post phases of one multi-stage test."""

    __test__ = False

    def __init__(
        self,
        test: MultiStageTestConfiguration,
        config: ReleaseBuildConfiguration,
        params: Parameters,
        client: ClusterClient,
        job_spec: JobSpec,
        registry_info_url: str = REGISTRY_INFO_URL,
    ) -> None:
        """Initialize orchestrator for a single test."""
        self.test = test
        self.config = config
        self.params = params
        self.client = client
        self.job_spec = job_spec
        self.registry_info_url = registry_info_url
        self.builder = WorkloadBuilder(test, config, job_spec, client)
        self._sub_tests: list[SubTest] = []

    @property
    def name(self) -> str:
        """Name of the test."""
        return self.test.name

    @property
    def namespace(self) -> str:
        """Namespace the test runs in."""
        return self.job_spec.namespace

    @property
    def description(self) -> str:
        """Human-readable description of the test."""
        return f"Run multi-stage test {self.name}"

    @property
    def sub_tests(self) -> list[SubTest]:
        """Records collected from every pod run so far."""
        return list(self._sub_tests)

    def requires(self) -> list[StepLink]:
        """Prerequisites the test needs before it can run."""
        return requires(self.test, self.config)

    def objects(self) -> list[KubeObject]:
        """Objects the client recorded as created."""
        return self.client.objects()

    async def execute(self, ctx: RunContext) -> TestResult:
        """Run the test and summarise the outcome."""
        start = time.monotonic()
        try:
            await self.run(ctx)
        except MultiStageTestError as e:
            logger.error(f"Multi-stage test {self.name} failed: {e}")
            return self._result("failure", start, message=str(e), reason=e.reason)
        except Exception as e:
            logger.error(
                f"Multi-stage test {self.name} error: {type(e).__name__}: {e}",
                exc_info=e,
            )
            return self._result(
                "error", start, message=str(e), reason=MultiStageTestError.reason
            )
        return self._result("success", start)

    async def run(self, ctx: RunContext) -> None:
        """Provision shared state and run every phase.

        Raises:
            MultiStageTestError: If any phase failed
            ParameterError: If the shared environment cannot be resolved
            ProvisioningError: If secrets or RBAC objects cannot be created

        """
        logger.info(f"Orchestrator: Resolving environment for {self.name}...")
        env = await resolve_environment(
            self.client,
            self.params,
            self.namespace,
            self.name,
            self.test.leases,
            self.test.cluster_profile,
        )
        await create_secret(self.client, self.namespace, self.name)
        await create_credentials(
            self.client, self.namespace, self.name, self.test.all_steps()
        )
        await setup_rbac(self.client, self.namespace, self.name)

        errors: list[BaseException] = []
        error = await self._run_phase(ctx, "pre", self.test.pre, env, True, False)
        if error is not None:
            errors.append(error)
        else:
            error = await self._run_phase(
                ctx, "test", self.test.test, env, True, bool(errors)
            )
            if error is not None:
                errors.append(error)

        error = await self._run_phase(
            RunContext.background(), "post", self.test.post, env, False, bool(errors)
        )
        if error is not None:
            errors.append(error)

        if errors:
            raise MultiStageTestError(errors)

    async def _run_phase(
        self,
        ctx: RunContext,
        phase: str,
        steps: list[LiteralTestStep],
        env: list[EnvVar],
        short_circuit: bool,
        has_prev_errs: bool,
    ) -> PhaseError | None:
        """Run one phase, returning its failure instead of raising it."""
        try:
            await self.run_steps(ctx, steps, env, short_circuit, has_prev_errs)
        except Exception as e:
            logger.error(f"Phase {phase} of {self.name} failed: {e}")
            return PhaseError(self.name, phase, [e])
        return None

    async def run_steps(
        self,
        ctx: RunContext,
        steps: list[LiteralTestStep],
        env: list[EnvVar],
        short_circuit: bool,
        has_prev_errs: bool,
    ) -> None:
        """Build and run the pods of one phase.

        Raises:
            AggregateError: If any pod could not be built or failed, or if
                ctx was cancelled

        """
        pods, build_error = await self.builder.generate_pods(steps, env, has_prev_errs)
        if build_error is not None:
            raise build_error

        errors: list[BaseException] = []
        run_error = await self.run_pods(ctx, pods, short_circuit)
        if run_error is not None:
            errors.append(run_error)

        if ctx.cancelled:
            selector = f"{MULTI_STAGE_TEST_LABEL}={self.name}"
            logger.info(f"cleanup: Deleting pods with label {selector}")
            try:
                await self.client.delete_all_of(
                    Pod, self.namespace, {MULTI_STAGE_TEST_LABEL: self.name}
                )
            except NotFoundError:
                pass
            except ClusterError as e:
                errors.append(
                    ClusterError(f"failed to delete pods with label {selector}: {e}")
                )
            errors.append(RuntimeError("cancelled"))

        error = aggregate(errors)
        if error is not None:
            raise error

    async def run_pods(
        self, ctx: RunContext, pods: list[Pod], short_circuit: bool
    ) -> AggregateError | None:
        """Run pods one after another, stopping at a failure if short_circuit."""
        errors: list[BaseException] = []
        for pod in pods:
            try:
                await self.run_pod(ctx, pod, TestCaseNotifier())
            except Exception as e:
                logger.error(f"Step {pod.name} failed: {e}")
                errors.append(e)
                if short_circuit:
                    break
        return aggregate(errors)

    async def run_pod(
        self, ctx: RunContext, pod: Pod, notifier: TestCaseNotifier
    ) -> None:
        """Submit a pod and wait for it to terminate."""
        logger.info(f"Running step {pod.name}")
        try:
            await self.client.create_or_restart_pod(ctx, pod)
        except ClusterError as e:
            raise ClusterError(
                f'failed to create or restart "{pod.name}" pod: {e}'
            ) from e

        error: RuntimeError | None = None
        try:
            pod = await self.client.wait_for_pod_completion(
                ctx, pod.namespace, pod.name, notifier
            )
        except WorkloadError as e:
            pod = e.pod
            error = e
        except RuntimeError as e:
            error = e

        self._sub_tests.extend(notifier.sub_tests(f"{self.description} - {pod.name} "))
        if error is not None:
            raise RuntimeError(self._failure_message(pod, error)) from error
        logger.info(f"Step {pod.name} succeeded")

    def _failure_message(self, pod: Pod, error: BaseException) -> str:
        step = pod.name.removeprefix(f"{self.name}-")
        metadata = self.config.metadata
        links = (
            f"Link to step on registry info site: "
            f"{self.registry_info_url}/reference/{step}\n"
            f"Link to job on registry info site: "
            f"{self.registry_info_url}/job?org={metadata.org}&repo={metadata.repo}"
            f"&branch={metadata.branch}&test={self.name}"
        )
        if metadata.variant:
            links += f"&variant={metadata.variant}"

        status = "failed"
        if (
            pod.status is not None
            and pod.status.phase == "Failed"
            and pod.status.reason == "DeadlineExceeded"
        ):
            status = "exceeded the configured timeout"
            if pod.spec.active_deadline_seconds is not None:
                status += f" activeDeadlineSeconds={pod.spec.active_deadline_seconds}"
        return f'"{self.name}" pod "{pod.name}" {status}: {error}\n{links}'

    def _result(
        self,
        status: str,
        start: float,
        message: str | None = None,
        reason: str | None = None,
    ) -> TestResult:
        return TestResult(
            test_name=self.name,
            status=status,  # type: ignore[arg-type]
            duration=time.monotonic() - start,
            message=message,
            reason=reason,
            sub_tests=self.sub_tests,
        )
