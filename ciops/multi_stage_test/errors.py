"""Error types raised while provisioning and running multi-stage tests."""

from collections.abc import Iterable

from ciops.multi_stage_test.models.workload import Pod


class ClusterError(RuntimeError):
    """Request against the cluster object store failed."""


class AlreadyExistsError(ClusterError):
    """Object being created already exists."""


class NotFoundError(ClusterError):
    """Object being read or deleted does not exist."""


class ParameterError(RuntimeError):
    """Named parameter could not be resolved."""


class ProvisioningError(RuntimeError):
    """Shared secret, credentials or RBAC objects could not be set up."""


class WorkloadError(RuntimeError):
    """Pod reached a failed terminal state."""

    def __init__(self, message: str, pod: Pod) -> None:
        """Initialize with the final observed pod."""
        super().__init__(message)
        self.pod = pod


class ContextCancelledError(RuntimeError):
    """Wait returned early because its context was cancelled."""


class AggregateError(Exception):
    """Ordered collection of errors reported together."""

    def __init__(self, errors: Iterable[BaseException]) -> None:
        """Initialize from errors, flattening nested aggregates."""
        self.errors: list[BaseException] = []
        for error in errors:
            if type(error) is AggregateError:
                self.errors.extend(error.errors)
            else:
                self.errors.append(error)
        super().__init__(self._format())

    def _format(self) -> str:
        if len(self.errors) == 1:
            return str(self.errors[0])
        return "[" + ", ".join(str(e) for e in self.errors) + "]"


def aggregate(errors: list[BaseException]) -> AggregateError | None:
    """Return an aggregate of errors, or None when there are none."""
    if not errors:
        return None
    return AggregateError(errors)


class PhaseError(AggregateError):
    """One phase of a multi-stage test failed."""

    def __init__(
        self, test_name: str, phase: str, errors: Iterable[BaseException]
    ) -> None:
        """Initialize with the failing phase name."""
        self.test_name = test_name
        self.phase = phase
        super().__init__(errors)

    def _format(self) -> str:
        return f'"{self.test_name}" {self.phase} steps failed: {super()._format()}'


class MultiStageTestError(AggregateError):
    """Multi-stage test run failed."""

    reason = "executing_multi_stage_test"
