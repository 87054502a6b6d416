"""Collect structured sub-test records from finished pods."""

from datetime import datetime

from ciops.multi_stage_test.models.test_result import SubTest
from ciops.multi_stage_test.models.workload import Pod


class TestCaseNotifier:
    """Records one test case per container of a pod once it terminates."""

    __test__ = False

    def __init__(self) -> None:
        """Initialize an empty notifier."""
        self._pod: Pod | None = None

    def complete(self, pod: Pod) -> None:
        """Record the final state of a pod."""
        self._pod = pod

    def sub_tests(self, prefix: str) -> list[SubTest]:
        """Return test cases for every terminated container of the pod."""
        if self._pod is None or self._pod.status is None:
            return []

        tests: list[SubTest] = []
        for status in self._pod.status.container_statuses:
            terminated = status.state.terminated
            if terminated is None:
                continue
            failure = None
            if terminated.exit_code != 0:
                failure = (
                    terminated.message
                    or f"container {status.name} exited with code "
                    f"{terminated.exit_code}"
                )
            tests.append(
                SubTest(
                    name=f"{prefix}container {status.name}",
                    duration=_duration(terminated.started_at, terminated.finished_at),
                    started_at=terminated.started_at,
                    finished_at=terminated.finished_at,
                    failure=failure,
                )
            )
        return tests


def _duration(started_at: str | None, finished_at: str | None) -> float:
    """Seconds between two API timestamps, or 0.0 if unavailable."""
    if started_at is None or finished_at is None:
        return 0.0
    try:
        started = datetime.fromisoformat(started_at.replace("Z", "+00:00"))
        finished = datetime.fromisoformat(finished_at.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    return max(0.0, (finished - started).total_seconds())
