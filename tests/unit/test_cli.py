"""Tests for CLI entry point."""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from ciops.multi_stage_test.cli import (
    _create_client,
    _parse_json,
    _parse_parameters,
    app,
)
from ciops.multi_stage_test.cluster.dry_run import DryRunClient
from ciops.multi_stage_test.cluster.kube import KubernetesClient
from ciops.multi_stage_test.models.test_result import SubTest, TestResult

runner = CliRunner()

CONFIG = """
metadata:
  org: org
  repo: repo
  branch: main
tests:
  - as: unit
    pre:
      - as: setup
        from: src
        commands: make setup
    test:
      - as: run
        from: src
        commands: make test
"""

JOB_SPEC = json.dumps({"namespace": "ci-op-1234", "job": "pull-ci-org-repo-main-unit"})


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    """Write a test definition file."""
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG)
    return path


def _args(config_path: Path, *extra: str) -> list[str]:
    return [
        "--config",
        str(config_path),
        "--test",
        "unit",
        "--job-spec",
        JOB_SPEC,
        *extra,
    ]


def test_main_dry_run(config_path: Path) -> None:
    """A dry run succeeds and reports the objects it would create."""
    result = runner.invoke(app, _args(config_path, "--dry-run"))

    assert result.exit_code == 0
    output = json.loads(result.stdout)
    assert output["test_name"] == "unit"
    assert output["status"] == "success"
    assert output["requires"] == [{"kind": "internal-image", "name": "src"}]
    assert [(o["kind"], o["metadata"]["name"]) for o in output["objects"]] == [
        ("Secret", "unit"),
        ("ServiceAccount", "unit"),
        ("Role", "unit"),
        ("RoleBinding", "unit"),
        ("Pod", "unit-setup"),
        ("Pod", "unit-run"),
    ]
    pod = output["objects"][-1]
    assert pod["metadata"]["namespace"] == "ci-op-1234"
    assert pod["spec"]["containers"][0]["image"] == "pipeline:src"


def test_main_failure_exit_code(config_path: Path) -> None:
    """Main exits with error code when the test fails."""
    orchestrator = MagicMock()
    orchestrator.execute = AsyncMock(
        return_value=TestResult(
            test_name="unit",
            status="failure",
            duration=3.0,
            message='"unit" test steps failed',
            reason="executing_multi_stage_test",
            sub_tests=[
                SubTest(name="a", duration=1.0),
                SubTest(name="b", duration=2.0, failure="exit 1"),
            ],
        )
    )
    orchestrator.requires.return_value = []

    with patch(
        "ciops.multi_stage_test.cli.TestOrchestrator", return_value=orchestrator
    ):
        result = runner.invoke(app, _args(config_path, "--dry-run"))

    assert result.exit_code == 1
    output = json.loads(result.stdout)
    assert output["status"] == "failure"
    assert output["reason"] == "executing_multi_stage_test"
    assert output["passed"] == 1
    assert output["failed"] == 1


def test_main_execution_exception(config_path: Path) -> None:
    """Main exits with error code when execution raises."""
    orchestrator = MagicMock()
    orchestrator.execute = AsyncMock(side_effect=RuntimeError("boom"))

    with patch(
        "ciops.multi_stage_test.cli.TestOrchestrator", return_value=orchestrator
    ):
        result = runner.invoke(app, _args(config_path, "--dry-run"))

    assert result.exit_code == 1


def test_main_unknown_test(config_path: Path) -> None:
    """Main exits with error code when the test is not defined."""
    args = _args(config_path, "--dry-run")
    args[args.index("unit")] = "e2e"

    result = runner.invoke(app, args)

    assert result.exit_code == 1


def test_main_missing_config(tmp_path: Path) -> None:
    """Main exits with error code when the config file is missing."""
    result = runner.invoke(app, _args(tmp_path / "missing.yaml", "--dry-run"))

    assert result.exit_code == 1


def test_main_invalid_parameters(config_path: Path) -> None:
    """Main exits with error code for malformed parameters."""
    result = runner.invoke(
        app, _args(config_path, "--dry-run", "--parameters", "not json")
    )

    assert result.exit_code == 1


def test_parse_json() -> None:
    """_parse_json accepts objects only."""
    assert _parse_json("parameters", '{"A": "1"}') == {"A": "1"}
    with pytest.raises(ValueError, match="Invalid JSON in parameters"):
        _parse_json("parameters", "{")
    with pytest.raises(ValueError, match="expected an object"):
        _parse_json("parameters", "[]")


def test_create_client_dry_run() -> None:
    """Dry runs use the in-memory client."""
    assert isinstance(_create_client("{}", dry_run=True), DryRunClient)


def test_create_client_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    """KUBERNETES_API_URL overrides the configured API URL."""
    monkeypatch.setenv("KUBERNETES_API_URL", "https://api.example.com:6443")

    client = _create_client('{"token": "secret"}', dry_run=False)

    assert isinstance(client, KubernetesClient)
    assert client.config.api_url == "https://api.example.com:6443"
    assert client.config.token == "secret"


def test_parse_parameters_skips_null() -> None:
    """Parameters set to null are treated as unset."""
    params = _parse_parameters('{"OO_INDEX": null, "COUNT": 3, "NAME": "x"}')

    assert params.lookup("OO_INDEX") is None
    assert params.lookup("COUNT") == "3"
    assert params.lookup("NAME") == "x"
