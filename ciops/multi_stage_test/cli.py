"""CLI entry point for running a multi-stage test."""

import asyncio
import json
import logging
import os
import signal
import sys
from pathlib import Path

import typer

from ciops.multi_stage_test.cluster.base import ClusterClient
from ciops.multi_stage_test.cluster.dry_run import DryRunClient
from ciops.multi_stage_test.cluster.kube import KubernetesClient
from ciops.multi_stage_test.context import RunContext
from ciops.multi_stage_test.models.cluster_config import KubernetesConfig
from ciops.multi_stage_test.models.job_spec import JobSpec
from ciops.multi_stage_test.models.test_result import TestResult
from ciops.multi_stage_test.orchestrator import TestOrchestrator
from ciops.multi_stage_test.parameters import StaticParameters
from ciops.multi_stage_test.test_loader import load_test

# Configure logging - force reconfiguration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
    force=True,
)
logger = logging.getLogger(__name__)

app = typer.Typer()


@app.command()
def main(  # noqa: C901
    config: Path = typer.Option(..., help="Path to the test definition YAML"),  # noqa: B008
    test: str = typer.Option(..., help="Name of the multi-stage test to run"),
    job_spec: str = typer.Option(..., help="JSON description of the job"),
    parameters: str = typer.Option("{}", help="JSON object of parameter values"),
    cluster_config: str = typer.Option(
        "{}", help="JSON configuration for the Kubernetes API client"
    ),
    dry_run: bool = typer.Option(
        False, help="Record objects in memory instead of creating them"
    ),
) -> None:
    """Run a multi-stage test in the job's namespace."""
    logger.info("=" * 80)
    logger.info("Multi-Stage Test - Starting")
    logger.info("=" * 80)
    logger.info(f"Config: {config}")
    logger.info(f"Test: {test}")
    logger.info(f"Dry run: {dry_run}")

    try:
        definition, test_config = load_test(config, test)
        spec = JobSpec.model_validate(_parse_json("job-spec", job_spec))
        params = _parse_parameters(parameters)
        client = _create_client(cluster_config, dry_run)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    logger.info(f"Namespace: {spec.namespace}")
    orchestrator = TestOrchestrator(test_config, definition, params, client, spec)

    try:
        result = asyncio.run(_execute(orchestrator))
    except Exception as e:
        logger.exception("Test execution failed")
        typer.echo(f"Error running test: {e}", err=True)
        raise typer.Exit(code=1)

    logger.info("=" * 80)
    logger.info("Test Result Summary:")
    logger.info("=" * 80)
    for sub_test in result.sub_tests:
        if sub_test.passed:
            logger.info(f"✓ {sub_test.name} ({sub_test.duration:.2f}s)")
        else:
            logger.error(f"✗ {sub_test.name}: {sub_test.failure}")

    output = {
        "test_name": result.test_name,
        "status": result.status,
        "duration": result.duration,
        "message": result.message,
        "reason": result.reason,
        "passed": sum(1 for t in result.sub_tests if t.passed),
        "failed": sum(1 for t in result.sub_tests if not t.passed),
        "sub_tests": [t.model_dump() for t in result.sub_tests],
        "requires": [
            link.model_dump(exclude_none=True) for link in orchestrator.requires()
        ],
    }
    if dry_run:
        output["objects"] = [obj.to_api() for obj in orchestrator.objects()]

    typer.echo(json.dumps(output, indent=2))

    if result.status != "success":
        logger.error(f"Test {result.test_name} {result.status}: {result.message}")
        raise typer.Exit(code=1)


async def _execute(orchestrator: TestOrchestrator) -> TestResult:
    """Run the orchestrator, cancelling its context on SIGINT or SIGTERM."""
    ctx = RunContext()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, ctx.cancel)
        except NotImplementedError:  # pragma: no cover
            logger.warning(f"Cannot handle {sig.name} on this platform")
    return await orchestrator.execute(ctx)


def _parse_json(option: str, value: str) -> dict[str, object]:
    """Parse a JSON object passed on the command line."""
    try:
        data = json.loads(value)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {option}: {e}")
    if not isinstance(data, dict):
        raise ValueError(f"Invalid JSON in {option}: expected an object")
    return data


def _parse_parameters(value: str) -> StaticParameters:
    """Parse parameter values, leaving out parameters set to null."""
    return StaticParameters(
        {
            name: str(v)
            for name, v in _parse_json("parameters", value).items()
            if v is not None
        }
    )


def _create_client(config_json: str, dry_run: bool) -> ClusterClient:
    """Create the cluster client."""
    if dry_run:
        return DryRunClient()

    config = KubernetesConfig(**_parse_json("cluster-config", config_json))
    if "KUBERNETES_API_URL" in os.environ:
        config.api_url = os.environ["KUBERNETES_API_URL"]
    return KubernetesClient(config)


if __name__ == "__main__":  # pragma: no cover
    app()
