"""Shared fixtures for unit tests."""

import pytest

from ciops.multi_stage_test.cluster.dry_run import DryRunClient
from ciops.multi_stage_test.models.build_config import (
    Metadata,
    ReleaseBuildConfiguration,
)
from ciops.multi_stage_test.models.job_spec import JobSpec


@pytest.fixture
def job_spec() -> JobSpec:
    """Create test job spec."""
    return JobSpec(namespace="ci-op-1234", job="pull-ci-org-repo-main-e2e")


@pytest.fixture
def build_config() -> ReleaseBuildConfiguration:
    """Create test build configuration."""
    return ReleaseBuildConfiguration(
        metadata=Metadata(org="org", repo="repo", branch="main"),
        images=["installer"],
    )


@pytest.fixture
def client() -> DryRunClient:
    """Create an empty in-memory cluster client."""
    return DryRunClient()
