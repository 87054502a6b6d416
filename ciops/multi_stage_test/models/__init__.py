"""Data models for test definitions, cluster objects, configuration and results."""

from ciops.multi_stage_test.models.build_config import (
    Metadata,
    ReleaseBuildConfiguration,
    TestDefinition,
)
from ciops.multi_stage_test.models.cluster_config import KubernetesConfig
from ciops.multi_stage_test.models.job_spec import JobSpec
from ciops.multi_stage_test.models.test_definition import (
    CredentialReference,
    ImageStreamTagReference,
    LiteralTestStep,
    MultiStageTestConfiguration,
    StepDependency,
    StepLease,
    StepParameter,
    StepResources,
)
from ciops.multi_stage_test.models.test_result import StepLink, SubTest, TestResult

__all__ = [
    "CredentialReference",
    "ImageStreamTagReference",
    "JobSpec",
    "KubernetesConfig",
    "LiteralTestStep",
    "Metadata",
    "MultiStageTestConfiguration",
    "ReleaseBuildConfiguration",
    "StepDependency",
    "StepLease",
    "StepLink",
    "StepParameter",
    "StepResources",
    "SubTest",
    "TestDefinition",
    "TestResult",
]
