"""Models describing the build configuration a test belongs to."""

from pydantic import BaseModel, Field

from ciops.multi_stage_test.models.test_definition import (
    MultiStageTestConfiguration,
    StepDependency,
)

PIPELINE_IMAGE_STREAM = "pipeline"
LATEST_RELEASE_NAME = "latest"

# Images every pipeline produces regardless of configuration
PIPELINE_IMAGES = frozenset({"root", "src", "bin", "test-bin", "rpms"})

CLUSTER_TYPES = {
    "aws": "aws",
    "aws-arm64": "aws-arm64",
    "aws-cpaas": "aws",
    "azure4": "azure4",
    "azure-arm64": "azure-arm64",
    "gcp": "gcp",
    "gcp-ha": "gcp",
    "libvirt-ppc64le": "libvirt-ppc64le",
    "libvirt-s390x": "libvirt-s390x",
    "openstack": "openstack",
    "ovirt": "ovirt",
    "packet": "packet",
    "vsphere": "vsphere",
}


class Metadata(BaseModel):
    """Repository a configuration belongs to."""

    org: str = Field(..., description="Organization")
    repo: str = Field(..., description="Repository")
    branch: str = Field(..., description="Branch")
    variant: str = Field(default="", description="Configuration variant")


class ReleaseBuildConfiguration(BaseModel):
    """Subset of the build configuration multi-stage tests depend on."""

    metadata: Metadata
    images: list[str] = Field(
        default_factory=list, description="Images built into the pipeline"
    )

    def is_pipeline_image(self, name: str) -> bool:
        """Whether name is one of the images every pipeline produces."""
        return name in PIPELINE_IMAGES

    def builds_image(self, name: str) -> bool:
        """Whether the configuration builds an image with this name."""
        return name in self.images

    def dependency_parts(self, dependency: StepDependency) -> tuple[str, str]:
        """Split a dependency into image stream and tag.

        A bare name refers to a tag in the pipeline image stream.
        """
        if ":" not in dependency.name:
            return PIPELINE_IMAGE_STREAM, dependency.name
        stream, tag = dependency.name.split(":", 1)
        return stream, tag


def release_stream_for(release: str) -> str:
    """Return the image stream holding images for a release."""
    if release == LATEST_RELEASE_NAME:
        return "stable"
    return f"stable-{release}"


def release_image_env(release: str) -> str:
    """Return the parameter holding the payload pull spec for a release."""
    return f"RELEASE_IMAGE_{release.upper()}"


def cluster_type_for(profile: str) -> str:
    """Return the cluster type a profile provisions."""
    return CLUSTER_TYPES.get(profile, profile)


class TestDefinition(ReleaseBuildConfiguration):
    """Build configuration together with the multi-stage tests it declares."""

    __test__ = False

    tests: list[MultiStageTestConfiguration] = Field(
        default_factory=list, description="Multi-stage tests"
    )

    def get_test(self, name: str) -> MultiStageTestConfiguration:
        """Return the test with a name.

        Raises:
            KeyError: If no test has that name

        """
        for test in self.tests:
            if test.name == name:
                return test
        raise KeyError(name)
