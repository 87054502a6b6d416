"""Compute the prerequisites a multi-stage test needs before it can run."""

from ciops.multi_stage_test.environment import ENV_FOR_PROFILE, IMAGE_FORMAT_ENV
from ciops.multi_stage_test.models.build_config import (
    LATEST_RELEASE_NAME,
    PIPELINE_IMAGE_STREAM,
    ReleaseBuildConfiguration,
    release_stream_for,
)
from ciops.multi_stage_test.models.test_definition import (
    MultiStageTestConfiguration,
    StepDependency,
)
from ciops.multi_stage_test.models.test_result import (
    StepLink,
    external_image_link,
    images_ready_link,
    internal_image_link,
    release_images_link,
    release_payload_link,
)

_RELEASE_IMAGE_PREFIX = "RELEASE_IMAGE_"


def link_for_image(stream: str, tag: str) -> StepLink:
    """Return the link satisfied once an image exists."""
    if stream == PIPELINE_IMAGE_STREAM:
        return internal_image_link(tag)
    return external_image_link(stream, tag)


def link_for_env(name: str) -> StepLink | None:
    """Return the link producing a parameter, if the parameter needs one."""
    if name == IMAGE_FORMAT_ENV:
        return images_ready_link()
    if name.startswith(_RELEASE_IMAGE_PREFIX):
        return release_payload_link(name[len(_RELEASE_IMAGE_PREFIX) :].lower())
    return None


def requires(
    test: MultiStageTestConfiguration, config: ReleaseBuildConfiguration
) -> list[StepLink]:
    """Return the links a test requires, without duplicates.

    A cluster profile needs a full release payload, which supersedes the
    plain release images a step running in a release image needs.
    """
    links: list[StepLink] = []
    internal: list[str] = []
    needs_release_image = False
    needs_release_payload = False

    for step in test.all_steps():
        tag = step.from_image_tag()
        if tag is not None:
            internal.append(tag)
        elif config.is_pipeline_image(step.source) or config.builds_image(
            step.source
        ):
            internal.append(step.source)
        else:
            needs_release_image = True

        for dependency in step.dependencies:
            links.append(link_for_image(*config.dependency_parts(dependency)))

        if step.cli:
            dependency = StepDependency(
                name=f"{release_stream_for(step.cli)}:cli", env=""
            )
            links.append(link_for_image(*config.dependency_parts(dependency)))

    links.extend(internal_image_link(tag) for tag in internal)

    if test.cluster_profile:
        needs_release_payload = True
        for name in ENV_FOR_PROFILE:
            link = link_for_env(name)
            if link is not None:
                links.append(link)

    if needs_release_image and not needs_release_payload:
        links.append(release_images_link(LATEST_RELEASE_NAME))

    return list(dict.fromkeys(links))
