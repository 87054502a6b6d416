"""Base pod definitions for test steps."""

import re

from ciops.multi_stage_test.models.job_spec import JobSpec
from ciops.multi_stage_test.models.test_definition import StepResources
from ciops.multi_stage_test.models.workload import (
    Container,
    ObjectMeta,
    Pod,
    PodSpec,
    ResourceRequirements,
)

CREATED_BY_CI_LABEL = "created-by-ci"
JOB_LABEL = "job"
BUILD_ID_LABEL = "build-id"
SAVE_CONTAINER_LOGS_ANNOTATION = "ci-operator.openshift.io/save-container-logs"

_QUANTITY = re.compile(r"^[0-9]+(\.[0-9]+)?(m|k|M|G|T|P|E|Ki|Mi|Gi|Ti|Pi|Ei)?$")


def resources_for(resources: StepResources) -> ResourceRequirements:
    """Validate step resources and convert them for a container.

    Raises:
        ValueError: If a quantity cannot be parsed

    """
    for section, values in (
        ("requests", resources.requests),
        ("limits", resources.limits),
    ):
        for name, quantity in values.items():
            if not _QUANTITY.match(quantity):
                raise ValueError(
                    f"invalid quantity {quantity!r} for {section}.{name}"
                )
    return ResourceRequirements(
        requests=dict(resources.requests), limits=dict(resources.limits)
    )


def generate_base_pod(
    job_spec: JobSpec,
    name: str,
    container_name: str,
    command: list[str],
    image: str,
    resources: ResourceRequirements,
) -> Pod:
    """Return a single-container pod running command in image."""
    labels = {CREATED_BY_CI_LABEL: "true", JOB_LABEL: job_spec.job}
    if job_spec.build_id:
        labels[BUILD_ID_LABEL] = job_spec.build_id
    return Pod(
        metadata=ObjectMeta(
            name=name,
            namespace=job_spec.namespace,
            labels=labels,
            annotations={},
        ),
        spec=PodSpec(
            restart_policy="Never",
            containers=[
                Container(
                    name=container_name,
                    image=image,
                    command=command,
                    resources=resources,
                    termination_message_policy="FallbackToLogsOnError",
                )
            ],
        ),
    )
