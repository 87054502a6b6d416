"""Resolve the environment shared by every step of a test."""

import logging

from ciops.multi_stage_test.cluster.base import ClusterClient
from ciops.multi_stage_test.errors import (
    NotFoundError,
    ParameterError,
    ProvisioningError,
)
from ciops.multi_stage_test.models.build_config import (
    LATEST_RELEASE_NAME,
    release_image_env,
)
from ciops.multi_stage_test.models.test_definition import StepLease
from ciops.multi_stage_test.models.workload import EnvVar, Secret
from ciops.multi_stage_test.parameters import Parameters

logger = logging.getLogger(__name__)

DEFAULT_LEASE_ENV = "LEASED_RESOURCE"
IMAGE_FORMAT_ENV = "IMAGE_FORMAT"

# Parameters every step of a test with a cluster profile receives
ENV_FOR_PROFILE = (
    release_image_env(LATEST_RELEASE_NAME),
    DEFAULT_LEASE_ENV,
    IMAGE_FORMAT_ENV,
)


def profile_secret_name(test_name: str) -> str:
    """Return the name of the secret holding a test's cluster profile."""
    return f"{test_name}-cluster-profile"


class OptionalOperator:
    """Add-on operator installed into the cluster under test."""

    def __init__(
        self,
        index: str,
        package: str,
        channel: str,
        install_namespace: str | None = None,
        target_namespaces: str | None = None,
    ) -> None:
        """Initialize from resolved parameters."""
        self.index = index
        self.package = package
        self.channel = channel
        self.install_namespace = install_namespace
        self.target_namespaces = target_namespaces

    def as_env(self) -> list[EnvVar]:
        """Return the variables describing the operator."""
        env = [
            EnvVar(name="OO_INDEX", value=self.index),
            EnvVar(name="OO_PACKAGE", value=self.package),
            EnvVar(name="OO_CHANNEL", value=self.channel),
        ]
        if self.install_namespace:
            env.append(EnvVar(name="OO_INSTALL_NAMESPACE", value=self.install_namespace))
        if self.target_namespaces:
            env.append(
                EnvVar(name="OO_TARGET_NAMESPACES", value=self.target_namespaces)
            )
        return env


def resolve_optional_operator(params: Parameters) -> OptionalOperator | None:
    """Resolve the optional operator, if the job configures one.

    Raises:
        ParameterError: If an index is set without a package or channel

    """
    index = params.lookup("OO_INDEX")
    if not index:
        return None
    package = params.lookup("OO_PACKAGE")
    channel = params.lookup("OO_CHANNEL")
    if not package or not channel:
        raise ParameterError(
            "OO_PACKAGE and OO_CHANNEL must be set when OO_INDEX is set"
        )
    return OptionalOperator(
        index=index,
        package=package,
        channel=channel,
        install_namespace=params.lookup("OO_INSTALL_NAMESPACE"),
        target_namespaces=params.lookup("OO_TARGET_NAMESPACES"),
    )


async def resolve_environment(
    client: ClusterClient,
    params: Parameters,
    namespace: str,
    test_name: str,
    leases: list[StepLease],
    profile: str,
) -> list[EnvVar]:
    """Assemble the variables shared by every step of a test.

    Args:
        client: Cluster client used to check for the profile secret
        params: Store resolving lease and release parameters
        namespace: Namespace the test runs in
        test_name: Name of the test
        leases: Leases acquired for the test
        profile: Cluster profile, empty if the test has none

    Returns:
        Lease variables, then profile parameters, then optional operator
        variables

    Raises:
        ParameterError: If a parameter cannot be resolved
        ProvisioningError: If the cluster profile secret does not exist

    """
    env: list[EnvVar] = []
    for lease in leases:
        env.append(EnvVar(name=lease.env, value=params.get(lease.env)))

    if not profile:
        return env

    secret = profile_secret_name(test_name)
    try:
        await client.get(Secret, namespace, secret)
    except NotFoundError as e:
        raise ProvisioningError(f'could not find secret "{secret}": {e}') from e

    for name in ENV_FOR_PROFILE:
        env.append(EnvVar(name=name, value=params.get(name)))

    operator = resolve_optional_operator(params)
    if operator is not None:
        logger.info(f"Test {test_name} installs optional operator {operator.package}")
        env.extend(operator.as_env())
    return env
