"""Create the secrets and RBAC objects a test needs before its steps run."""

import logging

from ciops.multi_stage_test.cluster.base import ClusterClient
from ciops.multi_stage_test.errors import (
    AlreadyExistsError,
    ClusterError,
    NotFoundError,
    ProvisioningError,
)
from ciops.multi_stage_test.models.test_definition import LiteralTestStep
from ciops.multi_stage_test.models.workload import (
    KubeObject,
    ObjectMeta,
    PolicyRule,
    Role,
    RoleBinding,
    RoleRef,
    Secret,
    ServiceAccount,
    Subject,
)

logger = logging.getLogger(__name__)

MULTI_STAGE_TEST_LABEL = "ci.openshift.io/multi-stage-test"


async def create_secret(client: ClusterClient, namespace: str, name: str) -> None:
    """Reset the shared directory secret of a test to an empty one."""
    logger.info(f'Creating multi-stage test secret "{name}"')
    secret = Secret(metadata=ObjectMeta(namespace=namespace, name=name))
    try:
        await client.delete(secret)
    except NotFoundError:
        pass
    except ClusterError as e:
        raise ProvisioningError(f'cannot delete secret "{name}": {e}') from e

    try:
        await client.create(secret)
    except ClusterError as e:
        raise ProvisioningError(f'failed to create secret "{name}": {e}') from e


async def create_credentials(
    client: ClusterClient,
    namespace: str,
    test_name: str,
    steps: list[LiteralTestStep],
) -> None:
    """Mirror every credential the steps reference into the test namespace.

    Mirrored secrets are named ``<namespace>-<name>`` after their source, so
    secrets from different namespaces do not collide.
    """
    logger.info(f'Creating multi-stage test credentials for "{test_name}"')
    to_create: dict[str, Secret] = {}
    for step in steps:
        for credential in step.credentials:
            name = credential.mirrored_name
            if name in to_create:
                continue
            try:
                raw = await client.get(Secret, credential.namespace, credential.name)
            except ClusterError as e:
                raise ProvisioningError(
                    f"could not read source credential "
                    f"{credential.namespace}/{credential.name}: {e}"
                ) from e
            to_create[name] = Secret(
                metadata=ObjectMeta(name=name, namespace=namespace),
                type=raw.type,
                data=raw.data,
                string_data=raw.string_data,
            )

    for name, secret in to_create.items():
        try:
            await client.create(secret)
        except AlreadyExistsError:
            continue
        except ClusterError as e:
            raise ProvisioningError(
                f'could not create source credential "{name}": {e}'
            ) from e


def rbac_objects(namespace: str, name: str) -> list[KubeObject]:
    """Return the identity, role and binding the steps of a test run as."""
    labels = {MULTI_STAGE_TEST_LABEL: name}

    def meta() -> ObjectMeta:
        return ObjectMeta(namespace=namespace, name=name, labels=dict(labels))

    role = Role(
        metadata=meta(),
        rules=[
            PolicyRule(
                api_groups=["rbac.authorization.k8s.io"],
                resources=["rolebindings"],
                verbs=["create", "list"],
            ),
            PolicyRule(
                api_groups=[""],
                resources=["secrets"],
                resource_names=[name],
                verbs=["get", "update"],
            ),
            PolicyRule(
                api_groups=["", "image.openshift.io"],
                resources=["imagestreams/layers"],
                verbs=["get"],
            ),
        ],
    )
    binding = RoleBinding(
        metadata=meta(),
        role_ref=RoleRef(kind="Role", name=name),
        subjects=[Subject(kind="ServiceAccount", name=name)],
    )
    return [ServiceAccount(metadata=meta()), role, binding]


async def setup_rbac(client: ClusterClient, namespace: str, name: str) -> None:
    """Create the RBAC objects of a test, keeping any that already exist."""
    for obj in rbac_objects(namespace, name):
        try:
            await client.create(obj)
        except AlreadyExistsError:
            continue
        except ClusterError as e:
            raise ProvisioningError(
                f'failed to create {obj.kind} "{name}": {e}'
            ) from e
