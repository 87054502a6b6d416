"""Resolve pull specs for images in the test namespace."""

from ciops.multi_stage_test.cluster.base import ClusterClient
from ciops.multi_stage_test.errors import ClusterError
from ciops.multi_stage_test.models.workload import ImageStreamTag


async def image_digest_for(
    client: ClusterClient, namespace: str, stream: str, tag: str
) -> str:
    """Return the pull spec an image stream tag currently points to.

    Raises:
        ClusterError: If the tag cannot be read or has no image yet

    """
    ist = await client.get(ImageStreamTag, namespace, f"{stream}:{tag}")
    if not ist.image.docker_image_reference:
        raise ClusterError(f"image stream tag {stream}:{tag} has no image")
    return ist.image.docker_image_reference
