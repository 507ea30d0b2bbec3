"""Retrieval of image manifests and configurations."""

from __future__ import annotations

from structlog.stdlib import BoundLogger

from ..models.domain.docker import DockerReference
from ..models.domain.manifest import RawManifest
from ..storage.docker import DockerStorageClient
from ..timeout import Timeout

__all__ = ["ManifestFetcher"]


class ManifestFetcher:
    """Fetch manifests and image configurations by image reference.

    This is the boundary between the filter, which works with image
    reference strings taken from pods, and the registry client, which works
    with parsed references.

    Parameters
    ----------
    docker
        Client for the Docker registry API.
    logger
        Logger to use.
    """

    def __init__(
        self, docker: DockerStorageClient, logger: BoundLogger
    ) -> None:
        self._docker = docker
        self._logger = logger

    async def fetch_manifest(
        self, reference: str, timeout: Timeout
    ) -> RawManifest:
        """Fetch the manifest for an image.

        Parameters
        ----------
        reference
            Image reference.
        timeout
            Deadline for the invocation.

        Returns
        -------
        RawManifest
            Manifest as returned by the registry.

        Raises
        ------
        DockerRegistryError
            Raised if the registry request failed.
        InvalidDockerReferenceError
            Raised if the reference could not be parsed.
        TimeoutError
            Raised if the deadline has passed.
        """
        parsed = DockerReference.from_str(reference)
        self._logger.debug("Fetching image manifest", image=reference)
        return await self._docker.get_manifest(parsed, timeout)

    async def fetch_config(
        self, reference: str, digest: str, timeout: Timeout
    ) -> bytes:
        """Fetch the image configuration of a single-platform image.

        Parameters
        ----------
        reference
            Image reference.
        digest
            Digest of the configuration, from the image manifest.
        timeout
            Deadline for the invocation.

        Returns
        -------
        bytes
            Configuration blob.

        Raises
        ------
        DockerRegistryError
            Raised if the registry request failed.
        InvalidDockerReferenceError
            Raised if the reference could not be parsed.
        TimeoutError
            Raised if the deadline has passed.
        """
        parsed = DockerReference.from_str(reference)
        self._logger.debug(
            "Fetching image configuration", image=reference, digest=digest
        )
        return await self._docker.get_blob(parsed, digest, timeout)
