"""Domain models for talking to the Docker API."""

from __future__ import annotations

import base64
import re
from dataclasses import dataclass
from typing import Self

from ...constants import (
    DEFAULT_TAG,
    DOCKER_HUB_ALIASES,
    DOCKER_HUB_API_HOST,
    DOCKER_HUB_REGISTRY,
)
from ...exceptions import InvalidDockerReferenceError

__all__ = [
    "DockerCredentials",
    "DockerReference",
]

# Regex fragments for the components of a Docker reference, following the
# grammar used by the Docker distribution reference library.
_PATH_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*"
_REGISTRY = r"(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?\.?)+(?::[0-9]+)?"
_TAG = r"[\w][\w.-]{0,127}"
_DIGEST = (
    r"[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}"
)

_REGISTRY_REGEX = re.compile(_REGISTRY + "$")
_REPOSITORY_REGEX = re.compile(
    _PATH_COMPONENT + r"(?:/" + _PATH_COMPONENT + r")*$"
)
_TAG_REGEX = re.compile(_TAG + "$")
_DIGEST_REGEX = re.compile(_DIGEST + "$")


@dataclass
class DockerReference:
    """Parses and normalizes a Docker reference.

    Normalization follows what container runtimes do with the image string
    of a container: a reference without a registry refers to Docker Hub,
    single-component Docker Hub repositories live under ``library/``, and a
    reference with neither a tag nor a digest refers to the ``latest`` tag.
    """

    registry: str
    """Registry (Docker API server) hosting the image."""

    repository: str
    """Repository of images (for example, ``library/nginx``)."""

    tag: str | None
    """Tag, if present."""

    digest: str | None
    """Digest, if present."""

    @classmethod
    def from_str(cls, reference: str) -> Self:
        """Parse a Docker reference string into its normalized components.

        Parameters
        ----------
        reference
            Reference string, such as the ``image`` of a container.

        Returns
        -------
        DockerReference
            Resulting reference.

        Raises
        ------
        InvalidDockerReferenceError
            The reference could not be parsed.
        """
        invalid = InvalidDockerReferenceError(
            f'Invalid Docker reference "{reference}"'
        )
        if not reference or reference != reference.strip():
            raise invalid

        name, sep, digest = reference.partition("@")
        if sep and not _DIGEST_REGEX.match(digest):
            raise invalid

        # The tag separator is a colon after the last slash, since the
        # registry may contain a port.
        tag = None
        last_slash = name.rfind("/")
        colon = name.rfind(":")
        if colon > last_slash:
            name, tag = name[:colon], name[colon + 1 :]
            if not _TAG_REGEX.match(tag):
                raise invalid

        registry, repository = cls._split_registry(name)
        if not _REGISTRY_REGEX.match(registry):
            raise invalid
        if not _REPOSITORY_REGEX.match(repository):
            raise invalid
        if registry == DOCKER_HUB_REGISTRY and "/" not in repository:
            repository = f"library/{repository}"
        if tag is None and not sep:
            tag = DEFAULT_TAG

        return cls(
            registry=registry,
            repository=repository,
            tag=tag,
            digest=digest if sep else None,
        )

    @staticmethod
    def _split_registry(name: str) -> tuple[str, str]:
        """Split the registry from the repository path.

        The first path component is a registry only if it looks like a
        hostname: it contains a dot or a port, is ``localhost``, or contains
        uppercase characters (which are not valid in repository paths).
        """
        first, sep, rest = name.partition("/")
        if not sep:
            return DOCKER_HUB_REGISTRY, name
        is_host = (
            "." in first
            or ":" in first
            or first == "localhost"
            or first.lower() != first
        )
        if not is_host:
            return DOCKER_HUB_REGISTRY, name
        if first in DOCKER_HUB_ALIASES:
            return DOCKER_HUB_REGISTRY, rest
        return first, rest

    @property
    def api_host(self) -> str:
        """Host serving the registry API for this image."""
        if self.registry == DOCKER_HUB_REGISTRY:
            return DOCKER_HUB_API_HOST
        return self.registry

    @property
    def manifest_reference(self) -> str:
        """Tag or digest used to request the manifest.

        The digest is preferred, since it is immutable.
        """
        if self.digest is not None:
            return self.digest
        return self.tag or DEFAULT_TAG

    def __str__(self) -> str:
        result = f"{self.registry}/{self.repository}"
        if self.tag is not None:
            result += f":{self.tag}"
        if self.digest is not None:
            result += f"@{self.digest}"
        return result


@dataclass
class DockerCredentials:
    """Holds the credentials for one Docker API server."""

    username: str
    """Authentication username."""

    password: str
    """Authentication password."""

    @property
    def authorization(self) -> str:
        """Authentication string for ``Authorization`` header."""
        auth_data = f"{self.username}:{self.password}".encode()
        return f"Basic {base64.b64encode(auth_data).decode()}"

    @classmethod
    def from_config(cls, config: dict[str, str]) -> Self:
        """Create from a Docker config entry (such as a pull secret).

        The ``auth`` field is used if present. Otherwise, the ``username``
        and ``password`` fields must both be set.

        Parameters
        ----------
        config
            The entry for that hostname in the configuration.

        Returns
        -------
        DockerCredentials
            The resulting credentials.
        """
        if "auth" in config:
            basic_auth = base64.b64decode(config["auth"].encode()).decode()
            username, password = basic_auth.split(":", 1)
        else:
            username = config["username"]
            password = config["password"]
        return cls(username=username, password=password)
