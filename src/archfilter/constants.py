"""Global constants."""

from datetime import timedelta
from pathlib import Path

__all__ = [
    "CONFIGURATION_PATH",
    "CONFIGURATION_PATH_ENV_VAR",
    "DEFAULT_TAG",
    "DOCKER_HUB_ALIASES",
    "DOCKER_HUB_API_HOST",
    "DOCKER_HUB_REGISTRY",
    "FILTER_TIMEOUT",
    "INDEX_MEDIA_TYPES",
    "MANIFEST_ACCEPT",
    "NODE_ARCHITECTURE_LABEL",
]

CONFIGURATION_PATH = Path("/etc/archfilter/config.yaml")
"""Default path to the service configuration."""

CONFIGURATION_PATH_ENV_VAR = "ARCHFILTER_CONFIG_PATH"
"""Environment variable that overrides the configuration path."""

DEFAULT_TAG = "latest"
"""Tag assumed for image references with neither a tag nor a digest."""

DOCKER_HUB_REGISTRY = "docker.io"
"""Canonical registry name for images given without a registry."""

DOCKER_HUB_ALIASES = frozenset({"docker.io", "index.docker.io"})
"""Registry names that all refer to Docker Hub."""

DOCKER_HUB_API_HOST = "registry-1.docker.io"
"""Host serving the registry API for Docker Hub."""

FILTER_TIMEOUT = timedelta(seconds=10)
"""Default time allowed for evaluating one pod against one node."""

INDEX_MEDIA_TYPES = frozenset(
    {
        "application/vnd.docker.distribution.manifest.list.v2+json",
        "application/vnd.oci.image.index.v1+json",
    }
)
"""Media types of manifests that list one manifest per platform."""

MANIFEST_ACCEPT = (
    "application/vnd.docker.distribution.manifest.v2+json, "
    "application/vnd.docker.distribution.manifest.list.v2+json, "
    "application/vnd.oci.image.manifest.v1+json, "
    "application/vnd.oci.image.index.v1+json, "
    "application/json;q=0.5"
)
"""``Accept`` header for manifest requests.

Registries that predate multi-platform images only understand
``application/json``, so it is included at a lower quality factor.
"""

NODE_ARCHITECTURE_LABEL = "kubernetes.io/arch"
"""Well-known node label holding the node's CPU architecture."""
