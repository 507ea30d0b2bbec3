"""Image manifests and their classification by platform shape.

A registry returns one of two shapes of manifest for an image reference: a
platform index (an OCI image index or Docker manifest list) naming one
manifest per platform, or a single-platform manifest whose image
configuration carries the architecture. The functions here turn the raw
bytes returned by the registry into one of those two shapes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError

from ...constants import INDEX_MEDIA_TYPES
from ...exceptions import ManifestParseError

__all__ = [
    "ImageConfig",
    "Manifest",
    "ManifestKind",
    "PlatformEntry",
    "PlatformIndex",
    "RawManifest",
    "SinglePlatformManifest",
    "guess_media_type",
    "parse_image_config",
    "parse_manifest",
]

_GENERIC_MEDIA_TYPES = frozenset(
    {"application/json", "application/octet-stream", "text/plain"}
)
"""Content types that say nothing about the shape of the manifest."""

_OCI_INDEX = "application/vnd.oci.image.index.v1+json"
_OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
_DOCKER_SCHEMA1 = "application/vnd.docker.distribution.manifest.v1+json"
_DOCKER_SCHEMA1_SIGNED = (
    "application/vnd.docker.distribution.manifest.v1+prettyjws"
)

_DOCKER_SCHEMA1_MEDIA_TYPES = frozenset(
    {_DOCKER_SCHEMA1, _DOCKER_SCHEMA1_SIGNED}
)


class ManifestKind(Enum):
    """Shape of a manifest with respect to platforms."""

    SINGLE_PLATFORM = "single-platform"
    PLATFORM_INDEX = "platform-index"


@dataclass(frozen=True, slots=True)
class RawManifest:
    """Manifest bytes as returned by the registry."""

    data: bytes
    """Body of the manifest response."""

    media_type: str | None
    """Media type from the ``Content-Type`` header, if any."""


@dataclass(frozen=True, slots=True)
class PlatformEntry:
    """One per-platform manifest listed in a platform index."""

    architecture: str | None
    """Architecture of the referenced manifest, if a platform is given."""

    digest: str
    """Digest of the referenced manifest."""


@dataclass(frozen=True, slots=True)
class PlatformIndex:
    """Manifest listing one manifest per platform."""

    entries: list[PlatformEntry]
    """Per-platform manifests, in registry order."""

    kind: Literal[ManifestKind.PLATFORM_INDEX] = ManifestKind.PLATFORM_INDEX


@dataclass(frozen=True, slots=True)
class SinglePlatformManifest:
    """Manifest describing one platform's build of an image."""

    config_digest: str | None
    """Digest of the image configuration blob.

    `None` for Docker schema 1 manifests, which carry the architecture
    directly and have no separate configuration.
    """

    architecture: str | None = None
    """Architecture, if known without fetching the configuration."""

    kind: Literal[ManifestKind.SINGLE_PLATFORM] = ManifestKind.SINGLE_PLATFORM


type Manifest = PlatformIndex | SinglePlatformManifest
"""A classified manifest of either shape."""


@dataclass(frozen=True, slots=True)
class ImageConfig:
    """The parts of an image configuration used for filtering."""

    architecture: str
    """Architecture the image was built for."""

    os: str | None = None
    """Operating system the image was built for."""


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _Platform(_WireModel):
    architecture: str
    os: str | None = None


class _IndexDescriptor(_WireModel):
    digest: str
    platform: _Platform | None = None


class _Index(_WireModel):
    manifests: list[_IndexDescriptor]


class _ConfigDescriptor(_WireModel):
    digest: str


class _Manifest(_WireModel):
    config: _ConfigDescriptor


class _Schema1Manifest(_WireModel):
    architecture: str


class _ImageConfig(_WireModel):
    architecture: str
    os: str | None = None


def guess_media_type(data: dict[str, Any]) -> str | None:
    """Guess the media type of a manifest from its contents.

    Used when the registry did not send a meaningful ``Content-Type``.

    Parameters
    ----------
    data
        Decoded JSON manifest.

    Returns
    -------
    str or None
        Best guess at the media type, or `None` if nothing in the document
        identifies it.
    """
    media_type = data.get("mediaType")
    if isinstance(media_type, str) and media_type:
        return media_type
    if data.get("schemaVersion") == 1:
        if "signatures" in data:
            return _DOCKER_SCHEMA1_SIGNED
        return _DOCKER_SCHEMA1
    if "manifests" in data:
        return _OCI_INDEX
    if "config" in data:
        return _OCI_MANIFEST
    return None


def parse_manifest(raw: RawManifest) -> Manifest:
    """Classify and parse a manifest.

    Only the media type decides the shape. The index media types always
    produce a `PlatformIndex` and everything else is treated as a
    single-platform manifest.

    Parameters
    ----------
    raw
        Manifest as returned by the registry.

    Returns
    -------
    PlatformIndex or SinglePlatformManifest
        Parsed manifest.

    Raises
    ------
    ManifestParseError
        Raised if the manifest is not JSON or does not have the structure
        its media type requires.
    """
    try:
        data = json.loads(raw.data)
    except ValueError as e:
        msg = "Manifest is not JSON"
        raise ManifestParseError.from_exception(msg, e) from e
    if not isinstance(data, dict):
        msg = "Manifest is not a JSON object"
        raise ManifestParseError(msg, f"Got {type(data).__name__}")

    media_type = _strip_parameters(raw.media_type)
    if not media_type or media_type in _GENERIC_MEDIA_TYPES:
        media_type = guess_media_type(data)

    try:
        if media_type in INDEX_MEDIA_TYPES:
            index = _Index.model_validate(data)
            entries = [
                PlatformEntry(
                    architecture=(
                        m.platform.architecture if m.platform else None
                    ),
                    digest=m.digest,
                )
                for m in index.manifests
            ]
            return PlatformIndex(entries=entries)
        if media_type in _DOCKER_SCHEMA1_MEDIA_TYPES:
            schema1 = _Schema1Manifest.model_validate(data)
            return SinglePlatformManifest(
                config_digest=None, architecture=schema1.architecture
            )
        manifest = _Manifest.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid manifest of type {media_type}"
        raise ManifestParseError.from_exception(msg, e) from e
    return SinglePlatformManifest(config_digest=manifest.config.digest)


def parse_image_config(data: bytes) -> ImageConfig:
    """Parse an image configuration blob.

    Parameters
    ----------
    data
        Body of the configuration blob.

    Returns
    -------
    ImageConfig
        Parsed configuration.

    Raises
    ------
    ManifestParseError
        Raised if the configuration is not JSON or has no architecture.
    """
    try:
        config = _ImageConfig.model_validate_json(data)
    except ValidationError as e:
        msg = "Invalid image configuration"
        raise ManifestParseError.from_exception(msg, e) from e
    return ImageConfig(architecture=config.architecture, os=config.os)


def _strip_parameters(media_type: str | None) -> str | None:
    """Remove parameters such as ``charset`` from a content type."""
    if media_type is None:
        return None
    return media_type.split(";", 1)[0].strip().lower()
