"""Filtering of candidate nodes by the architectures of a pod's images."""

from __future__ import annotations

import asyncio
from datetime import timedelta

from structlog.stdlib import BoundLogger

from ..exceptions import (
    DockerRegistryError,
    InvalidDockerReferenceError,
    ManifestParseError,
)
from ..models.domain.filter import (
    FilterResult,
    ImageVerdict,
    Verdict,
)
from ..models.domain.kubernetes import Node, Pod
from ..models.domain.manifest import (
    Manifest,
    PlatformEntry,
    PlatformIndex,
    SinglePlatformManifest,
    parse_image_config,
    parse_manifest,
)
from ..timeout import Timeout
from .manifest import ManifestFetcher

__all__ = [
    "ArchitectureFilter",
    "evaluate_architecture",
    "evaluate_index",
]


def evaluate_index(
    reference: str, entries: list[PlatformEntry], architecture: str
) -> ImageVerdict:
    """Check whether a platform index has a manifest for an architecture.

    Parameters
    ----------
    reference
        Image reference, for the explanation.
    entries
        Entries of the platform index.
    architecture
        Node architecture.

    Returns
    -------
    ImageVerdict
        ``COMPATIBLE`` if any entry is for exactly that architecture,
        otherwise ``INCOMPATIBLE``, including for an empty index.
    """
    available = [e.architecture for e in entries if e.architecture]
    if architecture in available:
        reason = f"Image {reference} has a manifest for {architecture}"
        return ImageVerdict(reference, Verdict.COMPATIBLE, reason)
    supported = ", ".join(sorted(set(available))) or "none"
    reason = (
        f"Image {reference} has no manifest for {architecture}"
        f" (supported: {supported})"
    )
    return ImageVerdict(reference, Verdict.INCOMPATIBLE, reason)


def evaluate_architecture(
    reference: str, image_architecture: str, architecture: str
) -> ImageVerdict:
    """Compare the architecture of a single-platform image to a node.

    The comparison is exact and case-sensitive. Different spellings of the
    same instruction set (``x86_64`` and ``amd64``) do not match.
    """
    if image_architecture == architecture:
        reason = f"Image {reference} is built for {architecture}"
        return ImageVerdict(reference, Verdict.COMPATIBLE, reason)
    reason = (
        f"Image {reference} is built for {image_architecture}, not"
        f" {architecture}"
    )
    return ImageVerdict(reference, Verdict.INCOMPATIBLE, reason)


class ArchitectureFilter:
    """Decide whether a pod's images can run on a node.

    A node is rejected only if some image used by the pod has a manifest
    that proves it cannot run on the node's architecture. Any failure to
    determine that (no architecture label on the node, an unparseable image
    reference, a registry error, an unparseable manifest, or running out of
    time) admits the node. The filter never raises, since an error from a
    scheduler filter would stall placement of the pod.

    All state for an evaluation is local to `filter`, so one instance may
    evaluate many nodes concurrently.

    Parameters
    ----------
    fetcher
        Retrieves manifests and image configurations.
    architecture_label
        Node label holding the node architecture.
    timeout
        Time allowed for evaluating one pod against one node when no
        deadline is passed to `filter`.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        fetcher: ManifestFetcher,
        architecture_label: str,
        timeout: timedelta,
        logger: BoundLogger,
    ) -> None:
        self._fetcher = fetcher
        self._label = architecture_label
        self._timeout = timeout
        self._logger = logger

    async def filter(
        self, pod: Pod, node: Node, timeout: Timeout | None = None
    ) -> FilterResult:
        """Decide whether the pod's images can run on the node.

        Parameters
        ----------
        pod
            Pod being scheduled.
        node
            Candidate node.
        timeout
            Deadline shared with the rest of the scheduler request. If not
            given, the configured filter timeout starts now.

        Returns
        -------
        FilterResult
            Admit or reject, with the reason and per-image verdicts.
        """
        logger = self._logger.bind(pod=pod.display_name, node=node.name)
        architecture = node.architecture(self._label)
        if architecture is None:
            logger.info(
                "Node architecture not found, ignoring architecture filtering."
                " This may schedule pods on nodes with incompatible"
                " architectures.",
                label=self._label,
            )
            return FilterResult.admit(
                "Node architecture not found, ignoring architecture filtering"
            )

        references = pod.image_references()
        logger = logger.bind(architecture=architecture)
        logger.debug("Checking images", images=references)
        verdicts: list[ImageVerdict] = []
        if timeout is None:
            timeout = Timeout(self._timeout)
        try:
            async with asyncio.timeout(timeout.left("Architecture check")):
                for reference in references:
                    verdict = await self._check_image(
                        reference, architecture, timeout, logger
                    )
                    verdicts.append(verdict)
                    if verdict.verdict == Verdict.INCOMPATIBLE:
                        logger.info(
                            "Rejecting node",
                            image=reference,
                            reason=verdict.reason,
                        )
                        return FilterResult.reject(
                            f"{verdict.reason} (node {node.name})", verdicts
                        )
        except TimeoutError:
            unresolved = [
                v.reference for v in verdicts if v.verdict == Verdict.UNKNOWN
            ]
            unresolved.extend(references[len(verdicts) :])
            logger.warning(
                "Timed out checking image architectures, admitting node",
                elapsed=timeout.elapsed(),
                unresolved=unresolved,
            )
            reason = (
                f"Architecture check timed out after {timeout.elapsed()}s,"
                f" could not check: {', '.join(unresolved)}"
            )
            return FilterResult.admit(reason, verdicts)

        result = self._build_admit(architecture, references, verdicts)
        logger.info(
            "Admitting node",
            reason=result.reason,
            unresolved=result.unresolved,
        )
        return result

    def _build_admit(
        self,
        architecture: str,
        references: list[str],
        verdicts: list[ImageVerdict],
    ) -> FilterResult:
        """Build the result when no image was incompatible."""
        if not references:
            return FilterResult.admit("Pod has no images to check")
        result = FilterResult.admit("", verdicts)
        unknown = result.unresolved
        if not unknown:
            reason = f"All images support architecture {architecture}"
        elif len(unknown) == len(verdicts):
            reason = f"No images could be checked: {', '.join(unknown)}"
        else:
            reason = (
                f"All checked images support architecture {architecture},"
                f" could not check: {', '.join(unknown)}"
            )
        result.reason = reason
        return result

    async def _check_image(
        self,
        reference: str,
        architecture: str,
        timeout: Timeout,
        logger: BoundLogger,
    ) -> ImageVerdict:
        """Fetch, classify, and evaluate one image.

        Any failure other than running out of time produces an ``UNKNOWN``
        verdict.
        """
        logger = logger.bind(image=reference)
        try:
            raw = await self._fetcher.fetch_manifest(reference, timeout)
            manifest = parse_manifest(raw)
            logger.debug("Classified manifest", kind=manifest.kind.value)
            verdict = await self._evaluate(
                reference, manifest, architecture, timeout
            )
        except TimeoutError:
            raise
        except (
            DockerRegistryError,
            InvalidDockerReferenceError,
            ManifestParseError,
        ) as e:
            logger.info("Cannot check image architecture", error=str(e))
            return ImageVerdict(reference, Verdict.UNKNOWN, str(e))
        except Exception as e:
            error = f"{type(e).__name__}: {e!s}"
            logger.exception("Unexpected error checking image", error=error)
            return ImageVerdict(reference, Verdict.UNKNOWN, error)
        logger.debug(
            "Checked image architecture",
            verdict=verdict.verdict.value,
            reason=verdict.reason,
        )
        return verdict

    async def _evaluate(
        self,
        reference: str,
        manifest: Manifest,
        architecture: str,
        timeout: Timeout,
    ) -> ImageVerdict:
        """Evaluate a classified manifest against the node architecture."""
        match manifest:
            case PlatformIndex(entries=entries):
                return evaluate_index(reference, entries, architecture)
            case SinglePlatformManifest(architecture=str() as image_arch):
                return evaluate_architecture(
                    reference, image_arch, architecture
                )
            case SinglePlatformManifest(config_digest=str() as digest):
                data = await self._fetcher.fetch_config(
                    reference, digest, timeout
                )
                config = parse_image_config(data)
                return evaluate_architecture(
                    reference, config.architecture, architecture
                )
            case _:
                msg = "Manifest has neither an architecture nor a config"
                raise ManifestParseError(msg, repr(manifest))
