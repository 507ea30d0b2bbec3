"""Results of evaluating images against a node architecture."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Self

__all__ = [
    "FilterResult",
    "FilterStatus",
    "ImageVerdict",
    "Verdict",
]


class Verdict(Enum):
    """Outcome of checking one image against a node architecture.

    ``UNKNOWN`` means the image could not be checked (unparseable reference,
    registry failure, unparseable manifest). It counts the same as
    ``COMPATIBLE`` when deciding whether to admit a node.
    """

    COMPATIBLE = "compatible"
    INCOMPATIBLE = "incompatible"
    UNKNOWN = "unknown"


class FilterStatus(Enum):
    """Scheduling decision for a pod on a node."""

    ADMIT = "admit"
    REJECT = "reject"


@dataclass(frozen=True, slots=True)
class ImageVerdict:
    """Verdict for one image, with an explanation."""

    reference: str
    """Normalized image reference."""

    verdict: Verdict
    """Outcome of the check."""

    reason: str
    """Human-readable explanation of the outcome."""


@dataclass(slots=True)
class FilterResult:
    """Decision for one pod on one node."""

    status: FilterStatus
    """Whether the node is viable for the pod."""

    reason: str
    """Human-readable explanation of the decision."""

    verdicts: list[ImageVerdict] = field(default_factory=list)
    """Per-image verdicts that led to the decision, in evaluation order."""

    @classmethod
    def admit(
        cls, reason: str, verdicts: list[ImageVerdict] | None = None
    ) -> Self:
        """Build a decision admitting the node."""
        return cls(FilterStatus.ADMIT, reason, verdicts or [])

    @classmethod
    def reject(cls, reason: str, verdicts: list[ImageVerdict]) -> Self:
        """Build a decision rejecting the node."""
        return cls(FilterStatus.REJECT, reason, verdicts)

    @property
    def admitted(self) -> bool:
        """Whether the node was admitted."""
        return self.status == FilterStatus.ADMIT

    @property
    def unresolved(self) -> list[str]:
        """References of images that could not be checked."""
        return [
            v.reference for v in self.verdicts if v.verdict == Verdict.UNKNOWN
        ]
