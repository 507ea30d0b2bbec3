"""Exceptions for the architecture filter."""

from __future__ import annotations

from typing import Self, override

from kubernetes_asyncio.client import ApiException
from pydantic import ValidationError
from safir.slack.blockkit import (
    SlackCodeBlock,
    SlackException,
    SlackMessage,
    SlackTextField,
    SlackWebException,
)

__all__ = [
    "DockerRegistryError",
    "InvalidDockerReferenceError",
    "KubernetesError",
    "ManifestParseError",
]


class DockerRegistryError(SlackWebException):
    """An API call to a Docker Registry failed."""


class InvalidDockerReferenceError(ValueError):
    """An image reference could not be parsed.

    This is a `ValueError` so that reference parsing can be used as a
    Pydantic validator.
    """


class ManifestParseError(SlackException):
    """Unable to parse an image manifest or image configuration.

    Parameters
    ----------
    message
        Summary error message.
    error
        Detailed error message, possibly multi-line.
    """

    @classmethod
    def from_exception(
        cls, message: str, exc: ValidationError | ValueError
    ) -> Self:
        """Create an exception from a JSON or Pydantic parse failure.

        Parameters
        ----------
        message
            Summary of what was being parsed.
        exc
            Underlying parse exception.

        Returns
        -------
        ManifestParseError
            Constructed exception.
        """
        error = f"{type(exc).__name__}: {exc!s}"
        return cls(message, error)

    def __init__(self, message: str, error: str) -> None:
        super().__init__(message)
        self.message = message
        self.error = error

    @override
    def __str__(self) -> str:
        return f"{self.message}: {self.error}"

    @override
    def to_slack(self) -> SlackMessage:
        """Convert to a Slack message for Slack alerting.

        Returns
        -------
        safir.slack.blockkit.SlackMessage
            Slack message suitable for posting as an alert.
        """
        message = super().to_slack()
        message.message = self.message
        block = SlackCodeBlock(heading="Error", code=self.error)
        message.blocks.append(block)
        return message


class KubernetesError(SlackException):
    """An API call to Kubernetes failed.

    Parameters
    ----------
    message
        Summary of error.
    kind
        Kind of object being acted on.
    status
        Status code of failure, if any.
    body
        Body of failure message, if any.
    """

    @classmethod
    def from_exception(
        cls, message: str, exc: ApiException, *, kind: str | None = None
    ) -> Self:
        """Create an exception from a Kubernetes API exception.

        Parameters
        ----------
        message
            Brief explanation of what was being attempted.
        exc
            Kubernetes API exception.
        kind
            Kind of object being acted on.

        Returns
        -------
        KubernetesError
            Newly-created exception.
        """
        return cls(
            message,
            kind=kind,
            status=exc.status,
            body=exc.body if exc.body else exc.reason,
        )

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        status: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.status = status
        self.body = body

    @override
    def __str__(self) -> str:
        result = self._summary()
        if self.body:
            result += f": {self.body}"
        return result

    @override
    def to_slack(self) -> SlackMessage:
        """Convert to a Slack message for Slack alerting.

        Returns
        -------
        safir.slack.blockkit.SlackMessage
            Slack message suitable for posting as an alert.
        """
        message = super().to_slack()
        message.message = self._summary()
        if self.status:
            field = SlackTextField(heading="Status", text=str(self.status))
            message.fields.append(field)
        if self.body:
            code = SlackCodeBlock(heading="Error", code=self.body)
            message.blocks.append(code)
        return message

    def _summary(self) -> str:
        result = self.message
        if self.kind and self.status:
            result += f" ({self.kind}, status {self.status})"
        elif self.kind:
            result += f" ({self.kind})"
        elif self.status:
            result += f" (status {self.status})"
        return result
