"""Global configuration parsing."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Self

import yaml
from pydantic import Field, SecretStr
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict
from safir.logging import LogLevel, Profile
from safir.pydantic import HumanTimedelta

from .constants import FILTER_TIMEOUT, NODE_ARCHITECTURE_LABEL

__all__ = ["Config"]


class Config(BaseSettings):
    """Architecture filter configuration."""

    model_config = SettingsConfigDict(
        alias_generator=to_camel, extra="forbid", populate_by_name=True
    )

    docker_credentials_path: Annotated[
        Path | None,
        Field(
            title="Path to Docker API credentials",
            description=(
                "Path to a file containing a JSON-encoded dictionary of Docker"
                " credentials for various registries, in the same format as"
                " the Docker configuration file and the value of a Kubernetes"
                " pull secret. If not set, registries are accessed"
                " anonymously."
            ),
            examples=[Path("/etc/secrets/.dockerconfigjson")],
        ),
    ] = None

    filter_timeout: Annotated[
        HumanTimedelta,
        Field(
            title="Timeout for checking one node",
            description=(
                "Time allowed for checking all images of a pod against one"
                " candidate node. If it is exceeded, the node is admitted."
                " This should be shorter than the ``httpTimeout`` of the"
                " extender in the scheduler configuration."
            ),
            examples=["10s"],
        ),
    ] = FILTER_TIMEOUT

    log_level: Annotated[
        LogLevel,
        Field(
            title="Log level",
            description="Python logging level",
            examples=[LogLevel.INFO],
        ),
    ] = LogLevel.INFO

    name: Annotated[
        str,
        Field(
            title="Name of application",
            description="Used in application metadata and Slack alerts",
        ),
    ] = "archfilter"

    node_architecture_label: Annotated[
        str,
        Field(
            title="Node architecture label",
            description=(
                "Node label holding the CPU architecture of the node. Nodes"
                " without this label are always admitted."
            ),
            examples=[NODE_ARCHITECTURE_LABEL],
        ),
    ] = NODE_ARCHITECTURE_LABEL

    path_prefix: Annotated[
        str,
        Field(
            title="URL prefix for the extender API",
            description="The scheduler ``urlPrefix`` should point here",
        ),
    ] = "/archfilter"

    profile: Annotated[
        Profile,
        Field(
            title="Application logging profile",
            description=(
                "``production`` uses JSON logging. ``development`` uses"
                " logging that may be easier for humans to read but that"
                " cannot be easily parsed by computers."
            ),
            examples=[Profile.development],
        ),
    ] = Profile.production

    slack_webhook: Annotated[
        SecretStr | None,
        Field(
            title="Slack webhook for alerts",
            description=(
                "If set, uncaught exceptions in the filter service will be"
                " reported to Slack via this webhook"
            ),
        ),
    ] = None

    @classmethod
    def from_file(cls, path: Path) -> Self:
        """Load the filter configuration from a YAML file.

        Parameters
        ----------
        path
            Path to the configuration file.
        """
        with path.open("r") as f:
            return cls.model_validate(yaml.safe_load(f) or {})
