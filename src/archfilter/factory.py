"""Component factory and process-wide context management."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass
from typing import Self

import structlog
from httpx import AsyncClient
from kubernetes_asyncio.client.api_client import ApiClient
from safir.dependencies.http_client import http_client_dependency
from structlog.stdlib import BoundLogger

from .config import Config
from .services.extender import ExtenderService
from .services.filter import ArchitectureFilter
from .services.manifest import ManifestFetcher
from .storage.docker import DockerCredentialStore, DockerStorageClient
from .storage.kubernetes.node import NodeStorage

__all__ = ["Factory", "ProcessContext"]


@dataclass(frozen=True, slots=True)
class ProcessContext:
    """Per-process global application state.

    This object holds the per-process singletons and is managed by
    `~archfilter.dependencies.context.ContextDependency`. It is used by the
    `Factory` class as a source of dependencies to inject into created
    service and storage objects.
    """

    config: Config
    """Architecture filter configuration."""

    http_client: AsyncClient
    """Shared HTTP client."""

    kubernetes_client: ApiClient
    """Shared Kubernetes client."""

    docker: DockerStorageClient
    """Shared Docker registry client, which caches authorization."""

    @classmethod
    async def from_config(cls, config: Config) -> Self:
        """Create a new process context from the configuration.

        Parameters
        ----------
        config
            Architecture filter configuration.

        Returns
        -------
        ProcessContext
            Shared context for an architecture filter process.
        """
        http_client = await http_client_dependency()

        # This logger is used only by process-global singletons. Everything
        # else will use a per-request logger that includes more context about
        # the request.
        logger = structlog.get_logger(__name__)

        if config.docker_credentials_path:
            path = config.docker_credentials_path
            credentials = DockerCredentialStore.from_path(path)
        else:
            credentials = DockerCredentialStore({})
        docker = DockerStorageClient(
            credentials=credentials, http_client=http_client, logger=logger
        )
        return cls(
            config=config,
            http_client=http_client,
            kubernetes_client=ApiClient(),
            docker=docker,
        )

    async def aclose(self) -> None:
        """Free allocated resources."""
        await self.kubernetes_client.close()


class Factory:
    """Build architecture filter components.

    Uses the contents of a `ProcessContext` to construct the components of
    the application on demand.

    Parameters
    ----------
    context
        Shared process context.
    logger
        Logger to use for messages.
    """

    @classmethod
    @asynccontextmanager
    async def standalone(cls, config: Config) -> AsyncIterator[Self]:
        """Async context manager for architecture filter components.

        Intended for the command-line interface or the test suite.

        Parameters
        ----------
        config
            Architecture filter configuration.

        Yields
        ------
        Factory
            Newly-created factory. Must be used as a context manager.
        """
        logger = structlog.get_logger(__name__)
        context = await ProcessContext.from_config(config)
        factory = cls(context, logger)
        async with aclosing(factory):
            yield factory

    def __init__(self, context: ProcessContext, logger: BoundLogger) -> None:
        self._context = context
        self._logger = logger

    async def aclose(self) -> None:
        """Shut down the factory.

        After this method is called, the factory object is no longer valid and
        must not be used.
        """
        await self._context.aclose()
        await http_client_dependency.aclose()

    def create_architecture_filter(self) -> ArchitectureFilter:
        """Create the filter that evaluates one pod against one node.

        Returns
        -------
        ArchitectureFilter
            Newly-created architecture filter.
        """
        config = self._context.config
        return ArchitectureFilter(
            fetcher=ManifestFetcher(self._context.docker, self._logger),
            architecture_label=config.node_architecture_label,
            timeout=config.filter_timeout,
            logger=self._logger,
        )

    def create_extender_service(self) -> ExtenderService:
        """Create the service for the scheduler extender ``filter`` verb.

        Returns
        -------
        ExtenderService
            Newly-created extender service.
        """
        return ExtenderService(
            arch_filter=self.create_architecture_filter(),
            node_storage=self.create_node_storage(),
            timeout=self._context.config.filter_timeout,
            logger=self._logger,
        )

    def create_node_storage(self) -> NodeStorage:
        """Create a storage object for Kubernetes nodes.

        Returns
        -------
        NodeStorage
            Newly-created node storage.
        """
        return NodeStorage(self._context.kubernetes_client, self._logger)

    def set_logger(self, logger: BoundLogger) -> None:
        """Replace the internal logger.

        Used by the context dependency to update the logger for all
        newly-created components when it's rebound with additional context.

        Parameters
        ----------
        logger
            New logger.
        """
        self._logger = logger
