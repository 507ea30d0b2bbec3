"""Test fixtures for archfilter tests."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator

import pytest
import pytest_asyncio
import respx
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from safir.testing.kubernetes import MockKubernetesApi, patch_kubernetes
from safir.testing.slack import MockSlackWebhook, mock_slack_webhook

from archfilter.config import Config
from archfilter.factory import Factory
from archfilter.main import create_app

from .support.config import configure
from .support.constants import TEST_BASE_URL, TEST_REGISTRY
from .support.docker import MockDockerRegistry, register_mock_docker


@pytest.fixture
def config() -> Config:
    """Construct default configuration for tests."""
    return configure("standard")


@pytest_asyncio.fixture
async def app(
    config: Config,
    mock_docker: MockDockerRegistry,
    mock_kubernetes: MockKubernetesApi,
    mock_slack: MockSlackWebhook,
) -> AsyncIterator[FastAPI]:
    """Return a configured test application.

    Wraps the application in a lifespan manager so that startup and shutdown
    events are sent during test execution.
    """
    app = create_app()
    async with LifespanManager(app):
        yield app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Return an ``httpx.AsyncClient`` configured to talk to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url=TEST_BASE_URL
    ) as client:
        yield client


@pytest_asyncio.fixture
async def factory(
    config: Config,
    mock_docker: MockDockerRegistry,
    mock_kubernetes: MockKubernetesApi,
) -> AsyncIterator[Factory]:
    """Create a component factory for tests."""
    async with Factory.standalone(config) as factory:
        yield factory


@pytest.fixture
def mock_docker(
    config: Config, respx_mock: respx.Router
) -> MockDockerRegistry:
    assert config.docker_credentials_path
    return register_mock_docker(
        respx_mock,
        host=TEST_REGISTRY,
        credentials_path=config.docker_credentials_path,
        require_bearer=True,
    )


@pytest.fixture
def mock_kubernetes() -> Iterator[MockKubernetesApi]:
    yield from patch_kubernetes()


@pytest.fixture
def mock_slack(
    config: Config, respx_mock: respx.Router
) -> Iterator[MockSlackWebhook]:
    config.slack_webhook = SecretStr("https://slack.example.com/webhook")
    yield mock_slack_webhook(config.slack_webhook, respx_mock)
    config.slack_webhook = None
