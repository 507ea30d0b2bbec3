"""Tests for the architecture filter."""

from __future__ import annotations

import asyncio
import time
from datetime import timedelta

import pytest
import respx
from httpx import ConnectError, Request, Response

from archfilter.config import Config
from archfilter.factory import Factory
from archfilter.models.domain.filter import FilterStatus, Verdict
from archfilter.models.domain.kubernetes import Node, Pod
from archfilter.services.filter import evaluate_index

from ..support.constants import TEST_REGISTRY
from ..support.docker import (
    DOCKER_MANIFEST_LIST,
    OCI_INDEX,
    OCI_MANIFEST,
    MockDockerRegistry,
    register_mock_docker,
)


def make_pod(images: list[str], init_images: list[str] | None = None) -> Pod:
    return Pod.model_validate(
        {
            "metadata": {"name": "test", "namespace": "default"},
            "spec": {
                "initContainers": [
                    {"name": f"init-{i}", "image": image}
                    for i, image in enumerate(init_images or [])
                ],
                "containers": [
                    {"name": f"main-{i}", "image": image}
                    for i, image in enumerate(images)
                ],
            },
        }
    )


def make_node(architecture: str | None, name: str = "node-1") -> Node:
    labels = {"kubernetes.io/hostname": name}
    if architecture is not None:
        labels["kubernetes.io/arch"] = architecture
    return Node.model_validate({"metadata": {"name": name, "labels": labels}})


@pytest.mark.asyncio
async def test_no_architecture(
    factory: Factory, mock_docker: MockDockerRegistry
) -> None:
    mock_docker.add_image("app", "arm", "arm64")
    pod = make_pod([f"{TEST_REGISTRY}/app:arm"])
    arch_filter = factory.create_architecture_filter()

    for node in (make_node(None), make_node("")):
        result = await arch_filter.filter(pod, node)
        assert result.status == FilterStatus.ADMIT
        assert result.reason == (
            "Node architecture not found, ignoring architecture filtering"
        )
        assert result.verdicts == []
    assert not mock_docker.manifest_fetches


@pytest.mark.asyncio
async def test_compatible(
    factory: Factory, mock_docker: MockDockerRegistry
) -> None:
    mock_docker.add_image("app", "one", "amd64")
    mock_docker.add_image("team/app", "two", "amd64")
    mock_docker.add_index("multi", "latest", ["amd64", "arm64"])
    pod = make_pod(
        [f"{TEST_REGISTRY}/app:one", f"{TEST_REGISTRY}/multi"],
        [f"{TEST_REGISTRY}/team/app:two"],
    )
    arch_filter = factory.create_architecture_filter()

    result = await arch_filter.filter(pod, make_node("amd64"))
    assert result.admitted
    assert result.reason == "All images support architecture amd64"
    assert [v.reference for v in result.verdicts] == [
        f"{TEST_REGISTRY}/team/app:two",
        f"{TEST_REGISTRY}/app:one",
        f"{TEST_REGISTRY}/multi:latest",
    ]
    assert all(v.verdict == Verdict.COMPATIBLE for v in result.verdicts)
    assert result.unresolved == []


@pytest.mark.asyncio
async def test_no_images(factory: Factory) -> None:
    arch_filter = factory.create_architecture_filter()
    result = await arch_filter.filter(make_pod([]), make_node("amd64"))
    assert result.admitted
    assert result.reason == "Pod has no images to check"


@pytest.mark.asyncio
async def test_index_missing_architecture(
    factory: Factory, mock_docker: MockDockerRegistry
) -> None:
    mock_docker.add_index(
        "multi", "v1", ["amd64", "arm64"], media_type=DOCKER_MANIFEST_LIST
    )
    pod = make_pod([f"{TEST_REGISTRY}/multi:v1"])
    arch_filter = factory.create_architecture_filter()

    result = await arch_filter.filter(pod, make_node("s390x"))
    assert result.status == FilterStatus.REJECT
    assert result.reason.startswith(
        f"Image {TEST_REGISTRY}/multi:v1 has no manifest for s390x"
    )
    assert result.reason.endswith("(node node-1)")
    assert [v.verdict for v in result.verdicts] == [Verdict.INCOMPATIBLE]

    result = await arch_filter.filter(pod, make_node("arm64"))
    assert result.admitted


@pytest.mark.asyncio
async def test_single_platform_mismatch(
    factory: Factory, mock_docker: MockDockerRegistry
) -> None:
    mock_docker.add_image("app", "arm", "arm64", media_type=OCI_MANIFEST)
    mock_docker.add_image("app", "amd", "amd64")
    pod = make_pod([f"{TEST_REGISTRY}/app:amd", f"{TEST_REGISTRY}/app:arm"])
    arch_filter = factory.create_architecture_filter()

    result = await arch_filter.filter(pod, make_node("amd64"))
    assert result.status == FilterStatus.REJECT
    assert result.reason == (
        f"Image {TEST_REGISTRY}/app:arm is built for arm64, not amd64"
        " (node node-1)"
    )
    assert [v.verdict for v in result.verdicts] == [
        Verdict.COMPATIBLE,
        Verdict.INCOMPATIBLE,
    ]


@pytest.mark.asyncio
async def test_init_container_rejects(
    factory: Factory, mock_docker: MockDockerRegistry
) -> None:
    mock_docker.add_image("app", "init", "amd64")
    mock_docker.add_index("app", "main", ["amd64", "arm64"])
    pod = make_pod(
        [f"{TEST_REGISTRY}/app:main"], [f"{TEST_REGISTRY}/app:init"]
    )
    arch_filter = factory.create_architecture_filter()

    result = await arch_filter.filter(pod, make_node("arm64"))
    assert result.status == FilterStatus.REJECT
    assert f"{TEST_REGISTRY}/app:init" in result.reason

    # Rejection stops checking, so the main image was never fetched.
    assert mock_docker.manifest_fetches["app:main"] == 0

    result = await arch_filter.filter(pod, make_node("amd64"))
    assert result.admitted
    assert mock_docker.manifest_fetches["app:main"] == 1


@pytest.mark.asyncio
async def test_duplicate_references(
    factory: Factory, respx_mock: respx.Router
) -> None:
    hub = register_mock_docker(
        respx_mock, host="registry-1.docker.io", require_bearer=True
    )
    hub.add_index("library/nginx", "latest", ["amd64", "arm64"])
    pod = make_pod(
        ["nginx", "docker.io/library/nginx:latest"],
        ["index.docker.io/library/nginx", "nginx:latest"],
    )
    arch_filter = factory.create_architecture_filter()

    result = await arch_filter.filter(pod, make_node("arm64"))
    assert result.admitted
    assert [v.reference for v in result.verdicts] == [
        "docker.io/library/nginx:latest"
    ]
    assert hub.manifest_fetches == {"library/nginx:latest": 1}
    assert hub.token_requests == 1


@pytest.mark.asyncio
async def test_unreachable_registry(
    factory: Factory, respx_mock: respx.Router
) -> None:
    respx_mock.get(url__regex=r"https://unreachable\.example\.com/.*").mock(
        side_effect=ConnectError
    )
    images = ["unreachable.example.com/a:1", "unreachable.example.com/b:2"]
    pod = make_pod(images)
    arch_filter = factory.create_architecture_filter()

    result = await arch_filter.filter(pod, make_node("amd64"))
    assert result.admitted
    assert result.reason == (
        f"No images could be checked: {images[0]}, {images[1]}"
    )
    assert all(v.verdict == Verdict.UNKNOWN for v in result.verdicts)
    assert result.unresolved == images


@pytest.mark.asyncio
async def test_partially_unknown(
    factory: Factory, mock_docker: MockDockerRegistry
) -> None:
    mock_docker.add_image("app", "good", "amd64")
    mock_docker.add_manifest(
        "app",
        "noconfig",
        {"schemaVersion": 2, "config": {"digest": "sha256:" + "0" * 64}},
        OCI_MANIFEST,
    )
    mock_docker.add_manifest("app", "garbage", b"<html></html>", "text/html")
    images = [
        f"{TEST_REGISTRY}/app:good",
        f"{TEST_REGISTRY}/app:missing",
        f"{TEST_REGISTRY}/app:noconfig",
        f"{TEST_REGISTRY}/app:garbage",
        "Not An Image",
    ]
    arch_filter = factory.create_architecture_filter()

    result = await arch_filter.filter(make_pod(images), make_node("amd64"))
    assert result.admitted
    assert result.reason == (
        "All checked images support architecture amd64, could not check: "
        + ", ".join(images[1:])
    )
    assert [v.verdict for v in result.verdicts] == [
        Verdict.COMPATIBLE,
        Verdict.UNKNOWN,
        Verdict.UNKNOWN,
        Verdict.UNKNOWN,
        Verdict.UNKNOWN,
    ]


@pytest.mark.asyncio
async def test_schema1(
    factory: Factory, mock_docker: MockDockerRegistry
) -> None:
    mock_docker.add_schema1_image("legacy", "old", "amd64")
    pod = make_pod([f"{TEST_REGISTRY}/legacy:old"])
    arch_filter = factory.create_architecture_filter()

    result = await arch_filter.filter(pod, make_node("arm64"))
    assert result.status == FilterStatus.REJECT
    result = await arch_filter.filter(pod, make_node("amd64"))
    assert result.admitted


@pytest.mark.asyncio
async def test_generic_content_type(
    factory: Factory, mock_docker: MockDockerRegistry
) -> None:
    mock_docker.add_index(
        "multi", "json", ["amd64"], media_type="application/json"
    )
    mock_docker.add_image("app", "untyped", "amd64", media_type=None)
    images = [f"{TEST_REGISTRY}/multi:json", f"{TEST_REGISTRY}/app:untyped"]
    arch_filter = factory.create_architecture_filter()

    result = await arch_filter.filter(make_pod(images), make_node("arm64"))
    assert result.status == FilterStatus.REJECT
    assert "has no manifest for arm64" in result.reason

    result = await arch_filter.filter(make_pod(images), make_node("amd64"))
    assert result.admitted
    assert result.unresolved == []


@pytest.mark.asyncio
async def test_exact_comparison(
    factory: Factory, mock_docker: MockDockerRegistry
) -> None:
    mock_docker.add_image("app", "arm", "arm64")
    mock_docker.add_index("multi", "latest", ["amd64", "arm64"])
    pod = make_pod([f"{TEST_REGISTRY}/app:arm"])
    arch_filter = factory.create_architecture_filter()

    result = await arch_filter.filter(pod, make_node("ARM64"))
    assert result.status == FilterStatus.REJECT
    result = await arch_filter.filter(pod, make_node("aarch64"))
    assert result.status == FilterStatus.REJECT

    pod = make_pod([f"{TEST_REGISTRY}/multi"])
    result = await arch_filter.filter(pod, make_node("x86_64"))
    assert result.status == FilterStatus.REJECT


@pytest.mark.asyncio
async def test_idempotent(
    factory: Factory, mock_docker: MockDockerRegistry
) -> None:
    mock_docker.add_image("app", "amd", "amd64")
    mock_docker.add_index("multi", "latest", ["amd64", "arm64"])
    images = [
        f"{TEST_REGISTRY}/multi",
        f"{TEST_REGISTRY}/app:amd",
        f"{TEST_REGISTRY}/app:missing",
    ]
    pod = make_pod(images)
    arch_filter = factory.create_architecture_filter()

    for architecture in ("amd64", "arm64"):
        node = make_node(architecture)
        first = await arch_filter.filter(pod, node)
        second = await arch_filter.filter(pod, node)
        assert first == second


@pytest.mark.asyncio
async def test_timeout(
    config: Config, factory: Factory, mock_docker: MockDockerRegistry
) -> None:
    mock_docker.add_image("app", "arm", "arm64")
    config.filter_timeout = timedelta(seconds=0)
    pod = make_pod([f"{TEST_REGISTRY}/app:arm"])
    arch_filter = factory.create_architecture_filter()

    result = await arch_filter.filter(pod, make_node("amd64"))
    assert result.admitted
    assert result.reason.startswith("Architecture check timed out after")
    assert result.reason.endswith(f"could not check: {TEST_REGISTRY}/app:arm")
    assert result.verdicts == []
    assert not mock_docker.manifest_fetches


async def hang(request: Request) -> Response:
    await asyncio.sleep(5)
    return Response(404)


@pytest.mark.asyncio
async def test_timeout_in_flight(
    config: Config, factory: Factory, respx_mock: respx.Router
) -> None:
    respx_mock.get(url__regex=r"https://slow\.example\.com/.*").mock(
        side_effect=hang
    )
    config.filter_timeout = timedelta(seconds=0.2)
    pod = make_pod(["slow.example.com/app:1"])
    arch_filter = factory.create_architecture_filter()

    start = time.monotonic()
    result = await arch_filter.filter(pod, make_node("amd64"))
    assert time.monotonic() - start < 2
    assert result.admitted
    assert result.reason.startswith("Architecture check timed out after")
    assert result.reason.endswith("could not check: slow.example.com/app:1")
    assert result.verdicts == []


@pytest.mark.asyncio
async def test_timeout_after_unknown(
    config: Config, factory: Factory, respx_mock: respx.Router
) -> None:
    respx_mock.get(url__regex=r"https://unreachable\.example\.com/.*").mock(
        side_effect=ConnectError
    )
    respx_mock.get(url__regex=r"https://slow\.example\.com/.*").mock(
        side_effect=hang
    )
    config.filter_timeout = timedelta(seconds=0.2)
    images = ["unreachable.example.com/a:1", "slow.example.com/b:2"]
    pod = make_pod(images)
    arch_filter = factory.create_architecture_filter()

    result = await arch_filter.filter(pod, make_node("amd64"))
    assert result.admitted
    assert result.reason.startswith("Architecture check timed out after")
    assert result.reason.endswith(
        f"could not check: {images[0]}, {images[1]}"
    )
    assert [v.verdict for v in result.verdicts] == [Verdict.UNKNOWN]


def test_evaluate_empty_index() -> None:
    reference = f"{TEST_REGISTRY}/empty:latest"
    verdict = evaluate_index(reference, [], "amd64")
    assert verdict.verdict == Verdict.INCOMPATIBLE
    assert verdict.reason == (
        f"Image {reference} has no manifest for amd64 (supported: none)"
    )


@pytest.mark.asyncio
async def test_empty_index(
    factory: Factory, mock_docker: MockDockerRegistry
) -> None:
    manifest = {"schemaVersion": 2, "mediaType": OCI_INDEX, "manifests": []}
    mock_docker.add_manifest("empty", "latest", manifest, OCI_INDEX)
    pod = make_pod([f"{TEST_REGISTRY}/empty:latest"])
    arch_filter = factory.create_architecture_filter()

    result = await arch_filter.filter(pod, make_node("amd64"))
    assert result.status == FilterStatus.REJECT
    assert result.reason == (
        f"Image {TEST_REGISTRY}/empty:latest has no manifest for amd64"
        " (supported: none) (node node-1)"
    )
