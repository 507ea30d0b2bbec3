"""Command-line interface for the architecture filter."""

from __future__ import annotations

from pathlib import Path

import click
import uvicorn
from safir.asyncio import run_with_asyncio
from safir.click import display_help
from safir.logging import configure_logging

from .config import Config
from .factory import Factory
from .models.domain.filter import Verdict
from .models.domain.kubernetes import (
    Container,
    Node,
    ObjectMeta,
    Pod,
    PodSpec,
)

__all__ = ["check", "help", "main", "run"]


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(message="%(version)s")
def main() -> None:
    """Command-line interface for archfilter."""


@main.command()
@click.argument("topic", default=None, required=False, nargs=1)
@click.argument("subtopic", default=None, required=False, nargs=1)
@click.pass_context
def help(ctx: click.Context, topic: str | None, subtopic: str | None) -> None:
    """Show help for any command."""
    display_help(main, ctx, topic, subtopic)


@main.command()
@click.option(
    "--host", default="0.0.0.0", show_default=True, help="Address to bind"
)
@click.option(
    "--port", default=8080, show_default=True, type=int, help="Port to bind"
)
def run(host: str, port: int) -> None:
    """Start the scheduler extender web service."""
    uvicorn.run(
        "archfilter.main:create_app", factory=True, host=host, port=port
    )


@main.command()
@click.argument("images", nargs=-1, required=True)
@click.option(
    "--architecture",
    "-a",
    required=True,
    help="Node architecture to check against, such as amd64 or arm64",
)
@click.option(
    "--config-file",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Service configuration file, for credentials and timeout",
)
@run_with_asyncio
async def check(
    images: tuple[str, ...], architecture: str, config_file: Path | None
) -> None:
    """Check whether images can run on a node architecture.

    Prints the verdict for each image and the resulting decision. Exits
    with status 1 if a node of that architecture would be rejected.
    """
    config = Config.from_file(config_file) if config_file else Config()
    configure_logging(
        name="archfilter", profile=config.profile, log_level=config.log_level
    )
    containers = [
        Container(name=f"image-{i}", image=image)
        for i, image in enumerate(images)
    ]
    pod = Pod(
        metadata=ObjectMeta(name="cli"),
        spec=PodSpec(containers=containers),
    )
    node = Node(
        metadata=ObjectMeta(
            name=architecture,
            labels={config.node_architecture_label: architecture},
        )
    )

    async with Factory.standalone(config) as factory:
        arch_filter = factory.create_architecture_filter()
        result = await arch_filter.filter(pod, node)

    for verdict in result.verdicts:
        click.echo(f"{verdict.verdict.value}: {verdict.reason}")
    unchecked = len(pod.image_references()) - len(result.verdicts)
    if unchecked > 0:
        click.echo(f"{Verdict.UNKNOWN.value}: {unchecked} image(s) unchecked")
    click.echo(f"{result.status.value}: {result.reason}")
    if not result.admitted:
        raise click.exceptions.Exit(1)
