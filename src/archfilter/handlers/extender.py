"""Routes for the Kubernetes scheduler extender protocol."""

from typing import Annotated

from fastapi import APIRouter, Depends
from safir.slack.webhook import SlackRouteErrorHandler

from ..dependencies.context import RequestContext, context_dependency
from ..models.v1.extender import ExtenderArgs, ExtenderFilterResult

router = APIRouter(route_class=SlackRouteErrorHandler)
"""Router to mount into the application."""

__all__ = ["router"]


@router.post(
    "/filter",
    summary="Filter candidate nodes by image architecture",
    description=(
        "Called by the Kubernetes scheduler with a pod and its candidate"
        " nodes. Nodes whose architecture is not supported by one of the"
        " pod's images are returned in ``failedNodes``. Nodes are admitted"
        " whenever compatibility cannot be determined."
    ),
    response_model_by_alias=True,
    response_model_exclude_none=True,
    tags=["scheduler"],
)
async def post_filter(
    args: ExtenderArgs,
    context: Annotated[RequestContext, Depends(context_dependency)],
) -> ExtenderFilterResult:
    metadata = args.pod.get("metadata")
    if isinstance(metadata, dict):
        namespace = metadata.get("namespace") or ""
        name = metadata.get("name") or ""
        context.rebind_logger(pod=f"{namespace}/{name}")
    extender = context.factory.create_extender_service()
    return await extender.filter(args)
