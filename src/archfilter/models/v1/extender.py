"""Models for the Kubernetes scheduler extender filter protocol."""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "ExtenderArgs",
    "ExtenderFilterResult",
    "NodeList",
]


class NodeList(BaseModel):
    """List of full ``Node`` objects.

    Nodes are kept as raw JSON so that admitted nodes can be returned to the
    scheduler exactly as they were received.
    """

    model_config = ConfigDict(extra="allow")

    items: Annotated[
        list[dict[str, Any]], Field(title="Nodes", default_factory=list)
    ]


class ExtenderArgs(BaseModel):
    """Arguments sent by the scheduler to the ``filter`` verb."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    pod: Annotated[
        dict[str, Any],
        Field(title="Pod being scheduled", alias="pod"),
    ]

    nodes: Annotated[
        NodeList | None,
        Field(
            title="Candidate nodes",
            description="Sent unless the extender is node cache capable",
            alias="nodes",
        ),
    ] = None

    node_names: Annotated[
        list[str] | None,
        Field(
            title="Candidate node names",
            description="Sent if the extender is node cache capable",
            alias="nodenames",
        ),
    ] = None


class ExtenderFilterResult(BaseModel):
    """Reply to the ``filter`` verb.

    Exactly one of ``nodes`` or ``node_names`` is set, matching what the
    scheduler sent.
    """

    model_config = ConfigDict(populate_by_name=True)

    nodes: Annotated[
        NodeList | None,
        Field(title="Admitted nodes", alias="nodes"),
    ] = None

    node_names: Annotated[
        list[str] | None,
        Field(title="Admitted node names", alias="nodenames"),
    ] = None

    failed_nodes: Annotated[
        dict[str, str],
        Field(
            title="Rejected nodes",
            description="Map of rejected node names to the reason",
            alias="failedNodes",
            default_factory=dict,
        ),
    ]

    error: Annotated[
        str,
        Field(
            title="Error",
            description="Always empty, since the filter fails open",
            alias="error",
        ),
    ] = ""
