"""Models for the parts of Kubernetes objects the filter reads.

The scheduler sends full ``Pod`` and ``Node`` objects in JSON form. Only
the fields used for filtering are modeled; everything else is ignored.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from ...exceptions import InvalidDockerReferenceError
from .docker import DockerReference

__all__ = [
    "Container",
    "Node",
    "ObjectMeta",
    "Pod",
    "PodSpec",
]


class KubernetesObjectModel(BaseModel):
    """Base for models parsed from Kubernetes JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel, extra="ignore", populate_by_name=True
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        """Treat explicit nulls as omitted fields, as Kubernetes does."""
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class ObjectMeta(KubernetesObjectModel):
    """Object metadata."""

    name: Annotated[str | None, Field(title="Object name")] = None

    namespace: Annotated[str | None, Field(title="Object namespace")] = None

    labels: Annotated[
        dict[str, str], Field(title="Object labels", default_factory=dict)
    ]


class Container(KubernetesObjectModel):
    """One container of a pod."""

    name: Annotated[str, Field(title="Container name")] = ""

    image: Annotated[
        str | None,
        Field(title="Image", description="Image reference as written"),
    ] = None


class PodSpec(KubernetesObjectModel):
    """Pod specification."""

    containers: Annotated[
        list[Container], Field(title="Containers", default_factory=list)
    ]

    init_containers: Annotated[
        list[Container],
        Field(title="Init containers", default_factory=list),
    ]


class Pod(KubernetesObjectModel):
    """Pod being scheduled."""

    metadata: Annotated[ObjectMeta, Field(default_factory=ObjectMeta)]

    spec: Annotated[PodSpec, Field(default_factory=PodSpec)]

    @property
    def display_name(self) -> str:
        """Name of the pod for log messages."""
        name = self.metadata.name or "<unnamed>"
        if self.metadata.namespace:
            return f"{self.metadata.namespace}/{name}"
        return name

    def image_references(self) -> list[str]:
        """Collect the distinct images used by the pod.

        Init containers come first since they run first. Each reference is
        normalized so that different spellings of the same image are only
        checked once. References that cannot be parsed are kept as written;
        the registry lookup will fail for them later.

        Returns
        -------
        list of str
            Distinct image references, in order of first appearance.
        """
        references: dict[str, None] = {}
        for container in self.spec.init_containers + self.spec.containers:
            if not container.image:
                continue
            try:
                reference = str(DockerReference.from_str(container.image))
            except InvalidDockerReferenceError:
                reference = container.image
            references[reference] = None
        return list(references)


class Node(KubernetesObjectModel):
    """Candidate node."""

    metadata: Annotated[ObjectMeta, Field(default_factory=ObjectMeta)]

    @property
    def name(self) -> str:
        """Name of the node, or the empty string if it has none."""
        return self.metadata.name or ""

    def architecture(self, label: str) -> str | None:
        """Determine the CPU architecture of the node.

        Parameters
        ----------
        label
            Label holding the architecture, normally ``kubernetes.io/arch``.

        Returns
        -------
        str or None
            Architecture exactly as labeled, or `None` if the label is
            missing or empty.
        """
        return self.metadata.labels.get(label) or None
