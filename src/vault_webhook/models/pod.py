"""
Pydantic models for the parts of a Pod the webhook reads.

Containers and volumes stay as plain mappings so that rewriting the
containers array reproduces every field the webhook does not understand.
"""

from pydantic import BaseModel, Field

from .types import KubernetesContainer, KubernetesVolume


class OwnerReference(BaseModel):
    """Reference to the controller that owns a pod."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    kind: str = Field("", description="Kind of the owner")
    name: str = Field("", description="Name of the owner")
    api_version: str | None = Field(None, alias="apiVersion")
    uid: str | None = Field(None)


class PodMetadata(BaseModel):
    """Pod metadata."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    name: str | None = Field(None)
    generate_name: str | None = Field(None, alias="generateName")
    namespace: str | None = Field(None)
    owner_references: list[OwnerReference] = Field(
        default_factory=list, alias="ownerReferences"
    )


class PodSpec(BaseModel):
    """
    Pod specification.

    ``None`` for an array field means the field is absent from the manifest,
    which decides between an ``add`` and a ``replace`` patch operation.
    """

    model_config = {"populate_by_name": True, "extra": "ignore"}

    service_account_name: str | None = Field(None, alias="serviceAccountName")
    containers: list[KubernetesContainer] | None = Field(None)
    init_containers: list[KubernetesContainer] | None = Field(
        None, alias="initContainers"
    )
    volumes: list[KubernetesVolume] | None = Field(None)


class Pod(BaseModel):
    """A Pod as embedded in an admission request."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    metadata: PodMetadata = Field(default_factory=PodMetadata)
    spec: PodSpec = Field(default_factory=PodSpec)

    @property
    def owner(self) -> OwnerReference | None:
        """First owner reference, or None for an unowned pod."""
        if self.metadata.owner_references:
            return self.metadata.owner_references[0]
        return None

    @property
    def display_name(self) -> str:
        """Best available name; pods created by controllers have only a prefix."""
        return self.metadata.name or self.metadata.generate_name or ""
