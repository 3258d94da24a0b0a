"""
Pydantic models for DatabaseCredentialBinding resources.

A binding grants the pods running as one service account in one namespace
a database credential from Vault, written to a file inside the pod.
"""

from pydantic import BaseModel, Field


class ExecAction(BaseModel):
    """Command executed inside the container."""

    model_config = {"frozen": True}

    command: list[str] | None = Field(None, description="Command line to execute")


class SleepAction(BaseModel):
    """Pause for a fixed duration."""

    model_config = {"frozen": True}

    seconds: int | None = Field(None, description="Number of seconds to sleep")


class LifecycleHandler(BaseModel):
    """
    A lifecycle hook action.

    Only exec and sleep are understood by the webhook; any other action type
    is kept but never considered a valid hook.
    """

    model_config = {"populate_by_name": True, "extra": "allow", "frozen": True}

    exec_: ExecAction | None = Field(None, alias="exec", description="Exec action")
    sleep: SleepAction | None = Field(None, description="Sleep action")


class Lifecycle(BaseModel):
    """Container lifecycle hooks."""

    model_config = {"populate_by_name": True, "frozen": True}

    post_start: LifecycleHandler | None = Field(
        None, alias="postStart", description="Hook run after the container starts"
    )
    pre_stop: LifecycleHandler | None = Field(
        None, alias="preStop", description="Hook run before the container stops"
    )


class SidecarOverride(BaseModel):
    """Overrides applied to the injected credentials sidecar."""

    model_config = {"frozen": True}

    lifecycle: Lifecycle | None = Field(None, description="Sidecar lifecycle hooks")


class DatabaseCredentialBindingSpec(BaseModel):
    """Specification of a DatabaseCredentialBinding."""

    model_config = {"populate_by_name": True, "frozen": True}

    database: str = Field("", description="Vault database secret engine mount")
    role: str = Field("", description="Vault database role")
    output_path: str | None = Field(
        None,
        alias="outputPath",
        description="Directory the credentials are mounted at in application containers",
    )
    output_file: str | None = Field(
        None, alias="outputFile", description="File name the sidecar writes"
    )
    service_account: str | None = Field(
        None,
        alias="serviceAccount",
        description="Service account whose pods receive the credential",
    )
    container: SidecarOverride | None = Field(
        None, description="Overrides for the injected sidecar container"
    )


class BindingMetadata(BaseModel):
    """The subset of ObjectMeta the webhook needs."""

    model_config = {"populate_by_name": True, "extra": "ignore", "frozen": True}

    name: str = Field("", description="Resource name")
    namespace: str = Field("", description="Resource namespace")
    resource_version: str | None = Field(
        None, alias="resourceVersion", description="Resource version"
    )


class DatabaseCredentialBinding(BaseModel):
    """A DatabaseCredentialBinding custom resource."""

    model_config = {"populate_by_name": True, "extra": "ignore", "frozen": True}

    api_version: str | None = Field(None, alias="apiVersion")
    kind: str | None = Field(None)
    metadata: BindingMetadata = Field(default_factory=BindingMetadata)
    spec: DatabaseCredentialBindingSpec = Field(
        default_factory=DatabaseCredentialBindingSpec
    )

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def key(self) -> tuple[str, str]:
        """Store key: the resource identity, not the credential identity."""
        return (self.metadata.namespace, self.metadata.name)
