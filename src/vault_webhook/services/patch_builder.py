"""
JSON Patch construction for credential injection.

Given a pod and the credentials matched for it, the builder produces one
patch that:
- adds the shared ``vault-creds`` emptyDir volume,
- mounts it into every existing container at each credential's output path,
- appends one credentials sidecar per credential,
- prepends one init container per credential so the pod does not start
  before the first credential has been written.

Sidecars are built as kubernetes client models and serialized with the
client's own serializer, so the patch carries the API's field names.
"""

import copy
import json
import logging
from collections.abc import Iterable, Sequence

from kubernetes import client

from vault_webhook.constants import (
    COMPLETED_PATH,
    CREDS_OUTPUT_DIR,
    CREDS_TEMPLATE_DIR,
    CREDS_VOLUME_NAME,
    IMAGE_PULL_POLICY,
    INIT_CONTAINER_SUFFIX,
    INIT_FLAG,
    JOB_FLAG,
    JOB_LIKE_OWNER_KINDS,
    LEASE_DURATION,
    RENEW_INTERVAL,
    SIDECAR_NAME_PREFIX,
    SIDECAR_RESOURCE_LIMITS,
    SIDECAR_RESOURCE_REQUESTS,
)
from vault_webhook.errors import PatchEncodingError
from vault_webhook.models.binding import SidecarOverride
from vault_webhook.models.pod import Pod
from vault_webhook.models.types import KubernetesContainer, PatchOperation
from vault_webhook.services.binding_matcher import MatchedCredential
from vault_webhook.settings import Settings

logger = logging.getLogger(__name__)


def sidecar_name(database: str, role: str) -> str:
    """Container name for a credential; stable across re-admission of a pod."""
    return f"{SIDECAR_NAME_PREFIX}{database}-{role}".replace("_", "-")


def is_job_like(pod: Pod) -> bool:
    """Whether the pod's first owner runs to completion (Job, Workflow)."""
    owner = pod.owner
    return owner is not None and owner.kind in JOB_LIKE_OWNER_KINDS


def add_volume(pod: Pod) -> list[PatchOperation]:
    """
    Add the shared credentials volume.

    The volume is appended when the pod already declares volumes; otherwise
    the volumes array is created with it as its only element.
    """
    volume = {"name": CREDS_VOLUME_NAME, "emptyDir": {}}
    if pod.spec.volumes:
        return [{"op": "add", "path": "/spec/volumes/-", "value": volume}]
    return [{"op": "add", "path": "/spec/volumes", "value": [volume]}]


def add_volume_mounts(
    containers: Sequence[KubernetesContainer],
    credentials: Iterable[MatchedCredential],
) -> list[KubernetesContainer]:
    """
    Mount the credentials volume into each container at each output path.

    A (name, mountPath) pair already present on a container is not added
    again; the API server rejects pods with duplicate mount paths. The input
    containers are left untouched.
    """
    credentials = list(credentials)
    mounted: list[KubernetesContainer] = []
    for container in containers:
        container = copy.deepcopy(container)
        mounts = container.setdefault("volumeMounts", [])
        for credential in credentials:
            already_mounted = any(
                mount.get("name") == CREDS_VOLUME_NAME
                and mount.get("mountPath") == credential.output_path
                for mount in mounts
            )
            if not already_mounted:
                mounts.append(
                    {"name": CREDS_VOLUME_NAME, "mountPath": credential.output_path}
                )
        mounted.append(container)
    return mounted


def has_valid_pre_stop(override: SidecarOverride | None) -> bool:
    """
    Whether an override carries a complete preStop hook.

    Only a non-empty exec command or a sleep of a positive number of seconds
    counts. Overrides decoded from admission-time objects often carry empty
    handlers, which must not be mistaken for a hook.
    """
    if override is None or override.lifecycle is None:
        return False
    handler = override.lifecycle.pre_stop
    if handler is None:
        return False
    if handler.exec_ is not None and handler.exec_.command:
        return True
    return (
        handler.sleep is not None
        and handler.sleep.seconds is not None
        and handler.sleep.seconds > 0
    )


def add_lifecycle_hook(
    container: client.V1Container, override: SidecarOverride | None
) -> client.V1Container:
    """Copy a valid preStop hook from ``override`` onto ``container``."""
    if not has_valid_pre_stop(override):
        return container

    handler = override.lifecycle.pre_stop
    if handler.exec_ is not None and handler.exec_.command:
        pre_stop = client.V1LifecycleHandler(
            _exec=client.V1ExecAction(command=list(handler.exec_.command))
        )
    else:
        pre_stop = client.V1LifecycleHandler(
            sleep=client.V1SleepAction(seconds=handler.sleep.seconds)
        )
    container.lifecycle = client.V1Lifecycle(pre_stop=pre_stop)
    return container


class PatchBuilder:
    """Builds the JSON Patch injecting credential sidecars into a pod."""

    def __init__(self, settings: Settings):
        """
        Initialize the builder.

        Args:
            settings: Webhook settings supplying the sidecar image and Vault options
        """
        self.settings = settings
        self._serializer = client.ApiClient()

    def sidecar_args(
        self, credential: MatchedCredential, namespace: str, service_account: str
    ) -> list[str]:
        """Command line of the credentials sidecar for one credential."""
        database = credential.database
        role = credential.role

        auth_role = f"{database}_{namespace}_{service_account}"
        secret_path = self.settings.secret_path_format % (database, role)
        template_path = f"{CREDS_TEMPLATE_DIR}/{database}-{role}"
        if credential.output_file:
            output_path = f"{CREDS_OUTPUT_DIR}/{credential.output_file}"
        else:
            output_path = f"{CREDS_OUTPUT_DIR}/{database}-{role}"

        return [
            f"--vault-addr={self.settings.vault_addr}",
            f"--gateway-addr={self.settings.gateway_addr}",
            f"--ca-cert={self.settings.vault_ca_path}",
            f"--secret-path={secret_path}",
            f"--login-path={self.settings.resolved_login_path}",
            f"--auth-role={auth_role}",
            f"--template={template_path}",
            f"--out={output_path}",
            f"--completed-path={COMPLETED_PATH}",
            f"--renew-interval={RENEW_INTERVAL}",
            f"--lease-duration={LEASE_DURATION}",
            "--json-log",
        ]

    def build_sidecar(
        self, credential: MatchedCredential, namespace: str, service_account: str
    ) -> client.V1Container:
        """Build the credentials container shared by the sidecar and init variants."""
        return client.V1Container(
            name=sidecar_name(credential.database, credential.role),
            image=self.settings.sidecar_image,
            image_pull_policy=IMAGE_PULL_POLICY,
            args=self.sidecar_args(credential, namespace, service_account),
            resources=client.V1ResourceRequirements(
                requests=dict(SIDECAR_RESOURCE_REQUESTS),
                limits=dict(SIDECAR_RESOURCE_LIMITS),
            ),
            env=[
                client.V1EnvVar(
                    name="POD_NAME",
                    value_from=client.V1EnvVarSource(
                        field_ref=client.V1ObjectFieldSelector(
                            field_path="metadata.name"
                        )
                    ),
                ),
                client.V1EnvVar(
                    name="NAMESPACE",
                    value_from=client.V1EnvVarSource(
                        field_ref=client.V1ObjectFieldSelector(
                            field_path="metadata.namespace"
                        )
                    ),
                ),
            ],
            volume_mounts=[
                client.V1VolumeMount(name=CREDS_VOLUME_NAME, mount_path=CREDS_OUTPUT_DIR)
            ],
        )

    def add_vault(
        self,
        pod: Pod,
        namespace: str,
        credentials: Sequence[MatchedCredential],
        containers: Sequence[KubernetesContainer] | None = None,
        init_containers: Sequence[KubernetesContainer] | None = None,
    ) -> list[PatchOperation]:
        """
        Add one sidecar and one init container per credential.

        Args:
            pod: The pod being admitted
            namespace: Namespace of the admission request
            credentials: Credentials to inject
            containers: The pod's containers, already given their mounts
            init_containers: The pod's init containers, already given their mounts

        Returns:
            The containers and initContainers patch operations
        """
        if containers is None:
            containers = pod.spec.containers or []
        if init_containers is None:
            init_containers = pod.spec.init_containers or []

        service_account = pod.spec.service_account_name or ""
        job_mode = is_job_like(pod)

        sidecars: list[client.V1Container] = []
        init_sidecars: list[client.V1Container] = []
        for credential in credentials:
            sidecar = self.build_sidecar(credential, namespace, service_account)
            init_sidecar = self.build_sidecar(credential, namespace, service_account)

            # Lifecycle hooks are not allowed on init containers
            add_lifecycle_hook(sidecar, credential.override)
            if job_mode:
                sidecar.args.append(JOB_FLAG)

            init_sidecar.name = f"{init_sidecar.name}{INIT_CONTAINER_SUFFIX}"
            init_sidecar.args.append(INIT_FLAG)

            sidecars.append(sidecar)
            init_sidecars.append(init_sidecar)

        # The containers array is rewritten whole because existing entries gained mounts
        containers_op = "replace" if pod.spec.containers is not None else "add"
        all_containers = [*containers, *self._serialize(sidecars)]

        if pod.spec.init_containers:
            init_op = "replace"
            all_init_containers = [*self._serialize(init_sidecars), *init_containers]
        else:
            init_op = "add"
            all_init_containers = self._serialize(init_sidecars)

        return [
            {"op": containers_op, "path": "/spec/containers", "value": all_containers},
            {
                "op": init_op,
                "path": "/spec/initContainers",
                "value": all_init_containers,
            },
        ]

    def create_patch(
        self, pod: Pod, namespace: str, credentials: Sequence[MatchedCredential]
    ) -> list[PatchOperation]:
        """
        Build the full patch for a pod.

        Args:
            pod: The pod being admitted
            namespace: Namespace of the admission request
            credentials: Non-empty list of credentials to inject

        Returns:
            Ordered patch operations: volume, containers, initContainers
        """
        patch = add_volume(pod)
        containers = add_volume_mounts(pod.spec.containers or [], credentials)
        init_containers = None
        if pod.spec.init_containers:
            init_containers = add_volume_mounts(pod.spec.init_containers, credentials)
        patch.extend(
            self.add_vault(pod, namespace, credentials, containers, init_containers)
        )
        return patch

    def _serialize(self, containers: list[client.V1Container]) -> list[KubernetesContainer]:
        return self._serializer.sanitize_for_serialization(containers)


def encode_patch(patch: list[PatchOperation]) -> bytes:
    """
    Serialize a patch to JSON.

    Raises:
        PatchEncodingError: If the patch holds a value JSON cannot represent
    """
    try:
        return json.dumps(patch).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise PatchEncodingError(str(e), cause=e) from e
