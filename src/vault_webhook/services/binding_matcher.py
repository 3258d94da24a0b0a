"""
Selection of the bindings that apply to a pod.

A binding applies when it lives in the pod's namespace and names the pod's
service account. Bindings without a service account never apply, so a
half-written binding cannot inject credentials into every pod of a
namespace.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from vault_webhook.constants import DEFAULT_OUTPUT_PATH
from vault_webhook.models.binding import DatabaseCredentialBinding, SidecarOverride
from vault_webhook.services.binding_cache import BindingCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchedCredential:
    """
    One binding resolved against a pod.

    Equality covers (database, role, output_path, output_file) only. Two
    bindings that differ only in their sidecar override are the same
    credential, and the first one matched keeps its override.
    """

    database: str
    role: str
    output_path: str = DEFAULT_OUTPUT_PATH
    output_file: str = ""
    override: SidecarOverride | None = field(default=None, compare=False)

    @classmethod
    def from_binding(cls, binding: DatabaseCredentialBinding) -> "MatchedCredential":
        spec = binding.spec
        return cls(
            database=spec.database,
            role=spec.role,
            output_path=spec.output_path or DEFAULT_OUTPUT_PATH,
            output_file=spec.output_file or "",
            override=spec.container,
        )


def filter_bindings(
    bindings: Iterable[DatabaseCredentialBinding], namespace: str
) -> list[DatabaseCredentialBinding]:
    """Keep the bindings in ``namespace``, preserving order."""
    return [binding for binding in bindings if binding.namespace == namespace]


def match_bindings(
    bindings: Iterable[DatabaseCredentialBinding], service_account: str
) -> list[MatchedCredential]:
    """
    Resolve the bindings granted to ``service_account``.

    A pod can receive several credentials, each possibly with its own
    sidecar override; duplicates are dropped in favour of the first seen.
    """
    matched: list[MatchedCredential] = []
    for binding in bindings:
        bound_account = binding.spec.service_account
        if not bound_account or bound_account != service_account:
            continue
        credential = MatchedCredential.from_binding(binding)
        if credential not in matched:
            matched.append(credential)
    return matched


class BindingMatcher:
    """Matches pods against the bindings currently in the cache."""

    def __init__(self, cache: BindingCache):
        self.cache = cache

    def match(self, namespace: str, service_account: str) -> list[MatchedCredential]:
        """
        Compute the credentials to inject into a pod.

        Args:
            namespace: Namespace of the admission request
            service_account: The pod's service account name

        Returns:
            Credentials in binding order; empty means no mutation

        Raises:
            EnumerationError: If the cache holds a malformed entry
        """
        in_namespace = filter_bindings(self.cache.snapshot(), namespace)
        if not in_namespace:
            logger.debug(f"No database credential bindings in namespace {namespace}")
            return []
        return match_bindings(in_namespace, service_account)
