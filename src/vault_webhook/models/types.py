"""
Type aliases for structural typing in webhook models.

Kubernetes objects embedded in a Pod have deep, open-ended structures. The
webhook only reads a handful of their fields and must pass everything else
through untouched when it rewrites an array, so these are kept as plain
mappings. The alias communicates the expected structure category.
"""

from typing import Any, TypeAlias

KubernetesContainer: TypeAlias = dict[str, Any]
"""
Kubernetes Container as it appears in a Pod manifest.

Fields read by the webhook:
- name: str
- volumeMounts: list of {name, mountPath, ...}
"""

KubernetesVolume: TypeAlias = dict[str, Any]
"""
Kubernetes Volume as it appears in a Pod manifest.

Expected structure:
- name: str
- one volume source key (emptyDir, secret, configMap, ...)
"""

KubernetesObject: TypeAlias = dict[str, Any]
"""Arbitrary Kubernetes object as delivered by the API server."""

PatchOperation: TypeAlias = dict[str, Any]
"""
A single JSON Patch operation.

Expected structure:
- op: "add" | "replace"
- path: JSON Pointer
- value: JSON-serializable value
"""
