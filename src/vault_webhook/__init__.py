"""
Vault Webhook - a Kubernetes mutating admission webhook for Vault credentials.

The webhook injects a credentials sidecar and init container into pods whose
service account is granted database credentials by a
DatabaseCredentialBinding custom resource:
- Informer-backed cache of bindings
- Namespace and service account matching
- JSON Patch construction for volumes, mounts and sidecars
- Serving certificate hot reload
"""

__version__ = "0.1.0"
