"""
Admission webhooks for the vault webhook.

This package serves the mutating admission endpoint that injects Vault
credential sidecars into pods.
"""

from .mutate import PodMutator, create_webhook_app

__all__ = ["PodMutator", "create_webhook_app"]
