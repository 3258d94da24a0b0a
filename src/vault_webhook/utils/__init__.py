"""
Utility modules for the vault webhook.

This package contains helpers for:
- Kubernetes client configuration and binding list/watch
- Serving certificate loading and hot reload
"""
