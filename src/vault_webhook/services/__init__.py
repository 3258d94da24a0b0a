"""
Service layer for the vault webhook.

This module provides the mutation pipeline used by the admission handler,
separated from the HTTP layer.
"""

from .binding_cache import BindingCache, EventType, WatchEvent
from .binding_matcher import BindingMatcher, MatchedCredential
from .patch_builder import PatchBuilder, encode_patch

__all__ = [
    "BindingCache",
    "BindingMatcher",
    "EventType",
    "MatchedCredential",
    "PatchBuilder",
    "WatchEvent",
    "encode_patch",
]
