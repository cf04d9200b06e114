"""
Translation module - multi-hop translation of post content

This module provides:
- backend_id: classification of mapping entries into provider, managed and vendor assistant refs
- path_resolver: routing rules and path resolution
- path_validator: pre-flight checks of backend ids and paths
- step_executor: one hop on one backend
- path_executor: a whole path, hop after hop
- manager: translation jobs for stored posts
"""

from polytrans.translation.backend_id import (
    ManagedRef,
    ProviderRef,
    VendorAssistantRef,
    parse_backend_id,
)
from polytrans.translation.path_resolver import RoutingRule, resolve_path
