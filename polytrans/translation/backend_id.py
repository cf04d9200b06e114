"""
Backend id classification.

A backend id is the string stored in the assistants mapping for a hop. Its
shape alone decides which kind of backend it addresses:
- provider_<id>        raw translation provider
- managed_<number>     managed assistant record
- anything else        vendor-native assistant id; the vendor is found later
                       by AssistantClientFactory
parse_backend_id is the only place this rule is implemented.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

PROVIDER_PREFIX = "provider_"
MANAGED_PREFIX = "managed_"


@dataclass(frozen=True)
class ProviderRef:
    raw: str
    provider_id: str


@dataclass(frozen=True)
class ManagedRef:
    raw: str
    # 0 when the part after the prefix is not a positive integer
    assistant_id: int


@dataclass(frozen=True)
class VendorAssistantRef:
    raw: str

    @property
    def assistant_id(self) -> str:
        return self.raw


BackendRef = Union[ProviderRef, ManagedRef, VendorAssistantRef]


def parse_backend_id(backend_id: Optional[str]) -> Optional[BackendRef]:
    """Classify a backend id; returns None for an empty id."""
    if not backend_id or not str(backend_id).strip():
        return None
    backend_id = str(backend_id).strip()

    if backend_id.startswith(PROVIDER_PREFIX):
        return ProviderRef(raw=backend_id, provider_id=backend_id[len(PROVIDER_PREFIX):])

    if backend_id.startswith(MANAGED_PREFIX):
        number = backend_id[len(MANAGED_PREFIX):]
        return ManagedRef(raw=backend_id, assistant_id=int(number) if number.isdigit() else 0)

    return VendorAssistantRef(raw=backend_id)


def provider_backend_id(provider_id: str) -> str:
    return PROVIDER_PREFIX + provider_id


def managed_backend_id(assistant_id: int) -> str:
    return f"{MANAGED_PREFIX}{assistant_id}"
