"""Provider integrations for Portraitdex.

This package contains the external data sources:
- Base: Abstract interfaces and DTOs
- Chain: JSON-RPC client and ABI helpers for the portrait registries
- Portrait API: Profile enrichment adapter
"""

from portraitdex_core.providers.base import (
    ChainReader,
    ProfileLookup,
    ProfileRecord,
    PublishInfo,
    PublishState,
)

__all__ = [
    "ChainReader",
    "ProfileLookup",
    "ProfileRecord",
    "PublishInfo",
    "PublishState",
]
