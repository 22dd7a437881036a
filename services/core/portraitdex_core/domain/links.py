"""Link and avatar reference helpers.

Avatar references are stored scheme-qualified ("ipfs://<cid>" or
"ar://<tx>") and turned into gateway URLs only when served.
"""

from typing import Optional
from urllib.parse import quote

IPFS_SCHEME = "ipfs://"
ARWEAVE_SCHEME = "ar://"


def build_profile_link(base_url: str, username: str) -> str:
    """Public profile page of a raw on-chain username."""
    return f"{base_url.rstrip('/')}/{quote(username, safe='')}"


def avatar_reference_for(cid: Optional[str], arweave_tx: Optional[str]) -> Optional[str]:
    """Pick the avatar reference, preferring the content-addressed pointer."""
    if cid and cid.strip():
        return f"{IPFS_SCHEME}{cid.strip()}"
    if arweave_tx and arweave_tx.strip():
        return f"{ARWEAVE_SCHEME}{arweave_tx.strip()}"
    return None


def resolve_avatar_url(
    reference: Optional[str],
    ipfs_gateway_url: str,
    arweave_gateway_url: str,
) -> Optional[str]:
    """Turn a stored avatar reference into a fetchable URL.

    Unknown schemes are returned unchanged.
    """
    if not reference:
        return None
    if reference.startswith(IPFS_SCHEME):
        return ipfs_gateway_url + reference[len(IPFS_SCHEME):]
    if reference.startswith(ARWEAVE_SCHEME):
        return arweave_gateway_url + reference[len(ARWEAVE_SCHEME):]
    return reference
