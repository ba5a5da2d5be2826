"""Collision-free identifiers for newly minted credentials."""
from typing import Iterable

DEFAULT_CREDENTIAL_ID_BASE = "hockeyapp-api-token"


def generate_credential_id(existing_ids: Iterable[str],
                           base: str = DEFAULT_CREDENTIAL_ID_BASE) -> str:
    """
    Compute the first free credential id.

    Args:
        existing_ids: Ids already present in the target scope
        base: Base name for migrated credentials

    Returns:
        base if it is free, otherwise the first free of base-2, base-3, ...

    Only name uniqueness is guaranteed here. Reusing a credential that
    already holds the same token is the caller's job.
    """
    taken = set(existing_ids)
    if base not in taken:
        return base

    suffix = 2
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"
