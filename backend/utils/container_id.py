"""
Container ID Normalization Utilities

The engine reports 64-char full ids; logs, the dashboard and the hostname of a
container use the 12-char short form. Self identity comparisons accept both.
"""

import re

CONTAINER_ID_SHORT_LENGTH = 12

_FULL_ID_RE = re.compile(r'^[0-9a-f]{64}$')
_SHORT_ID_RE = re.compile(r'^[0-9a-f]{12}$')


def normalize_container_id(container_id: str) -> str:
    """
    Normalize container ID to 12-char short format.

    Examples:
        >>> normalize_container_id("abc123def456")
        "abc123def456"
        >>> normalize_container_id("abc123def456789...full64chars")
        "abc123def456"
    """
    return container_id[:CONTAINER_ID_SHORT_LENGTH]


def looks_like_container_id(value: str) -> bool:
    """True for a 12 or 64 char lowercase hex string"""
    if not value:
        return False
    return bool(_FULL_ID_RE.match(value) or _SHORT_ID_RE.match(value))


def same_container(id_a: str, id_b: str) -> bool:
    """
    Compare two container ids, tolerating short vs full form.

    Either side may be the 12-char prefix of the other.
    """
    if not id_a or not id_b:
        return False
    if id_a == id_b:
        return True
    return normalize_container_id(id_a) == normalize_container_id(id_b) and (
        len(id_a) == CONTAINER_ID_SHORT_LENGTH or len(id_b) == CONTAINER_ID_SHORT_LENGTH
    )
