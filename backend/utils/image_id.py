"""
Image ID Normalization Utilities

Docker image IDs come in multiple formats:
- Full SHA256: "sha256:abc123def456..." (71 chars)
- Short ID: "abc123def456" (12 chars)

Update detection compares full ids; short ids are only for display.
"""


def normalize_image_id(image_id: str) -> str:
    """
    Normalize image ID to 12-char short format without sha256: prefix.

    Examples:
        >>> normalize_image_id("sha256:abc123def456")
        "abc123def456"
    """
    return image_id.replace('sha256:', '')[:12]


def full_image_id(image_id: str) -> str:
    """
    Return the full image id with the sha256: prefix.

    Inspect data always carries the prefix, pull results sometimes do not.
    """
    if not image_id:
        return image_id
    if image_id.startswith('sha256:'):
        return image_id
    return f"sha256:{image_id}"


def image_ids_differ(recorded: str, resolved: str) -> bool:
    """True when two image ids refer to different images (full id comparison)"""
    return full_image_id(recorded) != full_image_id(resolved)
