"""URI classification helpers for table roots."""

from __future__ import annotations

from urllib.parse import urlparse


def is_uri(root: str) -> bool:
    """Return whether a root is a ``scheme://`` URI rather than a local path.

    Returns
    -------
    bool
        True for URIs such as ``s3://bucket/path`` or ``file:///data``.
    """
    parsed = urlparse(root)
    return bool(parsed.scheme) and root.startswith(f"{parsed.scheme}://")


__all__ = ["is_uri"]
