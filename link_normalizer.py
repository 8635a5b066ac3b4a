"""
Canonicalisation of job-posting links before they are fetched.
"""

from __future__ import annotations

from urllib.parse import urlsplit

# Hosts that route candidates through an application form rather than the
# posting itself.
APPLY_PROXY_DOMAINS = ("applytojob.com",)
APPLY_SEGMENT = "/apply"


def _strip_trailing_apply(path: str) -> str:
    """Drop a final ``apply`` path segment, keeping the posting path intact."""
    head, _, last = path.rstrip("/").rpartition("/")
    return head if last == "apply" else path


def normalize_link(raw: str) -> str:
    """
    Strip apply-flow suffixes, query strings and fragments from a job link.

    Args:
        raw: Link as it appears in the source table.

    Returns:
        ``origin + path`` with any ``/apply`` tail removed, or the input
        unchanged when it is not an absolute URL.
    """
    try:
        parts = urlsplit(raw)
        hostname = parts.hostname or ""
    except ValueError:
        return raw
    if not parts.scheme or not hostname:
        return raw

    origin = f"{parts.scheme}://{parts.netloc.rpartition('@')[2]}"
    path = parts.path

    if any(domain in hostname for domain in APPLY_PROXY_DOMAINS):
        return origin + _strip_trailing_apply(path)

    index = path.find(APPLY_SEGMENT)
    if index != -1:
        return origin + path[:index]

    return origin + path
