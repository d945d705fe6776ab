"""URL and domain helpers shared by the seller matcher and the merge engine."""

from __future__ import annotations

from typing import Sequence
from urllib.parse import urlsplit

COMPOUND_TLDS: Sequence[str] = ("co.uk", "com.au", "co.nz", "co.jp", "com.br", "co.za")


def normalize_url(url: str) -> str:
    """Make a scheme-less or protocol-relative URL absolute."""
    url = (url or "").strip()
    if not url:
        return ""
    lowered = url.lower()
    if lowered.startswith(("http://", "https://")):
        return url
    if url.startswith("//"):
        return f"https:{url}"
    if "://" not in url:
        return f"https://{url}"
    return url


def _strip_www(hostname: str) -> str:
    return hostname[4:] if hostname.startswith("www.") else hostname


def extract_domain(url: str) -> str:
    """Hostname without a leading ``www.``; the raw input when it is not a URL."""
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return url
    if not hostname:
        return url
    return _strip_www(hostname.lower())


def extract_root_domain(hostname: str) -> str:
    """Reduce a hostname to its registrable domain.

    ``auctions.example.co.uk`` -> ``example.co.uk``,
    ``shop.potterauctions.com`` -> ``potterauctions.com``.
    """
    domain = _strip_www((hostname or "").lower().strip().rstrip("."))
    parts = domain.split(".")
    if len(parts) <= 2:
        return domain
    if ".".join(parts[-2:]) in COMPOUND_TLDS:
        return ".".join(parts[-3:])
    return ".".join(parts[-2:])


def root_domain_for_url(url: str) -> str:
    return extract_root_domain(extract_domain(normalize_url(url)))


def dedup_key(url: str) -> str:
    """Identity key for merging: lowercased, trailing slashes removed."""
    return (url or "").strip().lower().rstrip("/")


__all__ = [
    "COMPOUND_TLDS",
    "dedup_key",
    "extract_domain",
    "extract_root_domain",
    "normalize_url",
    "root_domain_for_url",
]
