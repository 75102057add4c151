# File: site_lens/utils.py
"""site_lens.utils: URL helpers shared by discovery, the orchestrator and the matcher."""

from __future__ import annotations

import ipaddress
from typing import List, Sequence
from urllib.parse import urlparse, urlunparse

__all__: Sequence[str] = (
    "bare_domain",
    "domain_variants",
    "normalize_url",
    "path_depth",
)


def bare_domain(domain: str) -> str:
    """Strips scheme, path and trailing slash: ``https://Example.com/`` -> ``example.com``."""
    value = domain.strip()
    if "://" not in value:
        value = f"https://{value}"
    return urlparse(value).netloc.lower()


def domain_variants(domain: str) -> List[str]:
    """Returns the domain plus its ``www.`` twin (or the bare twin for ``www.`` hosts).

    IP addresses and ``localhost`` have no twin.
    """
    host = bare_domain(domain)
    hostname = urlparse(f"//{host}").hostname or host
    if hostname == "localhost" or _is_ip(hostname):
        return [host]
    if host.startswith("www."):
        return [host, host[4:]]
    return [host, f"www.{host}"]


def _is_ip(hostname: str) -> bool:
    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return True


def normalize_url(url: str) -> str:
    """Normalizes a discovered URL for de-duplication.

    The fragment is dropped and a trailing slash is removed unless the path is the
    domain root. Scheme and host are lower-cased; the query is kept as-is.
    """
    parsed = urlparse(url.strip())
    if not parsed.scheme or not parsed.netloc:
        return url.strip()
    path = parsed.path or "/"
    if path != "/":
        path = path.rstrip("/") or "/"
    normalized = urlunparse(
        (parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.params, parsed.query, "")
    )
    return normalized


def path_depth(url: str) -> int:
    """Number of non-empty path segments; the domain root has depth 0."""
    return len([segment for segment in urlparse(url).path.split("/") if segment])

