"""
Source trust tiers and domain helpers.

Tier 1 hosts (video, code, maker and contest platforms) are always allowed.
Tier 2 hosts (large social networks) are allowed only when corroborated.
Tier 3 hosts (closed or ephemeral social platforms) are never accepted.
Hosts on no list are treated like Tier 1 websites.
"""

from typing import Iterable, Optional, Set
from urllib.parse import urlparse

TIER1_HOSTS = frozenset({
    "youtube.com", "youtu.be", "github.com", "indiehackers.com", "devpost.com", "kaggle.com",
})

TIER2_HOSTS = frozenset({
    "twitter.com", "x.com", "reddit.com", "linkedin.com",
})

TIER3_HOSTS = frozenset({
    "facebook.com", "tiktok.com", "instagram.com", "discord.com", "t.me", "telegram.me",
})

X_HOSTS = frozenset({"twitter.com", "x.com"})

SELF_PUBLISHING_HOSTS = frozenset({"medium.com", "substack.com"})

# Second-level labels under country-code TLDs
MULTI_PART_SUFFIXES = frozenset({
    "co.uk", "org.uk", "gov.uk", "ac.uk",
    "com.au", "net.au", "org.au", "edu.au", "gov.au",
    "co.nz", "org.nz", "gov.nz", "ac.nz",
})

TIER_1 = 1
TIER_2 = 2
TIER_3 = 3


def hostname(url: str) -> Optional[str]:
    """Lowercase host without a leading 'www.', or None for unparseable URLs."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    if not host:
        return None
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def host_matches(host: Optional[str], hosts: Iterable[str]) -> bool:
    """Exact match or subdomain of any listed host."""
    if not host:
        return False
    return any(host == h or host.endswith("." + h) for h in hosts)


def source_tier(url: str) -> int:
    """Trust tier for a URL; unlisted hosts count as Tier 1."""
    host = hostname(url)
    if host_matches(host, TIER3_HOSTS):
        return TIER_3
    if host_matches(host, TIER2_HOSTS):
        return TIER_2
    return TIER_1


def is_tier1_platform(url: str) -> bool:
    return host_matches(hostname(url), TIER1_HOSTS)


def is_social(url: str) -> bool:
    return source_tier(url) != TIER_1


def is_x_url(url: str) -> bool:
    return host_matches(hostname(url), X_HOSTS)


def registrable_domain(url: str) -> Optional[str]:
    """
    Approximate the registrable domain (last two labels, or three under a
    known multi-part suffix such as co.uk).
    """
    host = hostname(url)
    if not host:
        return None
    parts = host.split(".")
    if len(parts) <= 2:
        return host
    last_two = ".".join(parts[-2:])
    if last_two in MULTI_PART_SUFFIXES and len(parts) >= 3:
        return ".".join(parts[-3:])
    return last_two


def distinct_domains(urls: Iterable[str]) -> Set[str]:
    return {d for d in (registrable_domain(u) for u in urls) if d}


def is_self_published_blog(url: str) -> bool:
    """Medium, Substack, blog.* hosts and /blog paths."""
    host = hostname(url)
    if not host:
        return False
    if host_matches(host, SELF_PUBLISHING_HOSTS) or host.startswith("blog."):
        return True
    try:
        path = urlparse(url).path.lower()
    except ValueError:
        return False
    return "/blog" in path
