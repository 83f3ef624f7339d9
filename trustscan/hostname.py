"""Hostname normalisation and public-suffix-aware domain extraction."""
from .commons import InvalidHostname

from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import urlsplit

import ipaddress
import re
import tldextract

# ICANN section only, from the snapshot bundled with tldextract (no network fetch).
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=(), include_psl_private_domains=False)

HOST_RE = re.compile(r"^[a-z0-9_](?:[a-z0-9_-]{0,62}[a-z0-9_])?(?:\.[a-z0-9_](?:[a-z0-9_-]{0,62}[a-z0-9_])?)*$")


@dataclass(frozen=True)
class Hostname:
    """Normalised target host."""
    host: str
    domain: str
    tld: str
    is_ip: bool = False

    def to_dict(self) -> dict:
        return {"host": self.host, "domain": self.domain, "tld": self.tld}


def _to_ascii(host: str) -> str:
    try:
        return host.encode("idna").decode("ascii")
    except UnicodeError:
        return host


def _strip_www(host: str) -> str:
    while host.startswith("www.") and "." in host[4:]:
        host = host[4:]
    return host


def _parse_ip(host: str) -> Optional[Union[ipaddress.IPv4Address, ipaddress.IPv6Address]]:
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        return None


def extract_hostname(value: str) -> str:
    """Reduce a URL or bare host to a lowercase hostname.

    Assumes ``http://`` when no scheme is present, drops userinfo, port, path
    and trailing dot, and strips leading ``www.`` labels. Applying it to its
    own output returns the same value.

    Args:
        value: URL or hostname.

    Returns:
        str: Hostname, or "" when nothing usable could be parsed.
    """
    if not value:
        return ""
    s: str = value.strip()
    if not s:
        return ""
    # bare IP literals (unbracketed IPv6 would not survive urlsplit)
    bare: str = s.rstrip(".").lower()
    if _parse_ip(bare) is not None:
        return bare
    if "://" not in s:
        s = f"http://{s}"
    try:
        host: Optional[str] = urlsplit(s).hostname
    except ValueError:
        return ""
    if not host:
        return ""
    host = host.strip().rstrip(".").lower()
    if _parse_ip(host) is not None:
        return host
    host = _to_ascii(host)
    if not HOST_RE.match(host):
        return ""
    return _strip_www(host)


def resolve_hostname(value: str) -> Hostname:
    """Normalise input and split it into registrable domain and public suffix.

    Args:
        value: URL or hostname.

    Returns:
        Hostname: host, registrable domain and TLD.

    Raises:
        InvalidHostname: For malformed input, hosts without an ICANN suffix,
            or non-public IP literals.
    """
    host: str = extract_hostname(value)
    if not host:
        raise InvalidHostname(f"Cannot parse a hostname from {value!r}")

    ip = _parse_ip(host)
    if ip is not None:
        if not ip.is_global:
            raise InvalidHostname(f"Refusing non-public address {host}")
        return Hostname(host=host, domain=host, tld="", is_ip=True)

    ext = _EXTRACT(host)
    if not ext.suffix or not ext.domain:
        raise InvalidHostname(f"No registrable domain in {host!r}")
    return Hostname(host=host, domain=f"{ext.domain}.{ext.suffix}", tld=ext.suffix)
