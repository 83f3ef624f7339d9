"""
Pytest fixtures for trustscan tests. DNS answers come from an in-memory
resolver, and WHOIS/TLS peers are real sockets on 127.0.0.1.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

import dns.rdata
import dns.rdataclass
import dns.rdatatype
import dns.resolver
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

FIXED_NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)

Entry = Union[List[str], BaseException]


class FakeResolver:
    """Stand-in for dns.asyncresolver.Resolver backed by a record table.

    ``records`` maps ``(name, rdtype)`` to rdata texts or to an exception to
    raise. Names present with other types answer NoAnswer, unknown names
    answer NXDOMAIN. ``wildcard`` answers every ``nonexistent-*`` A query.
    """

    def __init__(self, records: Optional[Dict[Tuple[str, str], Entry]] = None, wildcard: Optional[List[str]] = None):
        self.records = records or {}
        self.wildcard = wildcard
        self.queries: List[Tuple[str, str]] = []

    async def resolve(self, qname, rdtype="A", lifetime=None, **kwargs):
        name = str(qname).rstrip(".")
        self.queries.append((name, rdtype))
        if name.startswith("nonexistent-") and self.wildcard is not None and rdtype == "A":
            entry: Optional[Entry] = self.wildcard
        else:
            entry = self.records.get((name, rdtype))
        if entry is None:
            if any(known == name for known, _ in self.records):
                raise dns.resolver.NoAnswer()
            raise dns.resolver.NXDOMAIN()
        if isinstance(entry, BaseException):
            raise entry
        rdclass = dns.rdataclass.IN
        return [dns.rdata.from_text(rdclass, dns.rdatatype.from_text(rdtype), text) for text in entry]


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def resolver_factory() -> Callable[..., FakeResolver]:
    return FakeResolver


def _self_signed(
    org: Optional[str],
    not_before: datetime,
    not_after: datetime,
    common_name: str = "localhost",
) -> Tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
    key = ec.generate_private_key(ec.SECP256R1())
    attrs = [x509.NameAttribute(NameOID.COMMON_NAME, common_name)]
    if org:
        attrs.append(x509.NameAttribute(NameOID.ORGANIZATION_NAME, org))
    name = x509.Name(attrs)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(common_name)]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )
    return cert, key


@pytest.fixture
def make_certificate():
    """Factory: ``make_certificate(org, valid_for=timedelta(...), now=...)`` -> (cert, key)."""

    def factory(
        org: Optional[str] = "Test Authority",
        valid_for: timedelta = timedelta(days=90),
        now: datetime = FIXED_NOW,
    ):
        not_after = now + valid_for
        not_before = min(now, not_after) - timedelta(days=30)
        return _self_signed(org, not_before, not_after)

    return factory


async def closed_port() -> int:
    """A local port with nothing listening on it."""
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()
    return port


@pytest.fixture
def unused_port() -> Callable[[], Awaitable[int]]:
    return closed_port
