"""DNS posture probe: addresses, TXT, MX, wildcard catch-all and IP geolocation."""
from .commons import GeoLookupFailure
from .geolocation import GeoInfo, GeolocationClient
from .hostname import Hostname

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

import asyncio
import logging
import secrets
import time

import dns.asyncresolver
import dns.exception
import dns.resolver

logger = logging.getLogger(__name__)


class DnsErrorKind(Enum):
    NXDOMAIN = "NXDOMAIN"
    SERVFAIL = "SERVFAIL"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class MxRecord:
    exchange: str
    priority: int

    def to_dict(self) -> dict:
        return {"exchange": self.exchange, "priority": self.priority}


@dataclass(frozen=True)
class DnsResolution:
    """Outcome of the address lookup."""
    status: str
    error_kind: Optional[DnsErrorKind] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict:
        out: dict = {"status": self.status}
        if self.error_kind:
            out["errorKind"] = self.error_kind.value
        if self.message:
            out["message"] = self.message
        return out


RESOLVED = DnsResolution(status="success")


@dataclass
class DnsSignals:
    """DNS snapshot for one host. Every list may be empty."""
    addresses: List[str] = field(default_factory=list)
    geolocation: List[GeoInfo] = field(default_factory=list)
    txt_records: List[List[str]] = field(default_factory=list)
    mx_records: List[MxRecord] = field(default_factory=list)
    is_wildcard: bool = False
    resolution: DnsResolution = RESOLVED

    def to_dict(self) -> dict:
        return {
            "addresses": list(self.addresses),
            "ipGeolocationInfo": [g.to_dict() for g in self.geolocation],
            "txtRecords": [list(r) for r in self.txt_records],
            "mxRecords": [m.to_dict() for m in self.mx_records],
            "isWildcardDomain": self.is_wildcard,
            "resolutionResult": self.resolution.to_dict(),
        }


class DnsProbe:
    """Runs the DNS sub-fetches for a host concurrently."""

    def __init__(
        self,
        resolver: dns.asyncresolver.Resolver,
        geolocation: Optional[GeolocationClient] = None,
        timeout_s: float = 5.0,
    ) -> None:
        self.resolver: dns.asyncresolver.Resolver = resolver
        self.geolocation: Optional[GeolocationClient] = geolocation
        self.timeout_s: float = timeout_s

    @staticmethod
    def classify_error(error: Exception) -> DnsErrorKind:
        """Map a dnspython exception to an error kind."""
        if isinstance(error, dns.resolver.NXDOMAIN):
            return DnsErrorKind.NXDOMAIN
        if isinstance(error, dns.resolver.NoNameservers):
            return DnsErrorKind.SERVFAIL
        if isinstance(error, dns.exception.Timeout):
            return DnsErrorKind.TIMEOUT
        return DnsErrorKind.UNKNOWN

    async def _query(self, name: str, rdtype: str):
        return await self.resolver.resolve(name, rdtype, lifetime=self.timeout_s)

    async def resolve_addresses(self, host: str) -> Tuple[List[str], DnsResolution]:
        """Resolve A records, falling back to AAAA when there is no A answer.

        Returns:
            Tuple[List[str], DnsResolution]: Addresses (possibly empty) and the outcome.
        """
        last_error: Optional[Exception] = None
        for rdtype in ("A", "AAAA"):
            try:
                answer = await self._query(host, rdtype)
                addresses: List[str] = [rdata.address for rdata in answer]
                if addresses:
                    return addresses, RESOLVED
            except dns.resolver.NoAnswer as e:
                last_error = e
                continue
            except dns.exception.DNSException as e:
                last_error = e
                break

        kind: DnsErrorKind = self.classify_error(last_error) if last_error else DnsErrorKind.UNKNOWN
        message: str = str(last_error) if last_error else f"No address records for {host}"
        logger.warning("DNS resolution failed for %s: %s (%s)", host, kind.value, message)
        return [], DnsResolution(status="error", error_kind=kind, message=message)

    async def txt_records(self, host: str) -> List[List[str]]:
        try:
            answer = await self._query(host, "TXT")
        except dns.exception.DNSException:
            return []
        return [[s.decode("utf-8", errors="replace") for s in rdata.strings] for rdata in answer]

    async def mx_records(self, host: str) -> List[MxRecord]:
        try:
            answer = await self._query(host, "MX")
        except dns.exception.DNSException:
            return []
        return [
            MxRecord(exchange=rdata.exchange.to_text().rstrip(".").lower(), priority=int(rdata.preference))
            for rdata in answer
        ]

    @staticmethod
    def wildcard_probe_name(host: str) -> str:
        """A subdomain of ``host`` that should not exist."""
        return f"nonexistent-{int(time.time() * 1000)}-{secrets.token_hex(4)}.{host}"

    async def is_wildcard(self, host: str) -> bool:
        """True if a random, nonexistent subdomain resolves to an address."""
        probe: str = self.wildcard_probe_name(host)
        try:
            answer = await self._query(probe, "A")
        except dns.exception.DNSException:
            return False
        wildcard: bool = len(answer) > 0
        if wildcard:
            logger.info("Wildcard DNS detected for %s", host)
        return wildcard

    async def _geolocate_one(self, ip: str) -> Optional[GeoInfo]:
        try:
            return await self.geolocation.lookup(ip)
        except GeoLookupFailure as e:
            logger.warning("%s", e)
            return None

    async def geolocate(self, addresses: List[str]) -> List[GeoInfo]:
        """Geolocate all addresses concurrently; failed lookups are left out."""
        if not self.geolocation or not addresses:
            return []
        results = await asyncio.gather(*(self._geolocate_one(ip) for ip in addresses))
        return [r for r in results if r is not None]

    async def _addresses_with_geo(self, host: str) -> Tuple[List[str], DnsResolution, List[GeoInfo]]:
        addresses, resolution = await self.resolve_addresses(host)
        return addresses, resolution, await self.geolocate(addresses)

    async def probe(self, hostname: Hostname) -> DnsSignals:
        """Collect all DNS signals for a host.

        Args:
            hostname: Resolved target hostname.

        Returns:
            DnsSignals: Snapshot; resolution failures are annotated, not raised.
        """
        if hostname.is_ip:
            return DnsSignals(addresses=[hostname.host], geolocation=await self.geolocate([hostname.host]))

        host: str = hostname.host
        async with asyncio.TaskGroup() as tg:
            addr_task = tg.create_task(self._addresses_with_geo(host))
            txt_task = tg.create_task(self.txt_records(host))
            mx_task = tg.create_task(self.mx_records(host))
            wildcard_task = tg.create_task(self.is_wildcard(host))

        addresses, resolution, geo = addr_task.result()
        return DnsSignals(
            addresses=addresses,
            geolocation=geo,
            txt_records=txt_task.result(),
            mx_records=mx_task.result(),
            is_wildcard=wildcard_task.result(),
            resolution=resolution,
        )
