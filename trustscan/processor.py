"""Processor: gathers trust signals for a URL in parallel and classifies them.

This module provides:
- AnalysisReport: the raw signal bundle for one URL.
- Processor: builds its collaborators explicitly, runs the DNS, domain-age,
  TLS and redirect branches concurrently with per-branch failure isolation,
  scores the result, and optionally serves requests from a Redis channel.
"""
from .commons import Channel, HTTPClient, InvalidHostname, RedisClient, TrustScanError
from .config import Config
from .dns_probe import DnsProbe, DnsSignals
from .domain_age import DomainAgeResolver, DomainAgeResult
from .geolocation import GeolocationClient
from .hostname import Hostname, resolve_hostname
from .redirects import RedirectChain, RedirectHop, RedirectTracer, normalize_url
from .reference import ReferenceData
from .risk import RiskAggregator, RiskBundle
from .tls import CertificateInfo, TlsInspector
from .whois import WhoisClient

from dataclasses import dataclass, field
from typing import Awaitable, Dict, Optional, Tuple, TypeVar

import asyncio
import json
import logging

import dns.asyncresolver
import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class AnalysisReport:
    """Raw trust signals for one URL."""
    url: str
    hostname: Hostname
    redirects: RedirectChain
    dns: DnsSignals
    domain_age: Optional[DomainAgeResult]
    ssl: Optional[CertificateInfo]
    diagnostics: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "hostname": self.hostname.to_dict(),
            "redirects": self.redirects.to_dict(),
            "dns": self.dns.to_dict(),
            "domainAge": self.domain_age.to_dict() if self.domain_age else None,
            "ssl": self.ssl.to_dict() if self.ssl else None,
            "diagnostics": dict(self.diagnostics),
        }


class Processor:
    """Run the signal branches for a URL and score them."""

    def __init__(
        self,
        config: Optional[Config] = None,
        reference: Optional[ReferenceData] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        resolver: Optional[dns.asyncresolver.Resolver] = None,
        dns_probe: Optional[DnsProbe] = None,
        domain_age: Optional[DomainAgeResolver] = None,
        tls: Optional[TlsInspector] = None,
        redirects: Optional[RedirectTracer] = None,
    ) -> None:
        self.config: Config = config or Config.default()
        timeouts = self.config.timeouts

        self._owns_http: bool = http_client is None
        self.http: httpx.AsyncClient = http_client or HTTPClient.create(timeouts.http_s)

        if resolver is None and (dns_probe is None or domain_age is None):
            resolver = Processor.make_resolver(timeouts.dns_s)

        self.dns_probe: DnsProbe = dns_probe or DnsProbe(
            resolver,
            GeolocationClient(
                self.http,
                base_url=self.config.geolocation.base_url,
                api_key=self.config.geolocation.api_key,
                timeout_s=timeouts.geolocation_s,
            ),
            timeout_s=timeouts.dns_s,
        )
        self.domain_age: DomainAgeResolver = domain_age or DomainAgeResolver(
            WhoisClient(timeout_s=timeouts.whois_s),
            resolver,
            whois_max_wait_s=timeouts.whois_max_wait_s,
            dns_timeout_s=timeouts.dns_s,
        )
        self.tls: TlsInspector = tls or TlsInspector(timeout_s=timeouts.tls_s)
        self.redirects: RedirectTracer = redirects or RedirectTracer(
            self.http,
            max_redirects=self.config.redirects.max_redirects,
            user_agent=self.config.redirects.user_agent,
            timeout_s=timeouts.http_s,
        )

        if reference is None and self.config.reference.path:
            reference = ReferenceData.load(self.config.reference.path)
        self.risk: RiskAggregator = RiskAggregator(reference)

    @staticmethod
    def make_resolver(timeout_s: float) -> dns.asyncresolver.Resolver:
        """System resolver with a short per-query timeout."""
        resolver = dns.asyncresolver.Resolver()
        resolver.timeout = timeout_s
        resolver.lifetime = timeout_s
        return resolver

    async def aclose(self) -> None:
        """Close the HTTP client if this Processor created it."""
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> "Processor":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @staticmethod
    async def _isolated(name: str, aw: Awaitable[T], fallback: T, diagnostics: Dict[str, str]) -> T:
        """Await one branch; any failure is logged, recorded and replaced by ``fallback``."""
        try:
            return await aw
        except TrustScanError as e:
            logger.warning("[%s] %s", name, e)
            diagnostics[name] = str(e)
        except Exception as e:
            logger.exception("[%s] unexpected failure", name)
            diagnostics[name] = f"{type(e).__name__}: {e}"
        return fallback

    async def analyze(self, url: str) -> AnalysisReport:
        """Collect all trust signals for ``url``.

        Args:
            url: URL or bare hostname.

        Returns:
            AnalysisReport: Signals; failed sources are empty/None with a diagnostic.

        Raises:
            InvalidHostname: If no public hostname can be derived from ``url``.
        """
        hostname: Hostname = resolve_hostname(url)
        seed: str = normalize_url(url)
        diagnostics: Dict[str, str] = {}

        async with asyncio.TaskGroup() as tg:
            redirects_task = tg.create_task(self._isolated(
                "redirects",
                self.redirects.trace(seed),
                RedirectChain(chain=[RedirectHop(url=seed, status_code=0)], final_url=seed),
                diagnostics,
            ))
            dns_task = tg.create_task(self._isolated("dns", self.dns_probe.probe(hostname), DnsSignals(), diagnostics))
            age_task = tg.create_task(self._isolated("domainAge", self.domain_age.resolve(hostname), None, diagnostics))
            ssl_task = tg.create_task(self._isolated("ssl", self.tls.inspect(hostname.host), None, diagnostics))

        redirects: RedirectChain = redirects_task.result()
        dns_signals: DnsSignals = dns_task.result()
        domain_age: Optional[DomainAgeResult] = age_task.result()

        if redirects.error and "redirects" not in diagnostics:
            diagnostics["redirects"] = redirects.error
        if not dns_signals.resolution.ok and "dns" not in diagnostics:
            diagnostics["dns"] = dns_signals.resolution.message or dns_signals.resolution.status
        if domain_age is None and not hostname.is_ip and "domainAge" not in diagnostics:
            diagnostics["domainAge"] = "No creation date from WHOIS or SOA serial"

        return AnalysisReport(
            url=url,
            hostname=hostname,
            redirects=redirects,
            dns=dns_signals,
            domain_age=domain_age,
            ssl=ssl_task.result(),
            diagnostics=diagnostics,
        )

    def score(self, report: AnalysisReport) -> RiskBundle:
        """Classify a report's signals."""
        return self.risk.assess(report.dns, report.domain_age, report.ssl)

    async def evaluate(self, url: str) -> Tuple[AnalysisReport, RiskBundle]:
        report: AnalysisReport = await self.analyze(url)
        return report, self.score(report)

    async def handle(self, url: str) -> dict:
        """Evaluate one URL into the JSON-ready payload published by the worker."""
        try:
            report, risk = await self.evaluate(url)
        except InvalidHostname as e:
            logger.warning("Rejected %r: %s", url, e)
            return {"url": url, "error": str(e)}
        logger.info("%s -> %s", url, risk.overall.value)
        return {"report": report.to_dict(), "risk": risk.to_dict()}

    async def start(self, redis: RedisClient, listening_channel: Channel = Channel.ANALYZE) -> None:
        """Serve analysis requests published on ``listening_channel``."""
        logger.info("Listening for URLs on '%s'", listening_channel.value)
        async for message in redis.subscribe(listening_channel):
            url: str = message.strip()
            if not url:
                continue
            payload: dict = await self.handle(url)
            await redis.publish(Channel.REPORT, json.dumps(payload))
