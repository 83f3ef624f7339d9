"""Deterministic risk classification of the collected trust signals.

Every category is a pure function of its inputs and the reference tables.
Within and across sub-signals the most severe level wins, so making any
input worse can never make a verdict better.
"""
from .commons import RiskLevel
from .dns_probe import DnsSignals, MxRecord
from .domain_age import DomainAgeResult
from .geolocation import GeoInfo
from .reference import ReferenceData
from .tls import CertificateInfo

from dataclasses import dataclass
from typing import Iterable, List, Optional

SUSPICIOUS_TXT_MARKERS = ("redirect=", "include=")
EMAIL_AUTH_MARKERS = ("v=spf1", "dkim", "dmarc")
MAX_TXT_LENGTH: int = 255


@dataclass(frozen=True)
class RiskBundle:
    """Per-category verdicts plus the overall (most severe numeric) level."""
    ip_geolocation_risk: RiskLevel
    txt_records_risk: RiskLevel
    mx_records_risk: RiskLevel
    wildcard_risk: RiskLevel
    domain_age_risk: RiskLevel
    ssl_risk: RiskLevel

    @property
    def overall(self) -> RiskLevel:
        return RiskLevel.most_severe((
            self.ip_geolocation_risk,
            self.txt_records_risk,
            self.mx_records_risk,
            self.wildcard_risk,
            self.domain_age_risk,
            self.ssl_risk,
        ))

    def to_dict(self) -> dict:
        return {
            "ipGeolocationRisk": self.ip_geolocation_risk.value,
            "txtRecordsRisk": self.txt_records_risk.value,
            "mxRecordsRisk": self.mx_records_risk.value,
            "wildcardRisk": self.wildcard_risk.value,
            "domainAgeRisk": self.domain_age_risk.value,
            "sslRisk": self.ssl_risk.value,
            "overall": self.overall.value,
        }


def _contains_any(text: str, needles: Iterable[str]) -> bool:
    text_l: str = text.lower()
    return any(n and n.lower() in text_l for n in needles)


class RiskAggregator:
    """Maps trust signals to risk levels using an injected ReferenceData."""

    def __init__(self, reference: Optional[ReferenceData] = None) -> None:
        self.reference: ReferenceData = reference or ReferenceData()

    # ---- IP geolocation ----

    def country_risk(self, country: Optional[str]) -> RiskLevel:
        if not country:
            return RiskLevel.LOW
        country_l: str = country.strip().lower()
        if any(country_l == c.lower() for c in self.reference.high_risk_countries):
            return RiskLevel.HIGH
        if any(country_l == c.lower() for c in self.reference.medium_risk_countries):
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def isp_risk(self, isp: Optional[str]) -> RiskLevel:
        """Untrusted substring -> HIGH, trusted substring -> LOW, anything else -> MEDIUM."""
        if not isp:
            return RiskLevel.MEDIUM
        if _contains_any(isp, self.reference.untrusted_isps):
            return RiskLevel.HIGH
        if _contains_any(isp, self.reference.trusted_isps):
            return RiskLevel.LOW
        return RiskLevel.MEDIUM

    def ip_geolocation_risk(self, geo: GeoInfo) -> RiskLevel:
        return RiskLevel.most_severe((self.country_risk(geo.country), self.isp_risk(geo.isp)))

    def aggregate_ip_risk(self, geolocation: Iterable[GeoInfo]) -> RiskLevel:
        return RiskLevel.most_severe(self.ip_geolocation_risk(g) for g in geolocation)

    # ---- DNS records ----

    @staticmethod
    def txt_records_risk(txt_records: List[List[str]]) -> RiskLevel:
        """Classify TXT records.

        Args:
            txt_records: One list of character strings per TXT record.

        Returns:
            RiskLevel: HIGH on suspicious markers or oversized records, LOW
                when SPF/DKIM/DMARC is present, else MEDIUM.
        """
        records: List[str] = ["".join(parts).lower() for parts in txt_records]
        if any(
            any(marker in record for marker in SUSPICIOUS_TXT_MARKERS) or len(record) > MAX_TXT_LENGTH
            for record in records
        ):
            return RiskLevel.HIGH
        if any(any(marker in record for marker in EMAIL_AUTH_MARKERS) for record in records):
            return RiskLevel.LOW
        return RiskLevel.MEDIUM

    def mx_records_risk(self, mx_records: List[MxRecord]) -> RiskLevel:
        exchanges: List[str] = [mx.exchange.lower().rstrip(".") for mx in mx_records]
        if any(exchange.endswith(tuple(self.reference.risky_mx_tlds)) for exchange in exchanges):
            return RiskLevel.HIGH
        if all(_contains_any(exchange, self.reference.trusted_email_providers) for exchange in exchanges):
            return RiskLevel.LOW
        return RiskLevel.MEDIUM

    @staticmethod
    def wildcard_risk(is_wildcard: bool) -> RiskLevel:
        return RiskLevel.HIGH if is_wildcard else RiskLevel.LOW

    # ---- Domain age ----

    @staticmethod
    def domain_age_risk(domain_age: Optional[DomainAgeResult]) -> RiskLevel:
        if domain_age is None:
            return RiskLevel.INCONCLUSIVE
        if domain_age.age_years < 1:
            return RiskLevel.HIGH
        if domain_age.age_years <= 5:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    # ---- TLS ----

    def ssl_risk(self, certificate: Optional[CertificateInfo]) -> RiskLevel:
        """Classify the TLS certificate.

        Missing, untrusted-chain and expired certificates are HIGH whatever
        the issuer. Otherwise an untrusted issuer is HIGH, a trusted one LOW,
        and the remaining certificates are MEDIUM (near expiry or unknown issuer).
        """
        if certificate is None or not certificate.chain_valid:
            return RiskLevel.HIGH
        if certificate.days_remaining <= 0:
            return RiskLevel.HIGH
        if _contains_any(certificate.issuer, self.reference.untrusted_issuers):
            return RiskLevel.HIGH
        if _contains_any(certificate.issuer, self.reference.trusted_issuers):
            return RiskLevel.LOW
        # unrecognised issuer, expiring soon or not
        return RiskLevel.MEDIUM

    # ---- Bundle ----

    def assess(
        self,
        dns: DnsSignals,
        domain_age: Optional[DomainAgeResult],
        certificate: Optional[CertificateInfo],
    ) -> RiskBundle:
        return RiskBundle(
            ip_geolocation_risk=self.aggregate_ip_risk(dns.geolocation),
            txt_records_risk=self.txt_records_risk(dns.txt_records),
            mx_records_risk=self.mx_records_risk(dns.mx_records),
            wildcard_risk=self.wildcard_risk(dns.is_wildcard),
            domain_age_risk=self.domain_age_risk(domain_age),
            ssl_risk=self.ssl_risk(certificate),
        )
