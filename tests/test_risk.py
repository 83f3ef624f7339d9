"""
Tests for risk classification rules and reference table loading.
"""

from __future__ import annotations

import itertools
from datetime import date

import pytest

from trustscan.commons import RiskLevel
from trustscan.dns_probe import DnsSignals, MxRecord
from trustscan.domain_age import DomainAgeResult
from trustscan.geolocation import GeoInfo
from trustscan.reference import ReferenceData
from trustscan.risk import RiskAggregator, RiskBundle
from trustscan.tls import CertificateInfo

LOW, MEDIUM, HIGH, INCONCLUSIVE = RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.INCONCLUSIVE


@pytest.fixture
def aggregator() -> RiskAggregator:
    return RiskAggregator()


def _cert(issuer: str = "Let's Encrypt", chain_valid: bool = True, days: int = 60) -> CertificateInfo:
    return CertificateInfo(valid_from=None, valid_to=None, issuer=issuer, chain_valid=chain_valid, days_remaining=days)


def _age(years: int) -> DomainAgeResult:
    return DomainAgeResult(method="WHOIS", creation_date=date(2000, 1, 1), age_years=years)


# ---- severity ordering ----

def test_most_severe_ignores_inconclusive():
    assert RiskLevel.most_severe([LOW, INCONCLUSIVE, MEDIUM]) is MEDIUM
    assert RiskLevel.most_severe([INCONCLUSIVE]) is LOW
    assert RiskLevel.most_severe([]) is LOW
    assert RiskLevel.most_severe([HIGH, LOW]) is HIGH


# ---- TXT ----

@pytest.mark.parametrize(
    "records, expected",
    [
        ([["v=spf1 include:_spf.example.com ~all"]], LOW),
        ([["v=DMARC1; p=reject"]], LOW),
        ([["google-site-verification=abc"]], MEDIUM),
        ([], MEDIUM),
        ([["v=spf1 redirect=_spf.evil.test"]], HIGH),
        ([["include=something"]], HIGH),
        ([["x" * 200, "y" * 100]], HIGH),  # joined length over 255
        ([["v=spf1 -all"], ["x" * 256]], HIGH),
    ],
)
def test_txt_records_risk(records, expected):
    assert RiskAggregator.txt_records_risk(records) is expected


# ---- MX ----

@pytest.mark.parametrize(
    "exchanges, expected",
    [
        (["aspmx.l.google.com", "alt1.aspmx.l.google.com"], LOW),
        (["example-com.mail.protection.outlook.com"], LOW),
        (["mail.example.com"], MEDIUM),
        (["aspmx.l.google.com", "mx.example.com"], MEDIUM),
        (["mx.freehost.tk"], HIGH),
        (["aspmx.l.google.com", "mx.cheap.ML."], HIGH),
        ([], LOW),
    ],
)
def test_mx_records_risk(aggregator, exchanges, expected):
    records = [MxRecord(exchange=e, priority=10 * i) for i, e in enumerate(exchanges)]
    assert aggregator.mx_records_risk(records) is expected


# ---- wildcard / age ----

def test_wildcard_risk():
    assert RiskAggregator.wildcard_risk(True) is HIGH
    assert RiskAggregator.wildcard_risk(False) is LOW


@pytest.mark.parametrize(
    "years, expected",
    [(-1, HIGH), (0, HIGH), (1, MEDIUM), (3, MEDIUM), (5, MEDIUM), (6, LOW), (30, LOW)],
)
def test_domain_age_risk(years, expected):
    assert RiskAggregator.domain_age_risk(_age(years)) is expected


def test_domain_age_unknown_is_inconclusive():
    assert RiskAggregator.domain_age_risk(None) is INCONCLUSIVE


# ---- SSL ----

@pytest.mark.parametrize(
    "certificate, expected",
    [
        (None, HIGH),
        (_cert(chain_valid=False), HIGH),
        (_cert(days=0), HIGH),
        (_cert(days=-3), HIGH),
        (_cert(issuer="Self-Signed Corp"), HIGH),
        (_cert(issuer="DigiCert Inc"), LOW),
        (_cert(issuer="Let's Encrypt", days=5), LOW),
        (_cert(issuer="Acme Regional CA", days=10), MEDIUM),
        (_cert(issuer="Acme Regional CA", days=300), MEDIUM),
        (_cert(issuer="Unknown issuer"), MEDIUM),
    ],
)
def test_ssl_risk(aggregator, certificate, expected):
    assert aggregator.ssl_risk(certificate) is expected


def test_ssl_expired_trusted_issuer_is_high(aggregator):
    """Expiry outranks issuer reputation."""
    assert aggregator.ssl_risk(_cert(issuer="DigiCert Inc", days=0)) is HIGH


# ---- IP geolocation ----

@pytest.mark.parametrize(
    "geo, expected",
    [
        (GeoInfo("1.1.1.1", "United States", None, "Cloudflare, Inc."), LOW),
        (GeoInfo("1.1.1.2", "United States", None, "Small Hosting LLC"), MEDIUM),
        (GeoInfo("1.1.1.3", "united states", None, None), MEDIUM),
        (GeoInfo("1.1.1.4", "Brazil", None, "Amazon.com"), MEDIUM),
        (GeoInfo("1.1.1.5", "Russia", None, "Google LLC"), HIGH),
        (GeoInfo("1.1.1.6", "Germany", None, "Stark Industries Solutions"), HIGH),
    ],
)
def test_ip_geolocation_risk(aggregator, geo, expected):
    assert aggregator.ip_geolocation_risk(geo) is expected


def test_aggregate_ip_risk_takes_worst(aggregator):
    geos = [
        GeoInfo("1.1.1.1", "United States", None, "Cloudflare"),
        GeoInfo("2.2.2.2", "Iran", None, "Cloudflare"),
    ]
    assert aggregator.aggregate_ip_risk(geos) is HIGH
    assert aggregator.aggregate_ip_risk([]) is LOW


def test_aggregate_ip_risk_is_monotonic(aggregator):
    """Adding or worsening an address never lowers the verdict."""
    pool = [
        GeoInfo("1.1.1.1", "United States", None, "Cloudflare"),
        GeoInfo("2.2.2.2", "Vietnam", None, "Cloudflare"),
        GeoInfo("3.3.3.3", "United States", None, "Unknown ISP"),
        GeoInfo("4.4.4.4", "North Korea", None, "Cloudflare"),
    ]
    for size in range(len(pool) + 1):
        for subset in itertools.combinations(pool, size):
            base = aggregator.aggregate_ip_risk(subset)
            for extra in pool:
                worse = aggregator.aggregate_ip_risk(list(subset) + [extra])
                assert worse.severity >= base.severity


def test_reference_data_is_injectable():
    reference = ReferenceData(high_risk_countries=("Atlantis",), trusted_isps=("Tiny ISP",))
    aggregator = RiskAggregator(reference)
    assert aggregator.ip_geolocation_risk(GeoInfo("1.1.1.1", "Atlantis", None, "Tiny ISP")) is HIGH
    assert aggregator.ip_geolocation_risk(GeoInfo("1.1.1.1", "Russia", None, "Tiny ISP")) is LOW


# ---- bundle ----

def test_assess_and_overall(aggregator):
    dns = DnsSignals(
        addresses=["1.1.1.1"],
        geolocation=[GeoInfo("1.1.1.1", "United States", None, "Cloudflare")],
        txt_records=[["v=spf1 include:_spf.google.com ~all"]],
        mx_records=[MxRecord("aspmx.l.google.com", 1)],
        is_wildcard=False,
    )
    bundle = aggregator.assess(dns, _age(12), _cert())

    assert bundle == RiskBundle(LOW, LOW, LOW, LOW, LOW, LOW)
    assert bundle.overall is LOW

    risky = aggregator.assess(dns, None, _cert(days=0))
    assert risky.domain_age_risk is INCONCLUSIVE
    assert risky.ssl_risk is HIGH
    assert risky.overall is HIGH
    assert risky.to_dict()["domainAgeRisk"] == "INCONCLUSIVE"
    assert risky.to_dict()["overall"] == "HIGH"


def test_overall_ignores_inconclusive():
    bundle = RiskBundle(LOW, MEDIUM, LOW, LOW, INCONCLUSIVE, LOW)
    assert bundle.overall is MEDIUM


# ---- reference loading ----

def test_reference_load_overrides_some_tables(tmp_path):
    path = tmp_path / "reference.yaml"
    path.write_text("high_risk_countries:\n  - Atlantis\nrisky_mx_tlds: ['.zz']\n", encoding="utf-8")

    reference = ReferenceData.load(str(path))

    assert reference.high_risk_countries == ("Atlantis",)
    assert reference.risky_mx_tlds == (".zz",)
    assert reference.trusted_issuers == ReferenceData().trusted_issuers


def test_reference_load_rejects_unknown_table(tmp_path):
    path = tmp_path / "reference.yaml"
    path.write_text("bogus_table: [a]\n", encoding="utf-8")

    with pytest.raises(ValueError):
        ReferenceData.load(str(path))


def test_reference_load_rejects_scalar(tmp_path):
    path = tmp_path / "reference.yaml"
    path.write_text("trusted_isps: Cloudflare\n", encoding="utf-8")

    with pytest.raises(ValueError):
        ReferenceData.load(str(path))


def test_reference_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ReferenceData.load(str(tmp_path / "missing.yaml"))
