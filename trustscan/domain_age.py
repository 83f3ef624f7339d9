"""Domain age from WHOIS creation dates, with a DNS SOA-serial fallback.

Two strategies are tried in order of trust:

1. WHOIS. The raw response is matched against an ordered table of
   registry-specific patterns; the first one that yields a plausible date
   wins.
2. DNS fallback. Many zones use a ``YYYYMMDDnn`` SOA serial. When the
   leading eight digits decode to a plausible date it is used as an
   approximate creation date. This is a heuristic: serials are not required
   to encode dates, and the date reflects the last zone change rather than
   the registration, so results from this path are approximate.

WHOIS gets a bounded wait; when it runs out the WHOIS task is cancelled (closing
its socket) and the SOA path is tried.
"""
from .commons import WhoisUnavailable, run_with_deadline
from .hostname import Hostname
from .whois import WhoisClient

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Optional, Pattern, Tuple

import logging
import math
import re

import dns.asyncresolver
import dns.exception
from dateutil import parser as dateparse

logger = logging.getLogger(__name__)

MIN_YEAR: int = 1980
DAYS_PER_YEAR: float = 365.25

METHOD_WHOIS: str = "WHOIS"
METHOD_DNS: str = "DNS Fallback"


@dataclass(frozen=True)
class DomainAgeResult:
    """Creation date and whole-year age of a domain."""
    method: str
    creation_date: date
    age_years: int

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "creationDate": self.creation_date.isoformat(),
            "age": self.age_years,
        }


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def calculate_age(created: date, now: datetime) -> int:
    """Whole years between ``created`` and ``now`` using 365.25-day years."""
    days: int = (now.date() - created).days
    return math.floor(days / DAYS_PER_YEAR)


def is_plausible(value: date, today: date) -> bool:
    return MIN_YEAR <= value.year and value <= today


# ---------- WHOIS creation-date rules ----------

def _parse_free_date(value: str) -> Optional[date]:
    try:
        parsed: datetime = dateparse.parse(value.strip())
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def _parse_iso_date(value: str) -> Optional[date]:
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


# Ordered: earlier rules are more specific to well-formed registries.
DATE_RULES: Tuple[Tuple[Pattern[str], Callable[[str], Optional[date]]], ...] = (
    (re.compile(r"Creation Date:\s*(.+)", re.IGNORECASE), _parse_free_date),
    (re.compile(r"created:\s*(.+)", re.IGNORECASE), _parse_free_date),
    (re.compile(r"Registration Time:\s*(.+)", re.IGNORECASE), _parse_free_date),
    (re.compile(r"Domain Create Date:\s*(.+)", re.IGNORECASE), _parse_free_date),
    (re.compile(r"Registered on:\s*(.+)", re.IGNORECASE), _parse_free_date),
    (re.compile(r"registered:\s*(\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2}:\d{2}\s*[+-]\d{2}:?\d{2})", re.IGNORECASE),
     _parse_free_date),
    (re.compile(r"registered:\s*(\d{4}-\d{2}-\d{2})", re.IGNORECASE), _parse_iso_date),
    (re.compile(r"Created:\s*(\d{4}-\d{2}-\d{2})", re.IGNORECASE), _parse_iso_date),
)

_LINE_HINT_RE = re.compile(r"registered:|creation|created", re.IGNORECASE)
_ISO_DATE_RE = re.compile(r"(\d{4}-\d{2}-\d{2})")


def extract_creation_date(text: str, today: Optional[date] = None) -> Optional[date]:
    """Find the registration date in a raw WHOIS response.

    Args:
        text: Raw WHOIS text.
        today: Upper bound for plausible dates (defaults to the current UTC date).

    Returns:
        Optional[date]: The first plausible date, or None.
    """
    if not text:
        return None
    today = today or utcnow().date()

    for pattern, parse in DATE_RULES:
        match: Optional[re.Match] = pattern.search(text)
        if not match:
            continue
        parsed: Optional[date] = parse(match.group(1))
        if parsed and is_plausible(parsed, today):
            return parsed
        logger.debug("Unusable date %r for pattern %s", match.group(1), pattern.pattern)

    # Last resort: any ISO date on a line that talks about creation.
    for line in text.splitlines():
        if not _LINE_HINT_RE.search(line):
            continue
        iso: Optional[re.Match] = _ISO_DATE_RE.search(line)
        if iso:
            parsed = _parse_iso_date(iso.group(1))
            if parsed and is_plausible(parsed, today):
                return parsed
    return None


# ---------- SOA serial heuristic ----------

def parse_soa_serial(serial: int, today: Optional[date] = None) -> Optional[date]:
    """Decode the leading ``YYYYMMDD`` of an SOA serial, if it looks like a date.

    Args:
        serial: SOA serial number.
        today: Upper bound (defaults to the current UTC date).

    Returns:
        Optional[date]: Decoded date, or None when the serial is not date-shaped.
    """
    today = today or utcnow().date()
    digits: str = str(serial)
    if not digits.isdigit() or len(digits) < 8:
        return None
    year, month, day = int(digits[0:4]), int(digits[4:6]), int(digits[6:8])
    if not MIN_YEAR <= year <= today.year:
        return None
    if not 1 <= month <= 12:
        return None
    try:
        decoded: date = date(year, month, day)
    except ValueError:
        return None
    return decoded if decoded <= today else None


# ---------- Resolver ----------

class DomainAgeResolver:
    """Races WHOIS against a deadline and falls back to the SOA serial."""

    def __init__(
        self,
        whois: WhoisClient,
        resolver: dns.asyncresolver.Resolver,
        whois_max_wait_s: float = 8.0,
        dns_timeout_s: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.whois: WhoisClient = whois
        self.resolver: dns.asyncresolver.Resolver = resolver
        self.whois_max_wait_s: float = whois_max_wait_s
        self.dns_timeout_s: float = dns_timeout_s
        self.clock: Callable[[], datetime] = clock

    async def whois_age(self, hostname: Hostname) -> Optional[DomainAgeResult]:
        """Age from the WHOIS creation date, or None."""
        try:
            text: str = await self.whois.lookup(hostname.domain, hostname.tld)
        except WhoisUnavailable as e:
            logger.warning("WHOIS unavailable for %s: %s", hostname.domain, e)
            return None
        except Exception as e:
            logger.exception("WHOIS lookup failed for %s: %s", hostname.domain, e)
            return None
        now: datetime = self.clock()
        created: Optional[date] = extract_creation_date(text, today=now.date())
        if created is None:
            logger.info("No creation date in WHOIS response for %s", hostname.domain)
            return None
        return DomainAgeResult(method=METHOD_WHOIS, creation_date=created, age_years=calculate_age(created, now))

    async def soa_serial(self, domain: str) -> Optional[int]:
        try:
            answer = await self.resolver.resolve(domain, "SOA", lifetime=self.dns_timeout_s)
        except dns.exception.DNSException as e:
            logger.info("SOA lookup failed for %s: %s", domain, e)
            return None
        for rdata in answer:
            return int(rdata.serial)
        return None

    async def dns_age(self, hostname: Hostname) -> Optional[DomainAgeResult]:
        """Approximate age from a date-shaped SOA serial, or None."""
        serial: Optional[int] = await self.soa_serial(hostname.domain)
        if serial is None:
            return None
        now: datetime = self.clock()
        created: Optional[date] = parse_soa_serial(serial, today=now.date())
        if created is None:
            logger.info("SOA serial %s of %s does not encode a date", serial, hostname.domain)
            return None
        return DomainAgeResult(method=METHOD_DNS, creation_date=created, age_years=calculate_age(created, now))

    async def resolve(self, hostname: Hostname) -> Optional[DomainAgeResult]:
        """Return the domain's age, or None when it cannot be determined.

        Args:
            hostname: Resolved target hostname.

        Returns:
            Optional[DomainAgeResult]: WHOIS result if it arrives in time, else
                the SOA-serial approximation, else None.
        """
        if hostname.is_ip:
            return None

        result: Optional[DomainAgeResult] = await run_with_deadline(
            self.whois_age(hostname), self.whois_max_wait_s
        )
        if result is not None:
            return result

        logger.info("Falling back to SOA serial for %s", hostname.domain)
        return await self.dns_age(hostname)
