"""TLS certificate inspection that still reads invalid certificates."""
from .commons import TlsHandshakeError, TlsTimeout

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import asyncio
import logging
import math
import ssl

from cryptography import x509
from cryptography.x509.oid import NameOID

logger = logging.getLogger(__name__)

UNKNOWN_ISSUER: str = "Unknown issuer"


@dataclass(frozen=True)
class CertificateInfo:
    """Leaf certificate summary plus the handshake's trust outcome."""
    valid_from: Optional[datetime]
    valid_to: Optional[datetime]
    issuer: str
    chain_valid: bool
    days_remaining: int
    error: Optional[str] = None

    def to_dict(self) -> dict:
        out: dict = {
            "validFrom": self.valid_from.isoformat() if self.valid_from else None,
            "validTo": self.valid_to.isoformat() if self.valid_to else None,
            "issuer": self.issuer,
            "valid": self.chain_valid,
            "daysRemaining": self.days_remaining,
        }
        if self.error:
            out["error"] = self.error
        return out


def days_until(valid_to: Optional[datetime], now: datetime) -> int:
    """Whole days until expiry, rounded up; negative once expired, 0 when unknown."""
    if valid_to is None:
        return 0
    return math.ceil((valid_to - now).total_seconds() / 86400)


def parse_certificate(der: bytes, chain_valid: bool, now: datetime, error: Optional[str] = None) -> CertificateInfo:
    """Build a CertificateInfo from a DER-encoded leaf certificate.

    Args:
        der: Certificate bytes as returned by ``getpeercert(binary_form=True)``.
        chain_valid: Whether a verifying handshake succeeded.
        now: Reference time for ``days_remaining``.
        error: Verification message when ``chain_valid`` is False.

    Returns:
        CertificateInfo: Parsed summary.

    Raises:
        TlsHandshakeError: If the bytes are not a certificate.
    """
    try:
        cert: x509.Certificate = x509.load_der_x509_certificate(der)
    except ValueError as e:
        raise TlsHandshakeError(f"Peer certificate could not be parsed: {e}") from e

    valid_from: datetime = cert.not_valid_before_utc
    valid_to: datetime = cert.not_valid_after_utc
    orgs = cert.issuer.get_attributes_for_oid(NameOID.ORGANIZATION_NAME)
    issuer: str = str(orgs[0].value) if orgs else UNKNOWN_ISSUER

    return CertificateInfo(
        valid_from=valid_from,
        valid_to=valid_to,
        issuer=issuer,
        chain_valid=chain_valid,
        days_remaining=days_until(valid_to, now),
        error=error,
    )


class TlsInspector:
    """Reads the leaf certificate of ``host:443`` and whether its chain verifies."""

    def __init__(
        self,
        timeout_s: float = 5.0,
        port: int = 443,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        cafile: Optional[str] = None,
    ) -> None:
        self.timeout_s: float = timeout_s
        self.port: int = port
        self.clock: Callable[[], datetime] = clock
        # PEM bundle replacing the system trust store; None uses the system store
        self.cafile: Optional[str] = cafile

    def _context(self, verify: bool) -> ssl.SSLContext:
        context: ssl.SSLContext = ssl.create_default_context(cafile=self.cafile)
        if not verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    async def fetch_certificate(self, host: str, verify: bool) -> bytes:
        """Complete a handshake and return the peer's DER certificate.

        Raises:
            ssl.SSLCertVerificationError: When ``verify`` is set and the chain is not trusted.
            TlsTimeout: When connect plus handshake exceed the timeout.
            TlsHandshakeError: On any other failure, or when no certificate is presented.
        """
        writer: Optional[asyncio.StreamWriter] = None
        try:
            async with asyncio.timeout(self.timeout_s):
                _, writer = await asyncio.open_connection(
                    host,
                    self.port,
                    ssl=self._context(verify),
                    server_hostname=host,
                    ssl_shutdown_timeout=self.timeout_s,
                )
            ssl_object: Optional[ssl.SSLObject] = writer.get_extra_info("ssl_object")
            der: Optional[bytes] = ssl_object.getpeercert(binary_form=True) if ssl_object else None
        except TimeoutError as e:
            raise TlsTimeout(f"TLS handshake with {host} timed out after {self.timeout_s}s") from e
        except ssl.SSLCertVerificationError:
            raise
        except OSError as e:
            raise TlsHandshakeError(f"TLS connection to {host} failed: {e}") from e
        finally:
            if writer is not None:
                writer.close()
                try:
                    await writer.wait_closed()
                except OSError:
                    pass
        if not der:
            raise TlsHandshakeError(f"{host} presented no certificate")
        return der

    async def inspect(self, host: str) -> CertificateInfo:
        """Inspect the certificate of ``host`` without rejecting invalid ones.

        Args:
            host: Target hostname (used for SNI and hostname verification).

        Returns:
            CertificateInfo: Certificate summary with ``chain_valid`` set from
                the verifying handshake.

        Raises:
            TlsHandshakeError: If no TLS session could be established at all.
        """
        chain_valid: bool = True
        error: Optional[str] = None
        try:
            der: bytes = await self.fetch_certificate(host, verify=True)
        except ssl.SSLCertVerificationError as e:
            chain_valid = False
            error = e.verify_message or str(e)
            logger.info("Certificate for %s failed verification: %s", host, error)
            try:
                der = await self.fetch_certificate(host, verify=False)
            except ssl.SSLCertVerificationError as e2:
                raise TlsHandshakeError(f"Unverified handshake with {host} failed: {e2}") from e2
        return parse_certificate(der, chain_valid=chain_valid, now=self.clock(), error=error)
