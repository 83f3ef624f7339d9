"""Raw WHOIS (port 43) client with IANA referral discovery."""
from .commons import WhoisTimeout, WhoisUnavailable

from typing import Dict, List, Mapping, Optional

import asyncio
import logging
import re

logger = logging.getLogger(__name__)

WHOIS_PORT: int = 43
MAX_RESPONSE_BYTES: int = 256 * 1024
READ_CHUNK_BYTES: int = 4096
IANA_WHOIS_SERVER: str = "whois.iana.org"

# Authoritative servers for common TLDs; anything else is discovered through IANA.
WHOIS_SERVERS: Dict[str, str] = {
    "com": "whois.verisign-grs.com",
    "net": "whois.verisign-grs.com",
    "org": "whois.pir.org",
    "io": "whois.nic.io",
    "co": "whois.nic.co",
    "info": "whois.afilias.net",
    "edu": "whois.educause.edu",
    "gov": "whois.nic.gov",
    "biz": "whois.neulevel.biz",
    "uk": "whois.nic.uk",
    "co.uk": "whois.nic.uk",
    "ca": "whois.cira.ca",
    "us": "whois.nic.us",
    "au": "whois.audns.net.au",
    "de": "whois.denic.de",
    "jp": "whois.jprs.jp",
    "in": "whois.registry.in",
    "br": "whois.registro.br",
    "pt": "whois.dns.pt",
    "fr": "whois.afnic.fr",
    "it": "whois.nic.it",
    "es": "whois.nic.es",
    "cn": "whois.cnnic.cn",
    "ru": "whois.tcinet.ru",
    "nl": "whois.domain-registry.nl",
    "be": "whois.dns.be",
    "ch": "whois.nic.ch",
    "dk": "whois.dk-hostmaster.dk",
    "se": "whois.iis.se",
}

REFERRAL_RE = re.compile(r"^\s*(?:whois|refer):\s*(\S+)\s*$", re.IGNORECASE | re.MULTILINE)


class WhoisClient:
    """Line-oriented WHOIS client: send ``<query>\\r\\n``, read until the peer closes."""

    def __init__(
        self,
        timeout_s: float = 10.0,
        servers: Optional[Mapping[str, str]] = None,
        iana_server: str = IANA_WHOIS_SERVER,
        port: int = WHOIS_PORT,
    ) -> None:
        self.timeout_s: float = timeout_s
        self.servers: Mapping[str, str] = WHOIS_SERVERS if servers is None else servers
        self.iana_server: str = iana_server
        self.port: int = port

    def server_for(self, tld: str) -> Optional[str]:
        """Return the known server for a public suffix, trying the full suffix then its last label."""
        tld = tld.lower().strip(".")
        if not tld:
            return None
        return self.servers.get(tld) or self.servers.get(tld.rsplit(".", 1)[-1])

    @staticmethod
    async def _read_capped(reader: asyncio.StreamReader, server: str) -> bytes:
        """Read until EOF, truncating at MAX_RESPONSE_BYTES."""
        chunks: List[bytes] = []
        total: int = 0
        while total < MAX_RESPONSE_BYTES:
            chunk: bytes = await reader.read(min(READ_CHUNK_BYTES, MAX_RESPONSE_BYTES - total))
            if not chunk:
                return b"".join(chunks)
            chunks.append(chunk)
            total += len(chunk)
        logger.warning("WHOIS response from %s truncated at %d bytes", server, MAX_RESPONSE_BYTES)
        return b"".join(chunks)

    async def query_server(self, server: str, query: str) -> str:
        """Send one query to one server and return the full response text.

        Args:
            server: WHOIS server hostname.
            query: Domain or TLD to look up.

        Returns:
            str: Decoded response.

        Raises:
            WhoisTimeout: If connect plus read exceeds the timeout.
            WhoisUnavailable: On connection errors.
        """
        writer: Optional[asyncio.StreamWriter] = None
        try:
            async with asyncio.timeout(self.timeout_s):
                reader, writer = await asyncio.open_connection(server, self.port)
                writer.write(f"{query}\r\n".encode("utf-8"))
                await writer.drain()
                data: bytes = await self._read_capped(reader, server)
        except TimeoutError as e:
            raise WhoisTimeout(f"WHOIS query to {server} timed out after {self.timeout_s}s") from e
        except (OSError, UnicodeError) as e:
            raise WhoisUnavailable(f"WHOIS query to {server} failed: {e}") from e
        finally:
            if writer is not None:
                writer.close()
                try:
                    await writer.wait_closed()
                except OSError:
                    pass
        return data.decode("utf-8", errors="replace")

    @staticmethod
    def parse_referral(response: str) -> Optional[str]:
        """Extract the authoritative server from an IANA response."""
        match: Optional[re.Match] = REFERRAL_RE.search(response)
        return match.group(1).strip() if match else None

    async def discover_server(self, tld: str) -> Optional[str]:
        """Ask IANA which server is authoritative for ``tld``."""
        response: str = await self.query_server(self.iana_server, tld.rsplit(".", 1)[-1])
        return self.parse_referral(response)

    async def lookup(self, domain: str, tld: str) -> str:
        """Look up a registrable domain.

        Uses the static table when the TLD is known and falls back to IANA
        referral when it is not, or when the direct query fails.

        Args:
            domain: Registrable domain (eTLD+1).
            tld: Its public suffix.

        Returns:
            str: Raw WHOIS response.

        Raises:
            WhoisUnavailable: If no server answered.
        """
        server: Optional[str] = self.server_for(tld)
        if server:
            try:
                return await self.query_server(server, domain)
            except WhoisUnavailable as e:
                logger.warning("Direct WHOIS query failed for %s: %s", domain, e)

        try:
            discovered: Optional[str] = await self.discover_server(tld)
        except WhoisUnavailable as e:
            raise WhoisUnavailable(f"IANA referral for .{tld} failed: {e}") from e
        if not discovered:
            raise WhoisUnavailable(f"IANA returned no WHOIS server for .{tld}")
        if discovered == server:
            raise WhoisUnavailable(f"WHOIS server {server} for .{tld} is unreachable")

        logger.info("Discovered WHOIS server %s for .%s", discovered, tld)
        return await self.query_server(discovered, domain)
