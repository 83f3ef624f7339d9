"""IP geolocation lookups against the ipgeolocation.io API."""
from .commons import GeoLookupFailure

from dataclasses import dataclass
from typing import Any, Dict, Optional

import logging

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeoInfo:
    """Location and network owner of one address."""
    ip: str
    country: Optional[str]
    city: Optional[str]
    isp: Optional[str]

    def to_dict(self) -> dict:
        return {"ip": self.ip, "country": self.country, "city": self.city, "isp": self.isp}


class GeolocationClient:
    """Thin client for ``GET /ipgeo``."""

    def __init__(self, client: httpx.AsyncClient, base_url: str, api_key: Optional[str], timeout_s: float = 5.0) -> None:
        self.client: httpx.AsyncClient = client
        self.base_url: str = base_url.rstrip("/")
        self.api_key: Optional[str] = api_key
        self.timeout_s: float = timeout_s

    @staticmethod
    def _text(data: Dict[str, Any], key: str) -> Optional[str]:
        value: Any = data.get(key)
        return str(value) if value not in (None, "") else None

    async def lookup(self, ip: str) -> GeoInfo:
        """Geolocate a single address.

        Args:
            ip: IPv4 or IPv6 address.

        Returns:
            GeoInfo: Country, city and ISP.

        Raises:
            GeoLookupFailure: No API key, transport error, bad status or bad body.
        """
        if not self.api_key:
            raise GeoLookupFailure("No geolocation API key configured")
        try:
            resp: httpx.Response = await self.client.get(
                f"{self.base_url}/ipgeo",
                params={"ip": ip, "apiKey": self.api_key, "fields": "geo,isp"},
                timeout=self.timeout_s,
            )
            resp.raise_for_status()
            data: Any = resp.json()
        except httpx.HTTPError as e:
            raise GeoLookupFailure(f"Geolocation request for {ip} failed: {e}") from e
        except ValueError as e:
            raise GeoLookupFailure(f"Geolocation response for {ip} is not JSON") from e
        if not isinstance(data, dict):
            raise GeoLookupFailure(f"Unexpected geolocation payload for {ip}")

        return GeoInfo(
            ip=self._text(data, "ip") or ip,
            country=self._text(data, "country_name"),
            city=self._text(data, "city"),
            isp=self._text(data, "isp"),
        )
