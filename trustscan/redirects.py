"""HTTP redirect tracing with explicit depth and cycle bounds."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set
from urllib.parse import urljoin

import logging

import httpx

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT: str = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/123.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class RedirectHop:
    url: str
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    type: str = "http"

    def to_dict(self) -> dict:
        return {"url": self.url, "statusCode": self.status_code, "headers": dict(self.headers), "type": self.type}


@dataclass
class RedirectChain:
    """Seed-to-destination path. Consecutive hops never share a URL."""
    chain: List[RedirectHop]
    final_url: str
    loop_detected: bool = False
    error: Optional[str] = None

    @property
    def total_redirects(self) -> int:
        return max(0, len(self.chain) - 1)

    def to_dict(self) -> dict:
        out: dict = {
            "chain": [hop.to_dict() for hop in self.chain],
            "finalUrl": self.final_url,
            "totalRedirects": self.total_redirects,
            "loopDetected": self.loop_detected,
        }
        if self.error:
            out["error"] = self.error
        return out


def normalize_url(url: str) -> str:
    """Prefix ``http://`` when the input has no scheme."""
    url = url.strip()
    return url if "://" in url else f"http://{url}"


def dedupe_consecutive(hops: List[RedirectHop]) -> List[RedirectHop]:
    """Drop hops whose URL equals the previous hop's URL (the first one is kept)."""
    deduped: List[RedirectHop] = []
    for hop in hops:
        if deduped and deduped[-1].url == hop.url:
            continue
        deduped.append(hop)
    return deduped


class RedirectTracer:
    """Follows redirects one response at a time, never letting the client auto-follow."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_redirects: int = 5,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout_s: float = 10.0,
    ) -> None:
        self.client: httpx.AsyncClient = client
        self.max_redirects: int = max_redirects
        self.user_agent: str = user_agent
        self.timeout_s: float = timeout_s

    async def trace(self, url: str) -> RedirectChain:
        """Trace the redirect path of ``url``.

        Stops on the first non-redirect response, after ``max_redirects``
        redirects, on a revisited URL, or on a transport error. None of these
        raise; the last URL reached becomes the final URL.

        Args:
            url: Seed URL or bare host.

        Returns:
            RedirectChain: Framed, deduplicated hop chain.
        """
        seed: str = normalize_url(url)
        headers: Dict[str, str] = {"User-Agent": self.user_agent, "Accept-Language": "en-US,en;q=0.9"}

        hops: List[RedirectHop] = []
        visited: Set[str] = {seed}
        current: str = seed
        terminal: Optional[RedirectHop] = None
        loop_detected: bool = False
        error: Optional[str] = None

        while True:
            if len(hops) >= self.max_redirects:
                logger.warning("Max redirects (%d) reached for %s", self.max_redirects, seed)
                break
            try:
                async with self.client.stream(
                    "GET", current, headers=headers, timeout=self.timeout_s, follow_redirects=False
                ) as resp:
                    status: int = resp.status_code
                    resp_headers: Dict[str, str] = {k.lower(): v for k, v in resp.headers.items()}
            except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
                error = f"Request to {current} failed: {e}"
                logger.warning("%s", error)
                break

            location: Optional[str] = resp_headers.get("location")
            if not (300 <= status < 400 and location):
                terminal = RedirectHop(url=current, status_code=status, headers=resp_headers)
                break

            hops.append(RedirectHop(url=current, status_code=status, headers=resp_headers))
            try:
                next_url: str = urljoin(current, location)
            except ValueError as e:
                error = f"Invalid redirect location {location!r} from {current}: {e}"
                logger.warning("%s", error)
                break
            if next_url in visited:
                logger.warning("Redirect loop back to %s from %s", next_url, current)
                current = next_url
                loop_detected = True
                break
            visited.add(next_url)
            current = next_url

        return RedirectChain(
            chain=self.frame(seed, hops, current, terminal),
            final_url=current,
            loop_detected=loop_detected,
            error=error,
        )

    @staticmethod
    def frame(seed: str, hops: List[RedirectHop], final_url: str, terminal: Optional[RedirectHop]) -> List[RedirectHop]:
        """Wrap recorded hops with synthetic seed/final hops and collapse repeats."""
        if not hops:
            if terminal is not None and terminal.url == seed:
                return [terminal]
            return [RedirectHop(url=seed, status_code=0)]

        chain: List[RedirectHop] = [RedirectHop(url=seed, status_code=200), *hops]
        if final_url != seed:
            chain.append(RedirectHop(url=final_url, status_code=200))
        return dedupe_consecutive(chain)
