"""
Tests for redirect tracing over a mocked HTTP transport.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Dict, List

import httpx

from trustscan.redirects import RedirectHop, RedirectTracer, dedupe_consecutive, normalize_url


def _trace(routes: Callable[[httpx.Request], httpx.Response], url: str, max_redirects: int = 5):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(routes)) as client:
            return await RedirectTracer(client, max_redirects=max_redirects, timeout_s=1).trace(url)

    return asyncio.run(scenario())


def _table(table: Dict[str, httpx.Response], seen: List[str]):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return table[str(request.url)]

    return handler


def _redirect(location: str, status: int = 301) -> httpx.Response:
    return httpx.Response(status, headers={"Location": location})


def test_trace_two_redirects_with_scheme_upgrade():
    seen: List[str] = []
    table = {
        "http://a.test/": _redirect("http://b.test/"),
        "http://b.test/": _redirect("https://b.test/"),
        "https://b.test/": httpx.Response(200, text="ok"),
    }

    result = _trace(_table(table, seen), "http://a.test/")

    assert [hop.url for hop in result.chain] == ["http://a.test/", "http://b.test/", "https://b.test/"]
    assert [hop.status_code for hop in result.chain] == [200, 301, 200]
    assert result.total_redirects == 2
    assert result.final_url == "https://b.test/"
    assert result.loop_detected is False
    assert result.error is None
    assert seen == ["http://a.test/", "http://b.test/", "https://b.test/"]


def test_trace_stops_at_max_redirects():
    seen: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        n = int(request.url.path.strip("/"))
        return _redirect(f"http://hop.test/{n + 1}", status=302)

    result = _trace(handler, "http://hop.test/0")

    assert len(seen) == 5
    assert result.final_url == "http://hop.test/5"
    assert result.total_redirects == 5
    urls = [hop.url for hop in result.chain]
    assert all(a != b for a, b in zip(urls, urls[1:]))


def test_trace_respects_configured_limit():
    def handler(request: httpx.Request) -> httpx.Response:
        n = int(request.url.path.strip("/"))
        return _redirect(f"/{n + 1}")

    result = _trace(handler, "http://hop.test/0", max_redirects=2)

    assert result.final_url == "http://hop.test/2"
    assert result.total_redirects == 2


def test_trace_without_redirect_keeps_observed_status():
    result = _trace(lambda request: httpx.Response(404), "example.test")

    assert result.chain == [RedirectHop(url="http://example.test", status_code=404, headers=result.chain[0].headers)]
    assert result.total_redirects == 0
    assert result.final_url == "http://example.test"


def test_trace_resolves_relative_location():
    seen: List[str] = []
    table = {
        "http://site.test/start": _redirect("/login", status=302),
        "http://site.test/login": httpx.Response(200),
    }

    result = _trace(_table(table, seen), "http://site.test/start")

    assert result.final_url == "http://site.test/login"
    assert result.total_redirects == 1


def test_trace_detects_loop():
    seen: List[str] = []
    table = {
        "http://a.test/": _redirect("http://b.test/"),
        "http://b.test/": _redirect("http://a.test/"),
    }

    result = _trace(_table(table, seen), "http://a.test/")

    assert result.loop_detected is True
    assert result.final_url == "http://a.test/"
    assert seen == ["http://a.test/", "http://b.test/"]
    assert result.to_dict()["loopDetected"] is True


def test_trace_transport_error_is_recorded():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = _trace(handler, "http://down.test/")

    assert result.chain == [RedirectHop(url="http://down.test/", status_code=0)]
    assert result.final_url == "http://down.test/"
    assert "connection refused" in result.error
    assert result.to_dict()["error"] == result.error


def test_trace_malformed_location_keeps_recorded_hops():
    """A Location that cannot be joined ends tracing softly with the hops seen so far."""
    seen: List[str] = []
    table = {
        "http://a.test/": _redirect("http://b.test/"),
        "http://b.test/": _redirect("http://[bad/", status=302),
    }

    result = _trace(_table(table, seen), "http://a.test/")

    assert [hop.url for hop in result.chain] == ["http://a.test/", "http://b.test/"]
    assert [hop.status_code for hop in result.chain] == [200, 302]
    assert result.final_url == "http://b.test/"
    assert "Invalid redirect location" in result.error
    assert seen == ["http://a.test/", "http://b.test/"]


def test_trace_invalid_url_is_recorded():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.InvalidURL("bad url")

    result = _trace(handler, "http://broken.test/")

    assert result.chain == [RedirectHop(url="http://broken.test/", status_code=0)]
    assert "bad url" in result.error


def test_trace_redirect_without_location_is_terminal():
    result = _trace(lambda request: httpx.Response(302), "http://odd.test/")

    assert [hop.status_code for hop in result.chain] == [302]
    assert result.total_redirects == 0


def test_trace_sends_browser_headers():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["user-agent"] = request.headers["User-Agent"]
        return httpx.Response(200)

    _trace(handler, "http://ua.test/")

    assert captured["user-agent"].startswith("Mozilla/5.0")


def test_dedupe_consecutive():
    hops = [
        RedirectHop("http://a.test/", 200),
        RedirectHop("http://a.test/", 301),
        RedirectHop("http://b.test/", 301),
        RedirectHop("http://a.test/", 200),
    ]
    assert [(h.url, h.status_code) for h in dedupe_consecutive(hops)] == [
        ("http://a.test/", 200),
        ("http://b.test/", 301),
        ("http://a.test/", 200),
    ]


def test_normalize_url():
    assert normalize_url("example.com/path") == "http://example.com/path"
    assert normalize_url(" https://example.com ") == "https://example.com"
