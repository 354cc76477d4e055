import asyncio

import httpx

from placeintel.services.http_fetcher import FetchStatus, redact_url


def test_redact_url_masks_credentials():
    url = "https://api.geoapify.com/v2/places?apiKey=secret123&limit=5"
    assert redact_url(url) == "https://api.geoapify.com/v2/places?apiKey=***&limit=5"
    assert "abc" not in redact_url("https://api.opencagedata.com/geocode/v1/json?q=1+2&key=abc")


def test_timeout_is_retried_once(make_fetcher):
    calls = []
    sleeps = []

    def handler(request):
        calls.append(request.url)
        if len(calls) == 1:
            raise httpx.ReadTimeout("slow", request=request)
        return httpx.Response(200, json={"ok": True})

    async def record_sleep(seconds):
        sleeps.append(seconds)

    fetcher = make_fetcher(handler, sleep=record_sleep, retry_delay=1.0)
    result = asyncio.run(fetcher.get("https://example.com/data"))

    assert result.ok
    assert result.attempts == 2
    assert len(calls) == 2
    assert sleeps == [1.0]


def test_second_timeout_gives_up(make_fetcher):
    calls = []

    def handler(request):
        calls.append(request.url)
        raise httpx.ConnectTimeout("slow", request=request)

    fetcher = make_fetcher(handler)
    result = asyncio.run(fetcher.get("https://example.com/data"))

    assert result.status == FetchStatus.TIMEOUT
    assert len(calls) == 2


def test_non_timeout_errors_fail_immediately(make_fetcher):
    calls = []

    def handler(request):
        calls.append(request.url)
        return httpx.Response(503)

    fetcher = make_fetcher(handler)
    result = asyncio.run(fetcher.get("https://example.com/data"))

    assert result.status == FetchStatus.FAILED
    assert result.status_code == 503
    assert len(calls) == 1


def test_connection_error_is_not_retried(make_fetcher):
    calls = []

    def handler(request):
        calls.append(request.url)
        raise httpx.ConnectError("refused", request=request)

    fetcher = make_fetcher(handler)
    result = asyncio.run(fetcher.get("https://example.com/data"))

    assert result.status == FetchStatus.FAILED
    assert len(calls) == 1


def test_get_json_returns_none_for_malformed_body(make_fetcher):
    fetcher = make_fetcher(lambda request: httpx.Response(200, content=b"<html>"))
    assert asyncio.run(fetcher.get_json("https://example.com/data")) is None


def test_get_limited_truncates_large_bodies(make_fetcher):
    fetcher = make_fetcher(lambda request: httpx.Response(200, content=b"x" * 100))
    result = asyncio.run(fetcher.get_limited("https://example.com/page", max_bytes=10))

    assert result.ok
    assert result.truncated
    assert result.content == b"x" * 10


def test_get_limited_rejects_oversize_when_not_truncating(make_fetcher):
    fetcher = make_fetcher(lambda request: httpx.Response(200, content=b"x" * 100))
    result = asyncio.run(fetcher.get_limited("https://example.com/img.jpg", max_bytes=10, truncate=False))

    assert result.status == FetchStatus.FAILED
    assert result.error == "body too large"


def test_get_limited_does_not_follow_redirects(make_fetcher):
    calls = []

    def handler(request):
        calls.append(str(request.url))
        return httpx.Response(302, headers={"location": "https://example.com/elsewhere"})

    fetcher = make_fetcher(handler)
    result = asyncio.run(fetcher.get_limited("https://example.com/start", max_bytes=1000))

    assert result.ok
    assert result.response.is_redirect
    assert result.headers["location"] == "https://example.com/elsewhere"
    assert calls == ["https://example.com/start"]


def test_malformed_url_is_a_failed_result(make_fetcher):
    calls = []

    def handler(request):
        calls.append(request.url)
        return httpx.Response(200)

    fetcher = make_fetcher(handler)

    plain = asyncio.run(fetcher.get("https://example.com/a\x01b.jpg"))
    streamed = asyncio.run(fetcher.get_limited("https://example.com/a\x01b.jpg", 1024))

    assert plain.status == FetchStatus.FAILED
    assert streamed.status == FetchStatus.FAILED
    assert calls == []
