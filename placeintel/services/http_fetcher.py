"""Bounded outbound HTTP: one timeout, one retry on timeout, typed results."""
import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from placeintel.config import settings

logger = logging.getLogger(__name__)

SECRET_PARAM_RE = re.compile(r"((?:api_?key|apiKey|key|token|access_key)=)[^&]+", re.IGNORECASE)


def redact_url(url: str) -> str:
    """Mask credential query parameters so URLs are safe to log."""
    return SECRET_PARAM_RE.sub(r"\1***", str(url))


class FetchStatus(str, Enum):
    OK = "ok"
    TIMEOUT = "timeout"
    FAILED = "failed"


@dataclass
class FetchResult:
    """Outcome of a bounded fetch. ``response`` is set whenever a response arrived."""
    status: FetchStatus
    url: str
    response: Optional[httpx.Response] = None
    content: Optional[bytes] = None
    error: Optional[str] = None
    attempts: int = 1
    truncated: bool = False

    @property
    def ok(self) -> bool:
        return self.status == FetchStatus.OK

    @property
    def status_code(self) -> Optional[int]:
        return self.response.status_code if self.response is not None else None

    @property
    def headers(self) -> httpx.Headers:
        return self.response.headers if self.response is not None else httpx.Headers()


class BoundedFetcher:
    """
    Wraps a shared ``httpx.AsyncClient``.

    Only timeouts are retried, once, after ``retry_delay`` seconds. Any other
    failure (connection error, malformed URL, non-2xx) is returned immediately
    as FAILED.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: float = None,
        retry_delay: float = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self.retry_delay = retry_delay if retry_delay is not None else settings.http_retry_delay_seconds
        self._sleep = sleep

    async def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> FetchResult:
        """GET with the timeout/retry policy. Non-2xx responses are FAILED."""
        effective_timeout = timeout if timeout is not None else self.timeout
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self.client.get(
                    url,
                    params=params,
                    headers=headers,
                    timeout=effective_timeout,
                )
            except httpx.TimeoutException as exc:
                if attempt == 1:
                    logger.warning(f"Timeout fetching {redact_url(url)}, retrying in {self.retry_delay}s")
                    await self._sleep(self.retry_delay)
                    continue
                logger.warning(f"Timeout fetching {redact_url(url)} after {attempt} attempts")
                return FetchResult(FetchStatus.TIMEOUT, url, error=str(exc) or "timeout", attempts=attempt)
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                logger.warning(f"Request to {redact_url(url)} failed: {exc.__class__.__name__}")
                return FetchResult(FetchStatus.FAILED, url, error=exc.__class__.__name__, attempts=attempt)

            if response.is_success:
                return FetchResult(FetchStatus.OK, url, response=response, content=response.content, attempts=attempt)

            logger.warning(f"Upstream {redact_url(url)} returned HTTP {response.status_code}")
            return FetchResult(
                FetchStatus.FAILED,
                url,
                response=response,
                error=f"HTTP {response.status_code}",
                attempts=attempt,
            )

    async def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Optional[Any]:
        """GET and decode JSON; None on any failure or malformed body."""
        result = await self.get(url, params=params, headers=headers, timeout=timeout)
        if not result.ok:
            return None
        try:
            return result.response.json()
        except ValueError:
            logger.warning(f"Malformed JSON from {redact_url(url)}")
            return None

    async def get_limited(
        self,
        url: str,
        max_bytes: int,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        truncate: bool = True,
    ) -> FetchResult:
        """
        Stream a body up to ``max_bytes`` without following redirects.

        Args:
            url: Absolute URL to fetch
            max_bytes: Body size cap
            headers: Extra request headers
            timeout: Per-request timeout override
            truncate: Keep the first ``max_bytes`` when the body is larger;
                when False an oversized body is a FAILED result

        Returns:
            FetchResult whose ``content`` holds the (possibly truncated) body.
            3xx responses come back as OK with no content so callers can
            validate and follow the Location header themselves.
        """
        effective_timeout = timeout if timeout is not None else self.timeout
        try:
            async with self.client.stream(
                "GET",
                url,
                headers=headers,
                timeout=effective_timeout,
                follow_redirects=False,
            ) as response:
                if response.is_redirect:
                    return FetchResult(FetchStatus.OK, url, response=response, content=b"")
                if not response.is_success:
                    return FetchResult(FetchStatus.FAILED, url, response=response, error=f"HTTP {response.status_code}")

                declared = response.headers.get("content-length")
                if not truncate and declared and declared.isdigit() and int(declared) > max_bytes:
                    return FetchResult(FetchStatus.FAILED, url, response=response, error="body too large")

                chunks = []
                received = 0
                truncated = False
                async for chunk in response.aiter_bytes():
                    chunks.append(chunk)
                    received += len(chunk)
                    if received > max_bytes:
                        truncated = True
                        break

                if truncated and not truncate:
                    return FetchResult(FetchStatus.FAILED, url, response=response, error="body too large")

                body = b"".join(chunks)[:max_bytes]
                return FetchResult(FetchStatus.OK, url, response=response, content=body, truncated=truncated)
        except httpx.TimeoutException:
            logger.warning(f"Timeout fetching {redact_url(url)}")
            return FetchResult(FetchStatus.TIMEOUT, url, error="timeout")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning(f"Request to {redact_url(url)} failed: {exc.__class__.__name__}")
            return FetchResult(FetchStatus.FAILED, url, error=exc.__class__.__name__)
