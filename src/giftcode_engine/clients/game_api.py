from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import time
from typing import Any, Callable

import aiohttp

from ..core.classify import SUCCESS_CODE, categorize_response
from ..core.config import GameApiConfig
from ..core.errors import ProtocolError
from ..core.ports import Sleeper
from ..core.signing import encode_signed_form
from ..core.types import FailureCategory, UpstreamResponse
from .session import SessionStore


def open_http_session(config: GameApiConfig) -> aiohttp.ClientSession:
    """HTTP session for one or more ``GameApiClient``s; cookies are handled by ``SessionStore``."""
    return aiohttp.ClientSession(
        cookie_jar=aiohttp.DummyCookieJar(),
        timeout=aiohttp.ClientTimeout(total=config.timeout_seconds),
        headers={
            "Origin": config.web_base_url,
            "Referer": f"{config.web_base_url}/",
            "User-Agent": config.user_agent,
        },
    )


def epoch_millis() -> int:
    return int(time.time() * 1000)


class GameApiClient:
    """Signed form client for the gift code API: ``/player``, ``/captcha``, ``/gift_code``."""

    def __init__(
        self,
        http: aiohttp.ClientSession,
        config: GameApiConfig,
        session_store: SessionStore | None = None,
        clock: Callable[[], int] | None = None,
        sleep: Sleeper | None = None,
        logger: logging.Logger | None = None,
    ):
        self._http = http
        self._config = config
        self.session_store = session_store if session_store is not None else SessionStore()
        self._clock = clock or epoch_millis
        self._sleep = sleep or asyncio.sleep
        self._logger = logger or logging.getLogger(__name__)

    def reset_session(self) -> None:
        self.session_store.clear()

    async def check_identity(self, fid: str) -> str:
        response = await self._post("/player", {"fid": str(fid)}, accept="application/json")
        data = response.data if isinstance(response.data, dict) else {}
        if response.code == SUCCESS_CODE and data.get("fid"):
            return str(data.get("nickname") or "Unknown")
        raise ProtocolError(
            f"Player check failed: {response.msg or 'unresolvable player id'}",
            categorize_response(response),
            response.raw,
        )

    async def fetch_challenge(self, fid: str) -> bytes:
        response = await self._post("/captcha", {"fid": str(fid)}, accept="application/json")
        if response.code != SUCCESS_CODE:
            raise ProtocolError(
                f"CAPTCHA generation failed: {response.msg or response.code}",
                categorize_response(response),
                response.raw,
            )
        data = response.data if isinstance(response.data, dict) else {}
        data_uri = data.get("img")
        if not isinstance(data_uri, str) or not data_uri.startswith("data:"):
            raise ProtocolError("Invalid CAPTCHA data received", FailureCategory.CHALLENGE, response.raw)
        _, _, encoded = data_uri.partition(",")
        try:
            image = base64.b64decode(encoded, validate=True) if encoded else b""
        except (binascii.Error, ValueError):
            image = b""
        if not image:
            raise ProtocolError("No CAPTCHA image data found", FailureCategory.CHALLENGE, response.raw)
        return image

    async def submit_redemption(self, fid: str, code: str, solved_text: str) -> UpstreamResponse:
        return await self._post(
            "/gift_code",
            {"fid": str(fid), "cdk": str(code), "captcha_code": str(solved_text)},
            accept="application/json, text/plain, */*",
        )

    async def _post(self, path: str, params: dict[str, Any], *, accept: str) -> UpstreamResponse:
        url = f"{self._config.base_url}{path}"
        for retry in range(self._config.rate_limit_retries + 1):
            signed = dict(params)
            signed["time"] = str(self._clock())
            body = encode_signed_form(signed, self._config.secret)
            headers = {"Accept": accept, "Content-Type": "application/x-www-form-urlencoded"}
            cookie = self.session_store.cookie_header()
            if cookie:
                headers["Cookie"] = cookie
            try:
                async with self._http.post(url, data=body, headers=headers) as resp:
                    self.session_store.capture_headers(resp.headers.getall("Set-Cookie", []))
                    if resp.status == 429:
                        if retry < self._config.rate_limit_retries:
                            delay = self._config.rate_limit_base_delay * (2 ** retry)
                            self._logger.warning(
                                "GAME API RATE LIMITED path=%s retry=%s/%s delay=%.1fs",
                                path,
                                retry + 1,
                                self._config.rate_limit_retries,
                                delay,
                            )
                            await self._sleep(delay)
                            continue
                        raise ProtocolError(
                            f"Rate limited on {path}",
                            FailureCategory.NETWORK,
                            {"status": resp.status},
                        )
                    try:
                        payload = await resp.json(content_type=None)
                    except ValueError:
                        text = await resp.text()
                        raise ProtocolError(
                            f"Non-JSON response from {path} (HTTP {resp.status})",
                            FailureCategory.NETWORK if resp.status >= 500 else FailureCategory.OTHER,
                            {"status": resp.status, "body": text[:500]},
                        ) from None
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise ProtocolError(
                    f"Request to {path} failed: {exc.__class__.__name__}: {exc}",
                    FailureCategory.NETWORK,
                ) from exc
            response = UpstreamResponse.from_payload(payload)
            self._logger.debug(
                "GAME API %s status=%s code=%s err_code=%s msg=%s",
                path,
                resp.status,
                response.code,
                response.err_code,
                response.msg,
            )
            return response
        raise ProtocolError(f"Rate limited on {path}", FailureCategory.NETWORK)
