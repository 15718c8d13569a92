from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any

import aiohttp

from ..core.config import SolverConfig
from ..core.errors import OracleError
from ..core.ports import Sleeper


class _PollingSolver:
    """Submit a challenge image, then poll for the answer a bounded number of times."""

    NAME = "oracle"

    def __init__(
        self,
        http: aiohttp.ClientSession,
        config: SolverConfig,
        sleep: Sleeper | None = None,
        logger: logging.Logger | None = None,
    ):
        self._http = http
        self._config = config
        self._sleep = sleep or asyncio.sleep
        self._logger = logger or logging.getLogger(__name__)

    async def solve(self, image: bytes) -> str:
        if not image:
            raise OracleError(f"{self.NAME}: empty challenge image")
        encoded = base64.b64encode(image).decode("ascii")
        handle = await self._submit(encoded)
        for poll in range(self._config.poll_attempts):
            await self._sleep(self._config.poll_interval)
            answer = await self._poll(handle)
            if answer is not None:
                self._logger.debug("%s solved task=%s after %s polls", self.NAME, handle, poll + 1)
                return answer
        raise OracleError(f"{self.NAME}: polling timed out after {self._config.poll_attempts} attempts")

    async def _submit(self, encoded: str) -> str:
        raise NotImplementedError

    async def _poll(self, handle: str) -> str | None:
        raise NotImplementedError

    async def _request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            async with self._http.request(
                method,
                url,
                timeout=aiohttp.ClientTimeout(total=self._config.timeout_seconds),
                **kwargs,
            ) as resp:
                if resp.status >= 400:
                    raise OracleError(f"{self.NAME}: HTTP {resp.status} from {url}", {"status": resp.status})
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise OracleError(f"{self.NAME}: request failed: {exc}") from exc


class CapMonsterSolver(_PollingSolver):
    NAME = "capmonster"

    async def _submit(self, encoded: str) -> str:
        payload = await self._request_json(
            "POST",
            f"{self._config.base_url}/createTask",
            json={
                "clientKey": self._config.api_key,
                "task": {"type": "ImageToTextTask", "body": encoded, "module": "common"},
            },
        )
        if not isinstance(payload, dict) or payload.get("errorId") != 0:
            raise OracleError(f"CapMonster createTask error: {_describe(payload)}", payload)
        task_id = payload.get("taskId")
        if task_id is None:
            raise OracleError("CapMonster createTask returned no taskId", payload)
        return str(task_id)

    async def _poll(self, handle: str) -> str | None:
        payload = await self._request_json(
            "POST",
            f"{self._config.base_url}/getTaskResult",
            json={"clientKey": self._config.api_key, "taskId": _maybe_int(handle)},
        )
        if not isinstance(payload, dict) or payload.get("errorId") != 0:
            raise OracleError(f"CapMonster getTaskResult error: {_describe(payload)}", payload)
        if payload.get("status") != "ready":
            return None
        solution = payload.get("solution") or {}
        text = str(solution.get("text") or "").strip()
        if not text:
            raise OracleError("CapMonster returned an empty solution", payload)
        return text


class TwoCaptchaSolver(_PollingSolver):
    NAME = "2captcha"
    NOT_READY = "CAPCHA_NOT_READY"

    async def _submit(self, encoded: str) -> str:
        payload = await self._request_json(
            "POST",
            f"{self._config.base_url}/in.php",
            data={
                "key": self._config.api_key,
                "method": "base64",
                "body": encoded,
                "min_len": "4",
                "max_len": "4",
                "json": "1",
            },
        )
        if not isinstance(payload, dict) or payload.get("status") != 1:
            raise OracleError(f"2Captcha upload failed: {_describe(payload)}", payload)
        return str(payload.get("request"))

    async def _poll(self, handle: str) -> str | None:
        payload = await self._request_json(
            "GET",
            f"{self._config.base_url}/res.php",
            params={"key": self._config.api_key, "action": "get", "id": handle, "json": "1"},
        )
        if not isinstance(payload, dict):
            raise OracleError(f"2Captcha poll failed: {_describe(payload)}", payload)
        if payload.get("status") == 1:
            return str(payload.get("request") or "").strip()
        if payload.get("request") == self.NOT_READY:
            return None
        raise OracleError(f"2Captcha error during polling: {_describe(payload)}", payload)


def _describe(payload: Any) -> str:
    if isinstance(payload, dict):
        return str(
            payload.get("errorDescription")
            or payload.get("errorCode")
            or payload.get("error_text")
            or payload.get("request")
            or payload
        )
    return repr(payload)


def _maybe_int(value: str) -> int | str:
    return int(value) if value.isdigit() else value
