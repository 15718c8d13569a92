from __future__ import annotations

import asyncio
import base64
from contextlib import asynccontextmanager
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from giftcode_engine.clients.game_api import GameApiClient, open_http_session
from giftcode_engine.core.config import GameApiConfig
from giftcode_engine.core.errors import ProtocolError
from giftcode_engine.core.signing import build_signed_form
from giftcode_engine.core.types import FailureCategory

SECRET = "test-secret"
NOW_MS = 1_700_000_000_000
PNG = b"\x89PNG\r\n\x1a\nfake-image"


class FakeGameServer:
    """Records signed form posts and replays scripted JSON replies."""

    def __init__(self):
        self.requests: list[dict[str, Any]] = []
        self.replies: dict[str, list[Any]] = {"/api/player": [], "/api/captcha": [], "/api/gift_code": []}
        self.cookies: dict[str, list[tuple[str, str]]] = {}

    def reply(self, path: str, *payloads: Any) -> None:
        self.replies[path].extend(payloads)

    def app(self) -> web.Application:
        app = web.Application()
        for path in self.replies:
            app.router.add_post(path, self._handle)
        return app

    async def _handle(self, request: web.Request) -> web.StreamResponse:
        form = dict(await request.post())
        self.requests.append(
            {
                "path": request.path,
                "form": form,
                "cookie": request.headers.get("Cookie"),
                "headers": dict(request.headers),
            }
        )
        queue = self.replies[request.path]
        payload = queue.pop(0) if queue else {"code": 0, "msg": "success", "data": {}}
        if isinstance(payload, int):
            return web.Response(status=payload, text="slow down")
        response = web.json_response(payload)
        for name, value in self.cookies.get(request.path, []):
            response.set_cookie(name, value, path="/")
        return response


@asynccontextmanager
async def serve(fake: FakeGameServer, **config_overrides):
    server = TestServer(fake.app())
    await server.start_server()
    config = GameApiConfig(
        secret=SECRET,
        base_url=str(server.make_url("/api")),
        web_base_url="https://giftcode.example",
        **config_overrides,
    )
    delays: list[float] = []

    async def _sleep(delay):
        delays.append(delay)

    http = open_http_session(config)
    try:
        client = GameApiClient(http, config, clock=lambda: NOW_MS, sleep=_sleep)
        yield client, delays, server
    finally:
        await http.close()
        await server.close()


def _player_ok(fid="123", nickname="Frosty"):
    return {"code": 0, "msg": "success", "data": {"fid": int(fid), "nickname": nickname, "kid": 7}}


def test_check_identity_signs_request_and_returns_nickname():
    fake = FakeGameServer()
    fake.reply("/api/player", _player_ok())

    async def run_test():
        async with serve(fake) as (client, _, _):
            assert await client.check_identity("123") == "Frosty"

    asyncio.run(run_test())
    sent = fake.requests[0]
    assert sent["form"]["fid"] == "123"
    assert sent["form"]["time"] == str(NOW_MS)
    assert sent["form"] == build_signed_form({"fid": "123", "time": str(NOW_MS)}, SECRET)
    assert sent["headers"]["Origin"] == "https://giftcode.example"
    assert sent["headers"]["Referer"] == "https://giftcode.example/"
    assert sent["headers"]["Content-Type"].startswith("application/x-www-form-urlencoded")
    assert sent["cookie"] is None


def test_check_identity_failure_raises_categorized_error():
    fake = FakeGameServer()
    fake.reply("/api/player", {"code": 1, "err_code": 40004, "msg": "role not exist.", "data": {}})

    async def run_test():
        async with serve(fake) as (client, _, _):
            with pytest.raises(ProtocolError) as excinfo:
                await client.check_identity("999")
            return excinfo.value

    error = asyncio.run(run_test())
    assert error.category is FailureCategory.OTHER
    assert "role not exist" in str(error)
    assert error.payload["err_code"] == 40004


def test_session_tokens_are_captured_and_replayed_newest_wins():
    fake = FakeGameServer()
    fake.cookies["/api/player"] = [("JSESSIONID", "first"), ("region", "eu")]
    fake.cookies["/api/captcha"] = [("JSESSIONID", "second")]
    fake.reply("/api/player", _player_ok(), _player_ok())
    fake.reply("/api/captcha", {"code": 0, "data": {"img": "data:image/png;base64," + base64.b64encode(PNG).decode()}})

    async def run_test():
        async with serve(fake) as (client, _, _):
            await client.check_identity("123")
            await client.fetch_challenge("123")
            await client.submit_redemption("123", "CODE1", "AB12")
            snapshot = client.session_store.snapshot()
            client.reset_session()
            await client.check_identity("123")
            return snapshot

    snapshot = asyncio.run(run_test())
    assert snapshot == {"JSESSIONID": "second", "region": "eu"}
    cookies = [r["cookie"] for r in fake.requests]
    assert cookies[0] is None
    assert "JSESSIONID=first" in cookies[1]
    assert "JSESSIONID=second" in cookies[2] and "region=eu" in cookies[2]
    assert cookies[3] is None


def test_fetch_challenge_decodes_data_uri():
    fake = FakeGameServer()
    fake.reply(
        "/api/captcha",
        {"code": 0, "msg": "SUCCESS", "data": {"img": "data:image/jpeg;base64," + base64.b64encode(PNG).decode()}},
    )

    async def run_test():
        async with serve(fake) as (client, _, _):
            return await client.fetch_challenge("123")

    assert asyncio.run(run_test()) == PNG


@pytest.mark.parametrize(
    "payload, category",
    [
        ({"code": 1, "err_code": 40001, "msg": "NOT LOGIN."}, FailureCategory.AUTH),
        ({"code": 1, "msg": "CAPTCHA GET TOO FREQUENT."}, FailureCategory.CHALLENGE),
        ({"code": 0, "data": {"img": "https://not-a-data-uri"}}, FailureCategory.CHALLENGE),
        ({"code": 0, "data": {"img": "data:image/png;base64,"}}, FailureCategory.CHALLENGE),
        ({"code": 0, "data": {"img": "data:image/png;base64,@@@not-base64@@@"}}, FailureCategory.CHALLENGE),
        ({"code": 0, "data": {}}, FailureCategory.CHALLENGE),
    ],
)
def test_fetch_challenge_failures(payload, category):
    fake = FakeGameServer()
    fake.reply("/api/captcha", payload)

    async def run_test():
        async with serve(fake) as (client, _, _):
            with pytest.raises(ProtocolError) as excinfo:
                await client.fetch_challenge("123")
            return excinfo.value

    assert asyncio.run(run_test()).category is category


def test_submit_returns_upstream_response_verbatim():
    fake = FakeGameServer()
    body = {"code": 1, "err_code": 40008, "msg": "RECEIVED.", "data": []}
    fake.reply("/api/gift_code", body)

    async def run_test():
        async with serve(fake) as (client, _, _):
            return await client.submit_redemption("123", "SPRING25", "AB12")

    response = asyncio.run(run_test())
    assert response.code == 1
    assert response.err_code == 40008
    assert response.msg == "RECEIVED."
    assert response.raw == body
    sent = fake.requests[0]["form"]
    assert sent["cdk"] == "SPRING25"
    assert sent["captcha_code"] == "AB12"
    assert sent == build_signed_form(
        {"fid": "123", "cdk": "SPRING25", "captcha_code": "AB12", "time": str(NOW_MS)}, SECRET
    )


def test_rate_limited_requests_back_off_and_retry():
    fake = FakeGameServer()
    fake.reply("/api/player", 429, 429, _player_ok())

    async def run_test():
        async with serve(fake) as (client, delays, _):
            nickname = await client.check_identity("123")
            return nickname, delays

    nickname, delays = asyncio.run(run_test())
    assert nickname == "Frosty"
    assert delays == [2.0, 4.0]
    assert len(fake.requests) == 3


def test_persistent_rate_limit_surfaces_as_network_error():
    fake = FakeGameServer()
    fake.reply("/api/gift_code", 429, 429, 429)

    async def run_test():
        async with serve(fake, rate_limit_retries=2) as (client, _, _):
            with pytest.raises(ProtocolError) as excinfo:
                await client.submit_redemption("123", "SPRING25", "AB12")
            return excinfo.value

    assert asyncio.run(run_test()).category is FailureCategory.NETWORK
    assert len(fake.requests) == 3


def test_transport_failure_is_a_network_error():
    fake = FakeGameServer()

    async def run_test():
        async with serve(fake) as (client, _, server):
            await server.close()
            with pytest.raises(ProtocolError) as excinfo:
                await client.check_identity("123")
            return excinfo.value

    assert asyncio.run(run_test()).category is FailureCategory.NETWORK
