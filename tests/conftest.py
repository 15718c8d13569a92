from __future__ import annotations

from collections import deque
from typing import Any, Iterable

import pytest

from giftcode_engine.core.errors import OracleError, ProtocolError
from giftcode_engine.core.types import FailureCategory, UpstreamResponse
from giftcode_engine.persistence.sqlalchemy.db import build_engine, build_session_factory, create_schema
from giftcode_engine.persistence.sqlalchemy.uow import SQLAlchemyUnitOfWork


@pytest.fixture()
def session_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    return build_session_factory(engine)


@pytest.fixture()
def uow_factory(session_factory):
    def _factory():
        return SQLAlchemyUnitOfWork(session_factory)

    return _factory


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture()
def sleeper():
    return SleepRecorder()


def ok_submit() -> UpstreamResponse:
    return UpstreamResponse(code=0, err_code=20000, msg="SUCCESS", raw={"code": 0, "err_code": 20000, "msg": "SUCCESS"})


def err_submit(err_code: int, msg: str) -> UpstreamResponse:
    raw = {"code": 1, "err_code": err_code, "msg": msg, "data": []}
    return UpstreamResponse(code=1, err_code=err_code, msg=msg, data=[], raw=raw)


class StubGameApi:
    """Scripted game API. Each script entry is a value to return or an exception to raise."""

    def __init__(
        self,
        identity: Iterable[Any] | None = None,
        challenges: Iterable[Any] | None = None,
        submits: Iterable[Any] | None = None,
    ):
        self.identity_script = deque(identity or [])
        self.challenge_script = deque(challenges or [])
        self.submit_script = deque(submits or [])
        self.calls: list[tuple[str, str]] = []
        self.resets = 0

    @property
    def network_calls(self) -> int:
        return len(self.calls)

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    async def check_identity(self, fid: str) -> str:
        self.calls.append(("check_identity", fid))
        return self._next(self.identity_script, f"Player {fid}")

    async def fetch_challenge(self, fid: str) -> bytes:
        self.calls.append(("fetch_challenge", fid))
        return self._next(self.challenge_script, b"\x89PNG-challenge")

    async def submit_redemption(self, fid: str, code: str, solved_text: str) -> UpstreamResponse:
        self.calls.append(("submit_redemption", fid))
        return self._next(self.submit_script, ok_submit())

    def reset_session(self) -> None:
        self.resets += 1

    @staticmethod
    def _next(script: deque, default: Any) -> Any:
        value = script.popleft() if script else default
        if isinstance(value, Exception):
            raise value
        return value


class StubSolver:
    def __init__(self, answers: Iterable[Any] | None = None):
        self.answers = deque(answers or [])
        self.calls = 0

    async def solve(self, image: bytes) -> str:
        self.calls += 1
        value = self.answers.popleft() if self.answers else "AB12"
        if isinstance(value, Exception):
            raise value
        return value


def challenge_error(msg: str = "CAPTCHA GET TOO FREQUENT.") -> ProtocolError:
    return ProtocolError(f"CAPTCHA generation failed: {msg}", FailureCategory.CHALLENGE, {"code": 1, "msg": msg})


def auth_error() -> ProtocolError:
    return ProtocolError("CAPTCHA generation failed: NOT LOGIN", FailureCategory.AUTH, {"code": 1, "err_code": 40001})


def oracle_error(msg: str = "ERROR_CAPTCHA_UNSOLVABLE") -> OracleError:
    return OracleError(msg, {"errorId": 1, "errorDescription": msg})
