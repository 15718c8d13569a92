from __future__ import annotations

from typing import Awaitable, Callable, Protocol

from .types import RedemptionResult, UpstreamResponse


class GameApiPort(Protocol):
    async def check_identity(self, fid: str) -> str:
        ...

    async def fetch_challenge(self, fid: str) -> bytes:
        ...

    async def submit_redemption(self, fid: str, code: str, solved_text: str) -> UpstreamResponse:
        ...

    def reset_session(self) -> None:
        ...


class ChallengeSolverPort(Protocol):
    async def solve(self, image: bytes) -> str:
        ...


ProgressCallback = Callable[[int, int, RedemptionResult], Awaitable[None] | None]
AbortCheck = Callable[[], bool]
Sleeper = Callable[[float], Awaitable[None]]
