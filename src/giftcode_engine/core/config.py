from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .types import FailureCategory

WOS_API_BASE_URL = "https://wos-giftcode-api.centurygame.com/api"
WOS_WEB_BASE_URL = "https://wos-giftcode-api.centurygame.com"
BROWSER_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:143.0) Gecko/20100101 Firefox/143.0"

CAPMONSTER_BASE_URL = "https://api.capmonster.cloud"
TWOCAPTCHA_BASE_URL = "http://2captcha.com"


def _default_backoff_bases() -> dict[FailureCategory, float]:
    return {
        FailureCategory.CHALLENGE: 4.0,
        FailureCategory.AUTH: 3.0,
        FailureCategory.NETWORK: 2.0,
        FailureCategory.OTHER: 2.5,
    }


@dataclass(frozen=True)
class RedemptionConfig:
    max_outer_attempts: int = 5
    challenge_fetch_attempts: int = 3
    solve_attempts: int = 3
    solve_retry_delay: float = 3.0
    submit_delay: float = 2.0
    challenge_warmup_base: float = 1.0
    min_answer_length: int = 4
    backoff_bases: Mapping[FailureCategory, float] = field(default_factory=_default_backoff_bases)
    backoff_multiplier: float = 1.5
    backoff_cap: float = 30.0

    def retry_delay(self, attempt: int, category: FailureCategory) -> float:
        """Delay before outer attempt ``attempt + 1``; ``attempt`` counts failures so far."""
        base = self.backoff_bases.get(category, self.backoff_bases.get(FailureCategory.OTHER, 0.0))
        delay = base * (self.backoff_multiplier ** max(attempt - 1, 0))
        return min(delay, self.backoff_cap)

    def challenge_warmup_delay(self, consecutive_challenge_errors: int, attempt: int) -> float:
        error_factor = min(consecutive_challenge_errors + 1, 3)
        attempt_factor = min(attempt + 1, 2)
        return self.challenge_warmup_base * error_factor * attempt_factor


@dataclass(frozen=True)
class BatchConfig:
    concurrency: int = 2
    item_delay: float = 2.0


@dataclass(frozen=True)
class GameApiConfig:
    secret: str
    base_url: str = WOS_API_BASE_URL
    web_base_url: str = WOS_WEB_BASE_URL
    user_agent: str = BROWSER_USER_AGENT
    timeout_seconds: float = 15.0
    rate_limit_retries: int = 3
    rate_limit_base_delay: float = 2.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "GameApiConfig":
        env = os.environ if environ is None else environ
        secret = (env.get("WOS_API_SECRET") or "").strip()
        if not secret:
            raise RuntimeError("WOS_API_SECRET is not set")
        return cls(
            secret=secret,
            base_url=(env.get("WOS_API_BASE_URL") or WOS_API_BASE_URL).rstrip("/"),
        )


@dataclass(frozen=True)
class SolverConfig:
    api_key: str
    base_url: str = CAPMONSTER_BASE_URL
    poll_attempts: int = 20
    poll_interval: float = 3.0
    timeout_seconds: float = 30.0

    @classmethod
    def capmonster_from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SolverConfig":
        env = os.environ if environ is None else environ
        api_key = (env.get("CAPMONSTER_API_KEY") or "").strip()
        if not api_key:
            raise RuntimeError("CAPMONSTER_API_KEY is not set")
        return cls(api_key=api_key)

    @classmethod
    def twocaptcha_from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SolverConfig":
        env = os.environ if environ is None else environ
        api_key = (env.get("TWOCAPTCHA_API_KEY") or "").strip()
        if not api_key:
            raise RuntimeError("TWOCAPTCHA_API_KEY is not set")
        return cls(api_key=api_key, base_url=TWOCAPTCHA_BASE_URL, poll_attempts=10, poll_interval=5.0)
