from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class RedemptionStatus(str, Enum):
    SUCCESS = "SUCCESS"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class FailureCategory(str, Enum):
    CHALLENGE = "challenge"
    AUTH = "auth"
    NETWORK = "network"
    OTHER = "other"


class SubmitOutcome(str, Enum):
    REDEEMED = "redeemed"
    ALREADY_REDEEMED = "already_redeemed"
    RETRY_CHALLENGE = "retry_challenge"
    RETRY_AUTH = "retry_auth"
    REJECTED = "rejected"


class Stage(str, Enum):
    CHECK_IDENTITY = "check_identity"
    FETCH_CHALLENGE = "fetch_challenge"
    SOLVE_CHALLENGE = "solve_challenge"
    SUBMIT = "submit"


@dataclass(frozen=True)
class RedemptionTarget:
    fid: str
    display_name: Optional[str] = None


@dataclass
class UpstreamResponse:
    code: Optional[int]
    err_code: Optional[int] = None
    msg: str = ""
    data: Any = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "UpstreamResponse":
        if not isinstance(payload, dict):
            return cls(code=None, msg=str(payload or ""), raw={"body": payload})
        return cls(
            code=_as_int(payload.get("code")),
            err_code=_as_int(payload.get("err_code")),
            msg=str(payload.get("msg") or ""),
            data=payload.get("data"),
            raw=dict(payload),
        )


@dataclass
class RedemptionResult:
    fid: str
    status: RedemptionStatus
    reason: str
    display_name: Optional[str] = None
    raw_upstream_error: Any = None


@dataclass
class BatchReport:
    code: str
    total: int
    succeeded: list[RedemptionResult] = field(default_factory=list)
    skipped: list[RedemptionResult] = field(default_factory=list)
    failed: list[RedemptionResult] = field(default_factory=list)

    @property
    def counts(self) -> dict[RedemptionStatus, int]:
        return {
            RedemptionStatus.SUCCESS: len(self.succeeded),
            RedemptionStatus.SKIPPED: len(self.skipped),
            RedemptionStatus.FAILED: len(self.failed),
        }


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
