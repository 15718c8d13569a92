from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from ..persistence.interfaces import UnitOfWork
from .classify import classify_submit
from .config import RedemptionConfig
from .errors import OracleError, ProtocolError
from .ports import ChallengeSolverPort, GameApiPort, Sleeper
from .types import (
    FailureCategory,
    RedemptionResult,
    RedemptionStatus,
    RedemptionTarget,
    Stage,
    SubmitOutcome,
)


@dataclass
class _ItemRun:
    fid: str
    code: str
    display_name: str | None
    failures: int = 0
    consecutive_challenge_errors: int = 0
    last_error: str = ""
    last_payload: Any = None


class ItemRedeemer:
    """Drives one identifier through identity check, challenge, solve and submit.

    Retries are split in two layers. Challenge fetch and solve each have a
    small inner budget; submit outcomes that ask for a fresh challenge or a
    fresh login, and transport failures, consume the outer budget shared by
    the whole item.
    """

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        api: GameApiPort,
        solver: ChallengeSolverPort,
        config: RedemptionConfig | None = None,
        sleep: Sleeper | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ):
        self._uow_factory = uow_factory
        self._api = api
        self._solver = solver
        self._config = config or RedemptionConfig()
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or datetime.utcnow
        self._logger = logger or logging.getLogger(__name__)

    async def redeem(self, target: RedemptionTarget, code: str) -> RedemptionResult:
        with self._uow_factory() as uow:
            already = uow.history.exists(target.fid, code)
        if already:
            return RedemptionResult(
                fid=target.fid,
                status=RedemptionStatus.SKIPPED,
                reason="Already redeemed (ledger)",
                display_name=target.display_name,
            )
        run = _ItemRun(fid=target.fid, code=code, display_name=target.display_name)
        result = await self._run(run)
        self._logger.info(
            "REDEEM DONE fid=%s code=%s status=%s reason=%s",
            run.fid,
            code,
            result.status.value,
            result.reason,
        )
        return result

    async def _run(self, run: _ItemRun) -> RedemptionResult:
        cfg = self._config
        stage = Stage.CHECK_IDENTITY
        image = b""
        answer = ""

        while run.failures < cfg.max_outer_attempts:
            try:
                if stage is Stage.CHECK_IDENTITY:
                    try:
                        run.display_name = await self._api.check_identity(run.fid) or run.display_name
                    except ProtocolError as exc:
                        if exc.category is FailureCategory.NETWORK:
                            raise
                        return self._failed(run, str(exc), exc.payload)
                    stage = Stage.FETCH_CHALLENGE

                elif stage is Stage.FETCH_CHALLENGE:
                    await self._sleep(cfg.challenge_warmup_delay(run.consecutive_challenge_errors, run.failures))
                    fetched = await self._fetch_challenge(run)
                    if fetched is None:
                        return self._failed(
                            run,
                            f"Challenge fetch failed after {cfg.challenge_fetch_attempts} attempts: {run.last_error}",
                            run.last_payload,
                        )
                    image = fetched
                    stage = Stage.SOLVE_CHALLENGE

                elif stage is Stage.SOLVE_CHALLENGE:
                    solved = await self._solve(run, image)
                    if solved is None:
                        return self._failed(
                            run,
                            f"Challenge solving failed after {cfg.solve_attempts} attempts: {run.last_error}",
                            run.last_payload,
                        )
                    answer = solved
                    stage = Stage.SUBMIT

                else:
                    await self._sleep(cfg.submit_delay)
                    response = await self._api.submit_redemption(run.fid, run.code, answer)
                    outcome = classify_submit(response)

                    if outcome is SubmitOutcome.ALREADY_REDEEMED:
                        return RedemptionResult(
                            fid=run.fid,
                            status=RedemptionStatus.SKIPPED,
                            reason="Already redeemed",
                            display_name=run.display_name,
                        )
                    if outcome is SubmitOutcome.REDEEMED:
                        return self._record_success(run)
                    if outcome is SubmitOutcome.REJECTED:
                        reason = response.msg or json.dumps(response.raw, ensure_ascii=True, default=str)
                        return self._failed(run, reason, response.raw)

                    run.last_error = response.msg or f"err_code {response.err_code}"
                    run.last_payload = response.raw
                    if outcome is SubmitOutcome.RETRY_CHALLENGE:
                        run.consecutive_challenge_errors += 1
                        stage = Stage.FETCH_CHALLENGE
                        await self._back_off(run, FailureCategory.CHALLENGE)
                    else:
                        self._api.reset_session()
                        stage = Stage.CHECK_IDENTITY
                        await self._back_off(run, FailureCategory.AUTH)

            except ProtocolError as exc:
                run.last_error = str(exc)
                run.last_payload = exc.payload
                stage = Stage.CHECK_IDENTITY
                await self._back_off(run, exc.category)

        return self._failed(
            run,
            f"{run.last_error or 'Unknown error'} (gave up after {cfg.max_outer_attempts} attempts)",
            run.last_payload,
        )

    async def _back_off(self, run: _ItemRun, category: FailureCategory) -> None:
        run.failures += 1
        self._logger.warning(
            "REDEEM RETRY fid=%s attempt=%s/%s category=%s error=%s",
            run.fid,
            run.failures,
            self._config.max_outer_attempts,
            category.value,
            run.last_error,
        )
        if run.failures < self._config.max_outer_attempts:
            await self._sleep(self._config.retry_delay(run.failures, category))

    async def _fetch_challenge(self, run: _ItemRun) -> bytes | None:
        attempts = self._config.challenge_fetch_attempts
        for attempt in range(1, attempts + 1):
            try:
                image = await self._api.fetch_challenge(run.fid)
            except ProtocolError as exc:
                run.consecutive_challenge_errors += 1
                run.last_error = str(exc)
                run.last_payload = exc.payload
                self._logger.warning(
                    "CHALLENGE FETCH RETRY fid=%s attempt=%s/%s category=%s error=%s",
                    run.fid,
                    attempt,
                    attempts,
                    exc.category.value,
                    exc,
                )
                if exc.category is FailureCategory.AUTH and attempt < attempts:
                    await self._relogin(run)
                continue
            run.consecutive_challenge_errors = 0
            return image
        return None

    async def _relogin(self, run: _ItemRun) -> None:
        self._api.reset_session()
        try:
            await self._api.check_identity(run.fid)
        except ProtocolError as exc:
            self._logger.warning("SESSION REFRESH FAILED fid=%s error=%s", run.fid, exc)

    async def _solve(self, run: _ItemRun, image: bytes) -> str | None:
        cfg = self._config
        for attempt in range(1, cfg.solve_attempts + 1):
            try:
                answer = (await self._solver.solve(image) or "").strip()
                if len(answer) < cfg.min_answer_length:
                    raise OracleError(f"Invalid CAPTCHA solution received: {answer!r}")
                return answer
            except OracleError as exc:
                run.last_error = str(exc)
                run.last_payload = exc.payload
                self._logger.warning(
                    "CHALLENGE SOLVE RETRY fid=%s attempt=%s/%s error=%s",
                    run.fid,
                    attempt,
                    cfg.solve_attempts,
                    exc,
                )
                if attempt < cfg.solve_attempts:
                    await self._sleep(cfg.solve_retry_delay)
        return None

    def _record_success(self, run: _ItemRun) -> RedemptionResult:
        with self._uow_factory() as uow:
            inserted = uow.history.record(run.fid, run.code, self._clock())
            uow.commit()
        if not inserted:
            self._logger.info("LEDGER DUPLICATE fid=%s code=%s already recorded", run.fid, run.code)
        return RedemptionResult(
            fid=run.fid,
            status=RedemptionStatus.SUCCESS,
            reason="Redeemed",
            display_name=run.display_name,
        )

    @staticmethod
    def _failed(run: _ItemRun, reason: str, payload: Any = None) -> RedemptionResult:
        return RedemptionResult(
            fid=run.fid,
            status=RedemptionStatus.FAILED,
            reason=reason,
            display_name=run.display_name,
            raw_upstream_error=payload,
        )
