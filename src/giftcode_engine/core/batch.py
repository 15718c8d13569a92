from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable, Sequence

from ..persistence.interfaces import UnitOfWork
from .config import BatchConfig
from .normalize import normalize_code, normalize_targets
from .ports import AbortCheck, ProgressCallback, Sleeper
from .redeemer import ItemRedeemer
from .types import BatchReport, RedemptionResult, RedemptionStatus, RedemptionTarget

RedeemerFactory = Callable[[int], ItemRedeemer]


class BatchRedeemer:
    """Runs a gift code over many identifiers with a small fixed worker pool.

    ``redeemer_factory`` is called once per worker slot, so every slot can
    hold its own remote session.
    """

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        redeemer_factory: RedeemerFactory,
        config: BatchConfig | None = None,
        sleep: Sleeper | None = None,
        logger: logging.Logger | None = None,
    ):
        self._uow_factory = uow_factory
        self._redeemer_factory = redeemer_factory
        self._config = config or BatchConfig()
        self._sleep = sleep or asyncio.sleep
        self._logger = logger or logging.getLogger(__name__)

    async def run(
        self,
        targets: Iterable[Any],
        code: str,
        on_progress: ProgressCallback | None = None,
        should_abort: AbortCheck | None = None,
    ) -> list[RedemptionResult]:
        code = normalize_code(code)
        items = normalize_targets(targets)
        total = len(items)
        results: list[RedemptionResult] = []

        async def _complete(result: RedemptionResult) -> None:
            results.append(result)
            await self._notify(on_progress, len(results), total, result)

        with self._uow_factory() as uow:
            already = uow.history.redeemed_fids(code, [t.fid for t in items])

        pending: list[RedemptionTarget] = []
        seen: set[str] = set()
        for target in items:
            if target.fid in already:
                await _complete(_skipped(target, "Already redeemed (ledger)"))
            elif target.fid in seen:
                await _complete(_skipped(target, "Duplicate identifier in batch"))
            else:
                seen.add(target.fid)
                pending.append(target)

        self._logger.info(
            "BATCH START code=%s total=%s pending=%s prefiltered=%s concurrency=%s",
            code,
            total,
            len(pending),
            total - len(pending),
            self._config.concurrency,
        )

        queue: asyncio.Queue[RedemptionTarget] = asyncio.Queue()
        for target in pending:
            queue.put_nowait(target)
        aborted = False

        async def _worker(slot: int) -> None:
            nonlocal aborted
            redeemer = self._redeemer_factory(slot)
            while True:
                try:
                    target = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                if not aborted and self._abort_requested(should_abort):
                    self._logger.warning("BATCH ABORT requested code=%s remaining=%s", code, queue.qsize() + 1)
                    aborted = True
                if aborted:
                    result = RedemptionResult(
                        fid=target.fid,
                        status=RedemptionStatus.FAILED,
                        reason="aborted before processing",
                        display_name=target.display_name,
                    )
                else:
                    await self._sleep(self._config.item_delay)
                    result = await self._redeem_one(redeemer, target, code)
                await _complete(result)

        slots = max(1, min(self._config.concurrency, len(pending)))
        if pending:
            await asyncio.gather(*(_worker(slot) for slot in range(slots)))

        report = summarize(code, results, total=total)
        self._logger.info(
            "BATCH DONE code=%s success=%s skipped=%s failed=%s",
            code,
            len(report.succeeded),
            len(report.skipped),
            len(report.failed),
        )
        return results

    async def _redeem_one(self, redeemer: ItemRedeemer, target: RedemptionTarget, code: str) -> RedemptionResult:
        try:
            return await redeemer.redeem(target, code)
        except Exception as exc:  # pragma: no cover
            self._logger.exception("REDEEM CRASH fid=%s code=%s", target.fid, code)
            return RedemptionResult(
                fid=target.fid,
                status=RedemptionStatus.FAILED,
                reason=f"Unexpected error: {exc}",
                display_name=target.display_name,
            )

    def _abort_requested(self, should_abort: AbortCheck | None) -> bool:
        if should_abort is None:
            return False
        try:
            return bool(should_abort())
        except Exception as exc:
            self._logger.warning("Abort check failed, continuing: %s", exc)
            return False

    async def _notify(
        self,
        callback: ProgressCallback | None,
        processed: int,
        total: int,
        result: RedemptionResult,
    ) -> None:
        if callback is None:
            return
        try:
            maybe = callback(processed, total, result)
            if asyncio.iscoroutine(maybe):
                await maybe
        except Exception as exc:
            self._logger.warning("Progress callback failed: %s", exc)


def summarize(code: str, results: Sequence[RedemptionResult], total: int | None = None) -> BatchReport:
    report = BatchReport(code=code, total=len(results) if total is None else total)
    for result in results:
        if result.status is RedemptionStatus.SUCCESS:
            report.succeeded.append(result)
        elif result.status is RedemptionStatus.SKIPPED:
            report.skipped.append(result)
        else:
            report.failed.append(result)
    return report


def _skipped(target: RedemptionTarget, reason: str) -> RedemptionResult:
    return RedemptionResult(
        fid=target.fid,
        status=RedemptionStatus.SKIPPED,
        reason=reason,
        display_name=target.display_name,
    )
