from __future__ import annotations

import asyncio

from giftcode_engine.core.batch import BatchRedeemer, summarize
from giftcode_engine.core.config import BatchConfig, RedemptionConfig
from giftcode_engine.core.redeemer import ItemRedeemer
from giftcode_engine.core.types import RedemptionTarget, UpstreamResponse
from giftcode_engine.persistence.sqlalchemy import (
    SQLAlchemyUnitOfWork,
    build_engine,
    build_session_factory,
    create_schema,
)


class DemoGameApi:
    """Accepts every submit except for players that already claimed the code."""

    def __init__(self, already_claimed: set[str]):
        self.already_claimed = already_claimed

    async def check_identity(self, fid: str) -> str:
        return f"Chief {fid}"

    async def fetch_challenge(self, fid: str) -> bytes:
        return b"\x89PNG demo"

    async def submit_redemption(self, fid: str, code: str, solved_text: str) -> UpstreamResponse:
        if fid in self.already_claimed:
            return UpstreamResponse.from_payload({"code": 1, "err_code": 40008, "msg": "RECEIVED."})
        return UpstreamResponse.from_payload({"code": 0, "err_code": 20000, "msg": "SUCCESS"})

    def reset_session(self) -> None:
        return None


class DemoSolver:
    async def solve(self, image: bytes) -> str:
        return "7Xk2"


def make_uow_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    create_schema(engine)
    session_factory = build_session_factory(engine)

    def _uow_factory():
        return SQLAlchemyUnitOfWork(session_factory)

    with _uow_factory() as uow:
        uow.history.record("1003", "FROST2025")
        uow.commit()
    return _uow_factory


async def main() -> None:
    uow_factory = make_uow_factory()
    api = DemoGameApi(already_claimed={"1004"})
    config = RedemptionConfig(submit_delay=0.0, challenge_warmup_base=0.0)

    batch = BatchRedeemer(
        uow_factory=uow_factory,
        redeemer_factory=lambda slot: ItemRedeemer(uow_factory, api, DemoSolver(), config),
        config=BatchConfig(concurrency=2, item_delay=0.1),
    )

    def on_progress(processed, total, result):
        print(f"[{processed}/{total}] {result.fid} {result.status.value}: {result.reason}")

    targets = [RedemptionTarget(fid) for fid in ("1001", "1002", "1003", "1004", "1002")]
    results = await batch.run(targets, "FROST2025", on_progress=on_progress)

    report = summarize("FROST2025", results)
    print("counts:", {status.value: count for status, count in report.counts.items()})

    with uow_factory() as uow:
        print("ledger:", [row.fid for row in uow.history.list_for_code("FROST2025")])


if __name__ == "__main__":
    asyncio.run(main())
