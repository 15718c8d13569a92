"""Redeem a gift code for a list of player ids against the live API.

Needs ``WOS_API_SECRET`` and ``CAPMONSTER_API_KEY`` (or ``TWOCAPTCHA_API_KEY``
with ``--solver 2captcha``)::

    python examples/redeem_from_env.py FROST2025 12345678 87654321
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from giftcode_engine import GameApiConfig, GiftCodeRedemptionService, SolverConfig, summarize


async def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("code")
    parser.add_argument("fids", nargs="+")
    parser.add_argument("--solver", choices=("capmonster", "2captcha"), default="capmonster")
    parser.add_argument("--database", default="sqlite+pysqlite:///giftcode_history.db")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    if args.solver == "2captcha":
        solver_config = SolverConfig.twocaptcha_from_env()
    else:
        solver_config = SolverConfig.capmonster_from_env()

    service = GiftCodeRedemptionService.from_database_url(
        args.database,
        GameApiConfig.from_env(),
        solver_config,
        solver_kind=args.solver,
    )

    def on_progress(processed, total, result):
        print(f"[{processed}/{total}] {result.fid} {result.status.value}: {result.reason}")

    async with service:
        results = await service.redeem_batch(args.fids, args.code, on_progress=on_progress)

    report = summarize(args.code, results)
    for status, count in report.counts.items():
        print(f"{status.value.lower()}: {count}")


if __name__ == "__main__":
    asyncio.run(main())
