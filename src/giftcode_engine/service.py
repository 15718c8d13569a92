from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

import aiohttp

from .clients.game_api import GameApiClient, open_http_session
from .clients.session import SessionStore
from .clients.solver import CapMonsterSolver, TwoCaptchaSolver
from .core.batch import BatchRedeemer
from .core.config import BatchConfig, GameApiConfig, RedemptionConfig, SolverConfig
from .core.ports import AbortCheck, ChallengeSolverPort, ProgressCallback
from .core.redeemer import ItemRedeemer
from .core.types import RedemptionResult
from .persistence.interfaces import UnitOfWork
from .persistence.sqlalchemy import SQLAlchemyUnitOfWork, build_engine, build_session_factory, create_schema


class GiftCodeRedemptionService:
    """Wires the HTTP clients, the ledger and the batch runner together.

    One ``aiohttp`` connection pool is shared, while each worker slot gets a
    ``GameApiClient`` with its own ``SessionStore``. Use as an async context
    manager so the connection pool is closed::

        async with GiftCodeRedemptionService(uow_factory, api_cfg, solver_cfg) as service:
            results = await service.redeem_batch(targets, "SPRING2025")
    """

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        api_config: GameApiConfig,
        solver_config: SolverConfig,
        *,
        solver_kind: str = "capmonster",
        redemption_config: RedemptionConfig | None = None,
        batch_config: BatchConfig | None = None,
        logger: logging.Logger | None = None,
    ):
        if solver_kind not in ("capmonster", "2captcha"):
            raise ValueError(f"unknown solver kind {solver_kind!r}")
        self._uow_factory = uow_factory
        self._api_config = api_config
        self._solver_config = solver_config
        self._solver_kind = solver_kind
        self._redemption_config = redemption_config or RedemptionConfig()
        self._batch_config = batch_config or BatchConfig()
        self._logger = logger or logging.getLogger(__name__)
        self._http: aiohttp.ClientSession | None = None

    @classmethod
    def from_database_url(cls, url: str, api_config: GameApiConfig, solver_config: SolverConfig, **kwargs: Any):
        engine = build_engine(url)
        create_schema(engine)
        session_factory = build_session_factory(engine)
        return cls(lambda: SQLAlchemyUnitOfWork(session_factory), api_config, solver_config, **kwargs)

    async def __aenter__(self) -> "GiftCodeRedemptionService":
        self._http = open_http_session(self._api_config)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._http is not None:
            await self._http.close()
            self._http = None

    def _build_solver(self) -> ChallengeSolverPort:
        assert self._http is not None
        if self._solver_kind == "2captcha":
            return TwoCaptchaSolver(self._http, self._solver_config, logger=self._logger)
        return CapMonsterSolver(self._http, self._solver_config, logger=self._logger)

    def _build_redeemer(self, slot: int) -> ItemRedeemer:
        assert self._http is not None
        api = GameApiClient(self._http, self._api_config, session_store=SessionStore(), logger=self._logger)
        self._logger.debug("REDEEM SLOT %s ready", slot)
        return ItemRedeemer(
            uow_factory=self._uow_factory,
            api=api,
            solver=self._build_solver(),
            config=self._redemption_config,
            logger=self._logger,
        )

    async def redeem_batch(
        self,
        targets: Iterable[Any],
        code: str,
        on_progress: ProgressCallback | None = None,
        should_abort: AbortCheck | None = None,
    ) -> list[RedemptionResult]:
        if self._http is None:
            raise RuntimeError("GiftCodeRedemptionService must be entered with 'async with'")
        batch = BatchRedeemer(
            uow_factory=self._uow_factory,
            redeemer_factory=self._build_redeemer,
            config=self._batch_config,
            logger=self._logger,
        )
        return await batch.run(targets, code, on_progress=on_progress, should_abort=should_abort)
