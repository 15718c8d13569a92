from __future__ import annotations

from datetime import datetime
from typing import Iterable, Protocol


class RedemptionHistoryRepo(Protocol):
    def exists(self, fid: str, code: str) -> bool: ...
    def redeemed_fids(self, code: str, fids: Iterable[str]) -> set[str]: ...
    def record(self, fid: str, code: str, redeemed_at: datetime | None = None) -> bool: ...
    def list_for_code(self, code: str): ...


class UnitOfWork(Protocol):
    history: RedemptionHistoryRepo

    def commit(self) -> None: ...
    def rollback(self) -> None: ...

    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
