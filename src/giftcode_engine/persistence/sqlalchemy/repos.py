from __future__ import annotations

from datetime import datetime
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import RedemptionHistory

_IN_CLAUSE_CHUNK = 500


class RedemptionHistoryRepo:
    def __init__(self, session: Session):
        self.session = session

    def exists(self, fid: str, code: str) -> bool:
        stmt = (
            select(RedemptionHistory.id)
            .where(RedemptionHistory.fid == fid)
            .where(RedemptionHistory.code == code)
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none() is not None

    def redeemed_fids(self, code: str, fids: Iterable[str]) -> set[str]:
        wanted = list(dict.fromkeys(fids))
        found: set[str] = set()
        for start in range(0, len(wanted), _IN_CLAUSE_CHUNK):
            chunk = wanted[start : start + _IN_CLAUSE_CHUNK]
            stmt = (
                select(RedemptionHistory.fid)
                .where(RedemptionHistory.code == code)
                .where(RedemptionHistory.fid.in_(chunk))
            )
            found.update(self.session.execute(stmt).scalars().all())
        return found

    def record(self, fid: str, code: str, redeemed_at: datetime | None = None) -> bool:
        """Insert the (fid, code) pair unless present; False when it already existed."""
        try:
            with self.session.begin_nested():
                row = RedemptionHistory(
                    fid=fid,
                    code=code,
                    redeemed_at=redeemed_at or datetime.utcnow(),
                )
                self.session.add(row)
                self.session.flush()
                return True
        except IntegrityError as exc:
            message = str(exc).lower()
            if (
                "uq_gce_redemption_fid_code" in message
                or "gce_redemption_history.fid, gce_redemption_history.code" in message
            ):
                return False
            raise

    def list_for_code(self, code: str) -> list[RedemptionHistory]:
        stmt = (
            select(RedemptionHistory)
            .where(RedemptionHistory.code == code)
            .order_by(RedemptionHistory.redeemed_at.asc())
        )
        return list(self.session.execute(stmt).scalars().all())
