from __future__ import annotations

from typing import Any

from .types import FailureCategory


class RedemptionEngineError(Exception):
    pass


class ValidationError(RedemptionEngineError):
    pass


class ProtocolError(RedemptionEngineError):
    """Remote game API failure, tagged with the category that drives backoff."""

    def __init__(
        self,
        message: str,
        category: FailureCategory = FailureCategory.OTHER,
        payload: Any = None,
    ):
        super().__init__(message)
        self.category = category
        self.payload = payload


class OracleError(RedemptionEngineError):
    def __init__(self, message: str, payload: Any = None):
        super().__init__(message)
        self.payload = payload
