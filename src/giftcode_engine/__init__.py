from .clients import CapMonsterSolver, GameApiClient, SessionStore, TwoCaptchaSolver, open_http_session
from .core.batch import BatchRedeemer, summarize
from .core.config import BatchConfig, GameApiConfig, RedemptionConfig, SolverConfig
from .core.errors import OracleError, ProtocolError, RedemptionEngineError, ValidationError
from .core.redeemer import ItemRedeemer
from .core.signing import build_signed_form
from .core.types import RedemptionResult, RedemptionStatus, RedemptionTarget
from .service import GiftCodeRedemptionService

__all__ = [
    "GiftCodeRedemptionService",
    "BatchRedeemer",
    "ItemRedeemer",
    "summarize",
    "GameApiClient",
    "open_http_session",
    "SessionStore",
    "CapMonsterSolver",
    "TwoCaptchaSolver",
    "BatchConfig",
    "GameApiConfig",
    "RedemptionConfig",
    "SolverConfig",
    "RedemptionEngineError",
    "ValidationError",
    "ProtocolError",
    "OracleError",
    "build_signed_form",
    "RedemptionResult",
    "RedemptionStatus",
    "RedemptionTarget",
]
