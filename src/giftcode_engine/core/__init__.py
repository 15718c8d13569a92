from .batch import BatchRedeemer, summarize
from .classify import categorize, classify_submit
from .config import BatchConfig, GameApiConfig, RedemptionConfig, SolverConfig
from .errors import OracleError, ProtocolError, RedemptionEngineError, ValidationError
from .normalize import normalize_code, normalize_targets
from .ports import ChallengeSolverPort, GameApiPort, ProgressCallback
from .redeemer import ItemRedeemer
from .signing import build_signed_form, encode_signed_form, sign_params
from .types import (
    BatchReport,
    FailureCategory,
    RedemptionResult,
    RedemptionStatus,
    RedemptionTarget,
    Stage,
    SubmitOutcome,
    UpstreamResponse,
)

__all__ = [
    "BatchRedeemer",
    "ItemRedeemer",
    "summarize",
    "categorize",
    "classify_submit",
    "BatchConfig",
    "GameApiConfig",
    "RedemptionConfig",
    "SolverConfig",
    "RedemptionEngineError",
    "ValidationError",
    "ProtocolError",
    "OracleError",
    "normalize_code",
    "normalize_targets",
    "GameApiPort",
    "ChallengeSolverPort",
    "ProgressCallback",
    "build_signed_form",
    "encode_signed_form",
    "sign_params",
    "BatchReport",
    "FailureCategory",
    "RedemptionResult",
    "RedemptionStatus",
    "RedemptionTarget",
    "Stage",
    "SubmitOutcome",
    "UpstreamResponse",
]
