from .game_api import GameApiClient, open_http_session
from .session import SessionStore
from .solver import CapMonsterSolver, TwoCaptchaSolver

__all__ = [
    "GameApiClient",
    "open_http_session",
    "SessionStore",
    "CapMonsterSolver",
    "TwoCaptchaSolver",
]
