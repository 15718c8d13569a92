from __future__ import annotations

from typing import Any, Optional

from .types import FailureCategory, SubmitOutcome, UpstreamResponse

SUCCESS_CODE = 0

ERR_NOT_LOGIN = 40001
ERR_ALREADY_RECEIVED = 40008
ERR_CAPTCHA_GET_TOO_FREQUENT = 40100
ERR_CAPTCHA_CHECK_TOO_FREQUENT = 40101
ERR_CAPTCHA_EXPIRED = 40102
ERR_CAPTCHA_CHECK_ERROR = 40103

_CATEGORY_BY_ERR_CODE = {
    ERR_NOT_LOGIN: FailureCategory.AUTH,
    ERR_CAPTCHA_GET_TOO_FREQUENT: FailureCategory.CHALLENGE,
    ERR_CAPTCHA_CHECK_TOO_FREQUENT: FailureCategory.CHALLENGE,
    ERR_CAPTCHA_EXPIRED: FailureCategory.CHALLENGE,
    ERR_CAPTCHA_CHECK_ERROR: FailureCategory.CHALLENGE,
}

# Some endpoints omit err_code and only report the message.
_CATEGORY_BY_MSG = {
    "NOT LOGIN": FailureCategory.AUTH,
    "CAPTCHA CHECK ERROR": FailureCategory.CHALLENGE,
    "CAPTCHA EXPIRED": FailureCategory.CHALLENGE,
    "CAPTCHA GET TOO FREQUENT": FailureCategory.CHALLENGE,
    "CAPTCHA CHECK TOO FREQUENT": FailureCategory.CHALLENGE,
}


def categorize(err_code: Optional[int], msg: Any = None) -> FailureCategory:
    if err_code is not None and err_code in _CATEGORY_BY_ERR_CODE:
        return _CATEGORY_BY_ERR_CODE[err_code]
    key = str(msg or "").strip().rstrip(".").upper()
    return _CATEGORY_BY_MSG.get(key, FailureCategory.OTHER)


def categorize_response(response: UpstreamResponse) -> FailureCategory:
    return categorize(response.err_code, response.msg)


def classify_submit(response: UpstreamResponse) -> SubmitOutcome:
    """Map a raw ``/gift_code`` response onto the closed set of submit outcomes.

    "Already redeemed" arrives as an application error rather than a distinct
    status, so it is checked before the success code.
    """
    if response.err_code == ERR_ALREADY_RECEIVED:
        return SubmitOutcome.ALREADY_REDEEMED
    if response.code == SUCCESS_CODE:
        return SubmitOutcome.REDEEMED
    if response.err_code == ERR_CAPTCHA_CHECK_ERROR:
        return SubmitOutcome.RETRY_CHALLENGE
    if response.err_code == ERR_NOT_LOGIN:
        return SubmitOutcome.RETRY_AUTH
    return SubmitOutcome.REJECTED
