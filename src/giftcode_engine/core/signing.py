from __future__ import annotations

import hashlib
from typing import Any, Mapping
from urllib.parse import urlencode


def canonical_string(params: Mapping[str, Any], secret: str) -> str:
    """Return ``k1=v1&k2=v2...`` over sorted keys with ``secret`` appended unseparated."""
    return "&".join(f"{key}={params[key]}" for key in sorted(params)) + secret


def sign_params(params: Mapping[str, Any], secret: str) -> str:
    return hashlib.md5(canonical_string(params, secret).encode("utf-8")).hexdigest()


def build_signed_form(params: Mapping[str, Any], secret: str) -> dict[str, str]:
    if "sign" in params:
        raise ValueError("'sign' is reserved for the request signature")
    form = {key: str(params[key]) for key in sorted(params)}
    form["sign"] = sign_params(form, secret)
    return form


def encode_signed_form(params: Mapping[str, Any], secret: str) -> str:
    return urlencode(build_signed_form(params, secret))
