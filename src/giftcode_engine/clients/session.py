from __future__ import annotations

from http.cookies import CookieError, SimpleCookie
from typing import Iterable, Mapping


class SessionStore:
    """Server-issued session tokens for one redemption worker.

    Tokens are captured from every response and replayed as a ``Cookie``
    header; a later token with the same name replaces the earlier one.
    """

    def __init__(self) -> None:
        self._tokens: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._tokens)

    def __bool__(self) -> bool:
        return bool(self._tokens)

    def get(self, name: str) -> str | None:
        return self._tokens.get(name)

    def set(self, name: str, value: str) -> None:
        name = (name or "").strip()
        value = (value or "").strip()
        if name and value:
            self._tokens[name] = value

    def clear(self) -> None:
        self._tokens.clear()

    def capture(self, cookies: Mapping[str, object]) -> None:
        """Store tokens from a parsed cookie mapping (``aiohttp`` ``resp.cookies``)."""
        for name, morsel in cookies.items():
            value = getattr(morsel, "value", morsel)
            self.set(name, str(value) if value is not None else "")

    def capture_headers(self, set_cookie_headers: Iterable[str]) -> None:
        for header in set_cookie_headers:
            parsed: SimpleCookie = SimpleCookie()
            try:
                parsed.load(header)
            except CookieError:
                name, _, rest = header.partition("=")
                self.set(name, rest.split(";", 1)[0])
                continue
            self.capture(parsed)

    def cookie_header(self) -> str | None:
        if not self._tokens:
            return None
        return "; ".join(f"{name}={value}" for name, value in self._tokens.items())

    def snapshot(self) -> dict[str, str]:
        return dict(self._tokens)
