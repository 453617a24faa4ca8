"""
CSRF protection for the two legs of the flow.

No server-side state is kept: the token minted on the authorize leg travels
to the provider as ``state`` and back to us as a short-lived cookie of the
form ``csrf-token=<provider>_<32 hex chars>``.
"""

import hmac
import re
import secrets
from dataclasses import dataclass
from typing import Optional

from fastapi.responses import Response


CSRF_COOKIE_NAME = "csrf-token"
CSRF_COOKIE_MAX_AGE = 600  # 10 minutes
CSRF_TOKEN_BYTES = 16

_COOKIE_VALUE_RE = re.compile(r"([a-z-]+?)_([0-9a-f]{32})")


@dataclass(frozen=True, slots=True)
class CsrfCookieValue:
    provider: str
    token: str

    def encode(self) -> str:
        return f"{self.provider}_{self.token}"

    @classmethod
    def decode(cls, raw: Optional[str]) -> Optional["CsrfCookieValue"]:
        if not raw:
            return None
        match = _COOKIE_VALUE_RE.fullmatch(raw)
        if not match:
            return None
        return cls(provider=match.group(1), token=match.group(2))


def generate_csrf_token() -> str:
    return secrets.token_hex(CSRF_TOKEN_BYTES)


def tokens_match(expected: Optional[str], received: Optional[str]) -> bool:
    if not expected or not received:
        return False
    # constant-time compare
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


def set_csrf_cookie(response: Response, value: CsrfCookieValue, *, secure: bool) -> None:
    # SameSite=Lax so the browser still sends the cookie on the provider's redirect back
    response.set_cookie(
        CSRF_COOKIE_NAME,
        value.encode(),
        max_age=CSRF_COOKIE_MAX_AGE,
        path="/",
        secure=secure,
        httponly=True,
        samesite="Lax",
    )


def clear_csrf_cookie(response: Response, *, secure: bool) -> None:
    response.set_cookie(
        CSRF_COOKIE_NAME,
        "deleted",
        max_age=0,
        path="/",
        secure=secure,
        httponly=True,
        samesite="Lax",
    )
