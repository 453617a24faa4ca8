from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


UNKNOWN_PROVIDER = "unknown"


class ErrorCode(str, Enum):
    UNSUPPORTED_BACKEND = "UNSUPPORTED_BACKEND"
    UNSUPPORTED_DOMAIN = "UNSUPPORTED_DOMAIN"
    MISCONFIGURED_CLIENT = "MISCONFIGURED_CLIENT"
    AUTH_CODE_REQUEST_FAILED = "AUTH_CODE_REQUEST_FAILED"
    CSRF_DETECTED = "CSRF_DETECTED"
    TOKEN_REQUEST_FAILED = "TOKEN_REQUEST_FAILED"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"


# Shown to the CMS user inside the popup result
ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.UNSUPPORTED_BACKEND: "Your Git backend is not supported by the authenticator.",
    ErrorCode.UNSUPPORTED_DOMAIN: "Your domain is not allowed to use the authenticator.",
    ErrorCode.MISCONFIGURED_CLIENT: "OAuth app client ID or secret is not configured.",
    ErrorCode.AUTH_CODE_REQUEST_FAILED: "Failed to receive an authorization code. Please try again later.",
    ErrorCode.CSRF_DETECTED: "Potential CSRF attack detected. Authentication flow aborted.",
    ErrorCode.TOKEN_REQUEST_FAILED: "Failed to request an access token. Please try again later.",
    ErrorCode.MALFORMED_RESPONSE: "Server responded with malformed data. Please try again later.",
}


class FlowRequest(BaseModel):
    """Query parameters of an authorization start, exactly as received."""

    provider: Optional[str] = None
    site_id: Optional[str] = None
    origin: str


class CallbackRequest(BaseModel):
    """Query parameters and CSRF cookie of a provider callback, exactly as received."""

    code: Optional[str] = None
    state: Optional[str] = None
    csrf_cookie: Optional[str] = None
    origin: str


class TokenExchangeResponse(BaseModel):
    """Body of the provider's token endpoint reply. Other keys are ignored."""

    access_token: Optional[str] = None
    error: Optional[str] = None


class CallbackResult(BaseModel):
    """
    Terminal outcome of a flow, posted to the opener window.

    A non-empty ``error`` makes this an error result. ``error_code`` is absent
    when the error string came from the provider itself.
    """

    provider: str = UNKNOWN_PROVIDER
    token: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = Field(default=None, serialization_alias="errorCode")

    @classmethod
    def success(cls, provider: str, token: str) -> "CallbackResult":
        return cls(provider=provider, token=token)

    @classmethod
    def failure(cls, provider: str, error: str, error_code: Optional[ErrorCode] = None) -> "CallbackResult":
        return cls(provider=provider, error=error, error_code=error_code)

    @classmethod
    def from_token_response(cls, provider: str, payload: TokenExchangeResponse) -> "CallbackResult":
        # The provider's own error string is passed through untouched
        return cls(provider=provider, token=payload.access_token or "", error=payload.error or "")

    @property
    def state(self) -> str:
        return "error" if self.error else "success"

    def content(self) -> dict:
        if self.error:
            return self.model_dump(
                include={"provider", "error", "error_code"},
                by_alias=True,
                exclude_none=True,
                mode="json",
            )
        return {"provider": self.provider, "token": self.token or ""}
