"""
The two legs of the authorization code flow.

``AuthorizationInitiator`` answers the CMS popup's first request: it checks the
provider and site, mints a CSRF token and redirects to the provider.
``CallbackExchanger`` answers the provider's redirect back: it checks the
``state`` against the CSRF cookie, trades the code for an access token and
renders the page that posts the token to the CMS window.

Both take their configuration at construction time and keep no state between
requests, so any number of flows can run concurrently.
"""

import re
from functools import lru_cache
from typing import Optional

import httpx
from fastapi import status
from fastapi.responses import RedirectResponse, Response
from pydantic import ValidationError

from cms_oauth.config import Settings
from cms_oauth.csrf import (
    CsrfCookieValue,
    generate_csrf_token,
    set_csrf_cookie,
    tokens_match,
)
from cms_oauth.exceptions import AuthFlowError
from cms_oauth.logging_util import get_logger
from cms_oauth.models import (
    CallbackRequest,
    CallbackResult,
    ErrorCode,
    FlowRequest,
    TokenExchangeResponse,
)
from cms_oauth.providers import ProviderDescriptor, ProviderRegistry, TokenRequest
from cms_oauth.renderer import render_result


logger = get_logger(__name__)

CALLBACK_PATH = "/callback"


def callback_url(origin: str) -> str:
    return f"{origin.rstrip('/')}{CALLBACK_PATH}"


@lru_cache(maxsize=256)
def _domain_pattern(entry: str) -> re.Pattern:
    # Literal match except for the first "*", which stands for one or more characters
    return re.compile(re.escape(entry).replace(r"\*", ".+", 1))


def domain_allowed(domain: Optional[str], allowed_domains: list[str]) -> bool:
    """An empty allow-list lets every domain through."""
    if not allowed_domains:
        return True
    return any(_domain_pattern(entry).fullmatch(domain or "") for entry in allowed_domains)


def ensure_usable(provider: ProviderDescriptor) -> None:
    if not provider.implemented:
        raise AuthFlowError(ErrorCode.UNSUPPORTED_BACKEND, provider.name, provider.not_implemented_message)
    if not provider.credentials.is_configured:
        raise AuthFlowError(ErrorCode.MISCONFIGURED_CLIENT, provider.name)


class AuthorizationInitiator:

    def __init__(self, settings: Settings, registry: Optional[ProviderRegistry] = None):
        self.settings = settings
        self.registry = registry or ProviderRegistry(settings)

    @property
    def secure_cookies(self) -> bool:
        return not self.settings.INSECURE_COOKIES

    def initiate(self, flow: FlowRequest) -> Response:
        """Redirects to the provider's consent page, or renders the reason it cannot."""
        try:
            return self._redirect_to_provider(flow)
        except AuthFlowError as e:
            logger.info(f"Authorization rejected for provider={e.provider}: {e.error_code.value}")
            return render_result(e.to_result(), secure_cookies=self.secure_cookies)

    def _redirect_to_provider(self, flow: FlowRequest) -> Response:
        provider = self.registry.resolve(flow.provider)
        if provider is None:
            raise AuthFlowError(ErrorCode.UNSUPPORTED_BACKEND)

        if not domain_allowed(flow.site_id, self.settings.ALLOWED_DOMAINS):
            raise AuthFlowError(ErrorCode.UNSUPPORTED_DOMAIN, provider.name)

        ensure_usable(provider)

        csrf = CsrfCookieValue(provider=provider.name, token=generate_csrf_token())
        auth_url = provider.authorize_url(state=csrf.token, callback_url=callback_url(flow.origin))

        logger.debug(f"Redirecting to {provider.name} authorization endpoint on {provider.hostname}")
        response = RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)
        set_csrf_cookie(response, csrf, secure=self.secure_cookies)
        return response


class CallbackExchanger:
    """
    ``transport`` replaces httpx's network transport for the token request;
    tests pass an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: Settings,
        registry: Optional[ProviderRegistry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.registry = registry or ProviderRegistry(settings)
        self._transport = transport

    @property
    def secure_cookies(self) -> bool:
        return not self.settings.INSECURE_COOKIES

    async def exchange(self, callback: CallbackRequest) -> Response:
        """Always renders the popup result page, which also clears the CSRF cookie."""
        try:
            result = await self._complete(callback)
        except AuthFlowError as e:
            logger.info(f"Callback failed for provider={e.provider}: {e.error_code.value}")
            result = e.to_result()
        return render_result(result, secure_cookies=self.secure_cookies)

    async def _complete(self, callback: CallbackRequest) -> CallbackResult:
        cookie = CsrfCookieValue.decode(callback.csrf_cookie)
        provider = self.registry.resolve(cookie.provider) if cookie else None
        if provider is None:
            raise AuthFlowError(ErrorCode.UNSUPPORTED_BACKEND)

        if not callback.code or not callback.state:
            raise AuthFlowError(ErrorCode.AUTH_CODE_REQUEST_FAILED, provider.name)

        if not tokens_match(cookie.token, callback.state):
            logger.warning(f"CSRF state mismatch on {provider.name} callback, flow aborted")
            raise AuthFlowError(ErrorCode.CSRF_DETECTED, provider.name)

        ensure_usable(provider)

        token_request = provider.token_request(callback.code, callback_url(callback.origin))
        payload = await self._request_token(provider, token_request)

        if payload.error and not payload.access_token:
            logger.info(f"{provider.name} rejected the token request: {payload.error}")
        return CallbackResult.from_token_response(provider.name, payload)

    async def _request_token(self, provider: ProviderDescriptor, token_request: TokenRequest) -> TokenExchangeResponse:
        """
        Single POST to the provider's token endpoint. No retries: a transport
        failure ends the flow and the user starts over.
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.TOKEN_REQUEST_TIMEOUT,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    token_request.url,
                    json=token_request.body,
                    headers={"Accept": "application/json"},
                )
        except (httpx.HTTPError, httpx.InvalidURL):
            logger.error(f"Token request to {provider.hostname} failed", exc_info=True)
            raise AuthFlowError(ErrorCode.TOKEN_REQUEST_FAILED, provider.name)

        try:
            return TokenExchangeResponse.model_validate_json(response.content)
        except ValidationError:
            logger.warning(
                f"Malformed token response from {provider.hostname} (HTTP {response.status_code})"
            )
            raise AuthFlowError(ErrorCode.MALFORMED_RESPONSE, provider.name)
