import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Query, Request

from cms_oauth import __version__
from cms_oauth.csrf import CSRF_COOKIE_NAME
from cms_oauth.handlers import AuthorizationInitiator, CallbackExchanger
from cms_oauth.logging_util import get_logger
from cms_oauth.models import CallbackRequest, FlowRequest


logger = get_logger(__name__)

authRouter = APIRouter()
serviceRouter = APIRouter()


def request_origin(request: Request) -> str:
    """``scheme://host[:port]`` of the request as the browser sent it."""
    return f"{request.url.scheme}://{request.url.netloc}"


def get_initiator(request: Request) -> AuthorizationInitiator:
    return request.app.state.initiator


def get_exchanger(request: Request) -> CallbackExchanger:
    return request.app.state.exchanger


@authRouter.get("/auth")
@authRouter.get("/oauth/auth")
@authRouter.get("/oauth/authorize")
async def authorize(
    request: Request,
    provider: Optional[str] = Query(None),
    site_id: Optional[str] = Query(None),
    initiator: AuthorizationInitiator = Depends(get_initiator),
):
    """
    ## Authorization start

    Opened by the CMS in a popup with ``provider`` and ``site_id``. Redirects
    to the provider's consent page with a fresh CSRF token as ``state``.
    """
    flow = FlowRequest(provider=provider, site_id=site_id, origin=request_origin(request))
    return initiator.initiate(flow)


@authRouter.get("/callback")
@authRouter.get("/oauth/redirect")
async def callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    # A repeated csrf-token cookie resolves to its last occurrence
    csrf_token: Optional[str] = Cookie(None, alias=CSRF_COOKIE_NAME),
    exchanger: CallbackExchanger = Depends(get_exchanger),
):
    """
    ## Provider callback

    Registered as the OAuth app's redirect URI. Exchanges ``code`` for an
    access token and hands the result to the CMS window via postMessage.
    """
    callback_request = CallbackRequest(
        code=code,
        state=state,
        csrf_cookie=csrf_token,
        origin=request_origin(request),
    )
    return await exchanger.exchange(callback_request)


@serviceRouter.get("/health")
async def health(request: Request):
    health = {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "environment": request.app.state.settings.APP_ENV,
        "uptime": time.monotonic() - request.app.state.started_at,
    }
    logger.debug(f"Health check: {health}")
    return health


@serviceRouter.get("/")
async def index():
    return {
        "message": "Git CMS OAuth Server",
        "version": __version__,
        "endpoints": {
            "health": "/health",
            "auth": "/auth",
            "oauth": "/oauth",
            "callback": "/callback",
        },
    }
