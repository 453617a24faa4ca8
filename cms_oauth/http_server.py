import time
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException

from cms_oauth import __version__
from cms_oauth.config import Settings, get_settings
from cms_oauth.exceptions import not_found_handler, unhandled_exception_handler
from cms_oauth.handlers import AuthorizationInitiator, CallbackExchanger
from cms_oauth.logging_util import configure_logging, get_logger
from cms_oauth.middleware import RequestLoggingMiddleware
from cms_oauth.providers import ProviderRegistry
from cms_oauth.routes import authRouter, serviceRouter


logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    token_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Builds the ASGI app. Also usable as a uvicorn factory:

        uvicorn cms_oauth.http_server:create_app --factory
    """
    if settings is None:
        settings = get_settings()

    # No interactive docs and no slash redirects: every other path is a 404
    app = FastAPI(
        title="Git CMS OAuth Server",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        redirect_slashes=False,
    )

    registry = ProviderRegistry(settings)
    app.state.settings = settings
    app.state.started_at = time.monotonic()
    app.state.initiator = AuthorizationInitiator(settings, registry)
    app.state.exchanger = CallbackExchanger(settings, registry, transport=token_transport)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(StarletteHTTPException, not_found_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.include_router(authRouter, prefix="")
    app.include_router(serviceRouter, prefix="")
    return app


def main():
    settings = get_settings()
    configure_logging(level=settings.LOG_LEVEL, log_file=settings.LOG_FILE)

    configured = [provider.name for provider in ProviderRegistry(settings) if provider.credentials.is_configured]
    scheme = "http" if settings.INSECURE_COOKIES or settings.HOST in ("localhost", "127.0.0.1") else "https"
    logger.info(
        f"Auth server listening on {scheme}://{settings.HOST}:{settings.PORT} "
        f"(env={settings.APP_ENV}, providers={','.join(configured)})"
    )

    uvicorn.run(
        create_app(settings),
        host=settings.HOST,
        port=settings.PORT,
        proxy_headers=True,
        forwarded_allow_ips=settings.FORWARDED_ALLOW_IPS,
        access_log=False,
        log_config=None,
    )


if __name__ == "__main__":
    main()
