import logging

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from cms_oauth.logging_util import get_logger


logger = get_logger(__name__)


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware:
    """
    Access log of one line per HTTP request: ``METHOD path - status``.

    Only the path is logged. Query strings carry authorization codes and
    CSRF state and must stay out of the logs.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope["method"]
        path = scope["path"]
        status_code = 500

        async def tracking_send(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, tracking_send)
        except Exception as e:
            logger.error(f"{method} {path} - 500 - {e}")
            raise

        logger.log(_level_for(status_code), f"{method} {path} - {status_code}")
