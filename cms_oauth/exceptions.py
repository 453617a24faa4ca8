from typing import Optional

from fastapi import Request, status
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from cms_oauth.logging_util import get_logger
from cms_oauth.models import ERROR_MESSAGES, UNKNOWN_PROVIDER, CallbackResult, ErrorCode


logger = get_logger(__name__)


class AuthFlowError(Exception):
    """
    Raised where an authorization flow step fails. The handlers catch it at
    their boundary and render it as the popup's error result; it never
    reaches the ASGI stack.
    """

    def __init__(self, error_code: ErrorCode, provider: str = UNKNOWN_PROVIDER, message: Optional[str] = None):
        self.error_code = error_code
        self.provider = provider
        self.message = message or ERROR_MESSAGES[error_code]
        super().__init__(self.message)

    def to_result(self) -> CallbackResult:
        return CallbackResult.failure(self.provider, self.message, self.error_code)


async def not_found_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Unknown paths and unsupported methods both answer 404 with an empty body."""
    if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
        return Response(status_code=status.HTTP_404_NOT_FOUND)
    return await http_exception_handler(request, exc)


async def unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    logger.error(f"Error handling {request.method} {request.url.path}", exc_info=exc)
    return PlainTextResponse("Internal server error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
