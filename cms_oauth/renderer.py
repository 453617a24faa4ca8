from pathlib import Path

from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from cms_oauth.csrf import clear_csrf_cookie
from cms_oauth.models import CallbackResult


HTML_MEDIA_TYPE = "text/html;charset=UTF-8"

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
# Compact JSON, keys kept in insertion order, matching what the CMS parses
templates.env.policies["json.dumps_kwargs"] = {"sort_keys": False, "separators": (",", ":")}


def render_result(result: CallbackResult, *, secure_cookies: bool) -> HTMLResponse:
    """
    Renders the popup page that hands ``result`` to the window that opened it.

    The page first announces ``authorizing:<provider>`` to the opener with a
    wildcard origin and only sends the result once the opener echoes that
    message back, replying to the origin the echo came from. The CSRF cookie
    is always cleared since every rendered page ends the flow.
    """
    html = templates.get_template("authorization.html").render(
        provider=result.provider,
        state=result.state,
        content=result.content(),
    )
    response = HTMLResponse(content=html, media_type=HTML_MEDIA_TYPE)
    clear_csrf_cookie(response, secure=secure_cookies)
    return response
