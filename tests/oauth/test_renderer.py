from cms_oauth.models import CallbackResult, ErrorCode
from cms_oauth.renderer import render_result


class TestRenderResult:

    def render(self, result: CallbackResult, secure_cookies: bool = True):
        response = render_result(result, secure_cookies=secure_cookies)
        return response, response.body.decode("utf-8")

    def test_success_page(self):
        response, body = self.render(CallbackResult.success("github", "XYZ"))

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/html;charset=UTF-8"
        assert '{"provider":"github","token":"XYZ"}' in body
        assert "'authorization:github:success:' + JSON.stringify(content)" in body
        assert "window.opener?.postMessage('authorizing:github', '*');" in body
        assert '"error"' not in body

    def test_error_page(self):
        result = CallbackResult.failure("gitlab", "OAuth app client ID or secret is not configured.",
                                        ErrorCode.MISCONFIGURED_CLIENT)
        _, body = self.render(result)

        assert (
            '{"provider":"gitlab","error":"OAuth app client ID or secret is not configured.",'
            '"errorCode":"MISCONFIGURED_CLIENT"}'
        ) in body
        assert "'authorization:gitlab:error:'" in body
        assert "data === 'authorizing:gitlab'" in body

    def test_provider_reported_error_has_no_error_code(self):
        _, body = self.render(CallbackResult.failure("github", "bad_verification_code"))

        assert '{"provider":"github","error":"bad_verification_code"}' in body
        assert "errorCode" not in body

    def test_unknown_provider(self):
        _, body = self.render(CallbackResult.failure("unknown", "nope", ErrorCode.UNSUPPORTED_BACKEND))
        assert "'authorizing:unknown'" in body

    def test_free_form_text_cannot_break_out_of_the_script(self):
        hostile = "</script><script>alert('x')</script>"
        _, body = self.render(CallbackResult.failure("github", hostile))

        assert "</script><script>" not in body
        assert "alert('x')" not in body
        assert body.count("</script>") == 1

    def test_always_clears_csrf_cookie(self):
        response, _ = self.render(CallbackResult.success("github", "XYZ"))

        cookie = response.headers["set-cookie"]
        assert cookie.startswith("csrf-token=deleted;")
        assert "Max-Age=0" in cookie
        assert "Secure" in cookie

    def test_insecure_mode_cookie(self):
        response, _ = self.render(CallbackResult.success("github", "XYZ"), secure_cookies=False)
        assert "Secure" not in response.headers["set-cookie"]


class TestCallbackResult:

    def test_state(self):
        assert CallbackResult.success("github", "t").state == "success"
        assert CallbackResult.failure("github", "boom").state == "error"

    def test_empty_provider_error_is_a_success(self):
        result = CallbackResult(provider="github", token="", error="")
        assert result.state == "success"
        assert result.content() == {"provider": "github", "token": ""}

    def test_error_content_keys(self):
        result = CallbackResult.failure("github", "msg", ErrorCode.CSRF_DETECTED)
        assert result.content() == {"provider": "github", "error": "msg", "errorCode": "CSRF_DETECTED"}
