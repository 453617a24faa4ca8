import re

import httpx
import pytest
from fastapi.testclient import TestClient

from cms_oauth import __version__
from cms_oauth.http_server import create_app


COOKIE_RE = re.compile(r"csrf-token=(github|gitlab)_([0-9a-f]{32});")
TOKEN = "0123456789abcdef0123456789abcdef"

AUTH_PATHS = ["/auth", "/oauth/auth", "/oauth/authorize"]
CALLBACK_PATHS = ["/callback", "/oauth/redirect"]


def start_flow(client: TestClient, provider: str = "github", path: str = "/auth") -> tuple[httpx.Response, str]:
    response = client.get(path, params={"provider": provider, "site_id": "a.example.com"})
    match = COOKIE_RE.match(response.headers["set-cookie"])
    assert match, response.headers["set-cookie"]
    return response, f"{match.group(1)}_{match.group(2)}"


class TestAuthorizeRoute:

    @pytest.mark.parametrize("path", AUTH_PATHS)
    def test_redirects_to_github(self, client, path):
        response, cookie_value = start_flow(client, path=path)

        assert response.status_code == 302
        assert response.headers["location"].startswith("https://github.com/login/oauth/authorize?")
        assert "scope=repo%2Cuser" in response.headers["location"]
        assert cookie_value.startswith("github_")
        assert response.content == b""

    def test_gitlab_redirect_uri_points_back_at_this_server(self, client):
        response, _ = start_flow(client, provider="gitlab")
        assert "redirect_uri=http%3A%2F%2Ftestserver%2Fcallback" in response.headers["location"]

    def test_redirect_uri_follows_request_scheme_and_host(self, settings, token_endpoint):
        app = create_app(settings, token_transport=token_endpoint.transport)
        with TestClient(app, base_url="https://oauth.example.com", follow_redirects=False) as client:
            response, _ = start_flow(client, provider="gitlab")
        assert "redirect_uri=https%3A%2F%2Foauth.example.com%2Fcallback" in response.headers["location"]

    @pytest.mark.parametrize("provider", ["gitea", "bitbucket"])
    def test_unsupported_backend_sets_no_active_cookie(self, client, provider):
        response = client.get("/auth", params={"provider": provider, "site_id": "a.example.com"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/html;charset=UTF-8"
        assert '"errorCode":"UNSUPPORTED_BACKEND"' in response.text
        assert response.headers["set-cookie"].startswith("csrf-token=deleted;")
        assert "Max-Age=0" in response.headers["set-cookie"]

    def test_disallowed_domain(self, client):
        response = client.get("/auth", params={"provider": "github", "site_id": "evil.com"})
        assert '"errorCode":"UNSUPPORTED_DOMAIN"' in response.text


class TestCallbackRoute:

    @pytest.mark.parametrize("path", CALLBACK_PATHS)
    def test_full_round_trip(self, client, token_endpoint, path):
        _, cookie_value = start_flow(client)
        state = cookie_value.split("_", 1)[1]

        response = client.get(
            path,
            params={"code": "abc", "state": state},
            headers={"Cookie": f"csrf-token={cookie_value}"},
        )

        assert response.status_code == 200
        assert 'token":"XYZ"' in response.text
        assert '"error"' not in response.text
        assert "Max-Age=0" in response.headers["set-cookie"]
        assert len(token_endpoint.requests) == 1

    def test_round_trip_with_wrong_state(self, client, token_endpoint):
        _, cookie_value = start_flow(client)

        response = client.get(
            "/callback",
            params={"code": "abc", "state": "f" * 32},
            headers={"Cookie": f"csrf-token={cookie_value}"},
        )

        assert '"errorCode":"CSRF_DETECTED"' in response.text
        assert token_endpoint.requests == []

    def test_missing_state(self, client):
        response = client.get(
            "/callback",
            params={"code": "abc"},
            headers={"Cookie": f"csrf-token=github_{TOKEN}"},
        )

        assert response.status_code == 200
        assert 'errorCode":"AUTH_CODE_REQUEST_FAILED"' in response.text
        assert "Max-Age=0" in response.headers["set-cookie"]

    def test_cookie_among_others(self, client):
        response = client.get(
            "/callback",
            params={"code": "abc", "state": TOKEN},
            headers={"Cookie": f"theme=dark; csrf-token=github_{TOKEN}; _ga=GA1.2"},
        )
        assert 'token":"XYZ"' in response.text

    def test_repeated_cookie_uses_the_last_value(self, client, token_endpoint):
        other = "f" * 32
        response = client.get(
            "/callback",
            params={"code": "abc", "state": TOKEN},
            headers={"Cookie": f"csrf-token=github_{other}; csrf-token=github_{TOKEN}"},
        )
        assert 'token":"XYZ"' in response.text

        response = client.get(
            "/callback",
            params={"code": "abc", "state": TOKEN},
            headers={"Cookie": f"csrf-token=github_{TOKEN}; csrf-token=github_{other}"},
        )
        assert '"errorCode":"CSRF_DETECTED"' in response.text
        assert len(token_endpoint.requests) == 1

    def test_without_cookie(self, client):
        response = client.get("/callback", params={"code": "abc", "state": TOKEN})

        assert '"errorCode":"UNSUPPORTED_BACKEND"' in response.text
        assert "'authorizing:unknown'" in response.text


class TestRouting:

    @pytest.mark.parametrize("path", [
        "/nope", "/oauth", "/auth/extra", "/docs", "/openapi.json",
        "/auth/", "/oauth/auth/", "/oauth/authorize/", "/callback/", "/oauth/redirect/",
    ])
    def test_unknown_path_is_empty_404(self, client, path):
        response = client.get(path)

        assert response.status_code == 404
        assert response.content == b""

    @pytest.mark.parametrize("path", AUTH_PATHS + CALLBACK_PATHS)
    def test_other_methods_are_empty_404(self, client, path):
        response = client.post(path)

        assert response.status_code == 404
        assert response.content == b""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["environment"] == "test"
        assert body["version"] == __version__
        assert body["uptime"] >= 0
        assert body["timestamp"]

    def test_index(self, client):
        body = client.get("/").json()

        assert body["version"] == __version__
        assert body["endpoints"]["callback"] == "/callback"

    def test_unexpected_error_is_a_500(self, settings, token_endpoint, monkeypatch):
        app = create_app(settings, token_transport=token_endpoint.transport)

        def explode(flow):
            raise RuntimeError("boom")

        monkeypatch.setattr(app.state.initiator, "initiate", explode)
        with TestClient(app, raise_server_exceptions=False, follow_redirects=False) as client:
            response = client.get("/auth", params={"provider": "github"})

        assert response.status_code == 500
        assert response.text == "Internal server error"
