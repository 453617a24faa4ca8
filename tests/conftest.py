from typing import Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from cms_oauth.config import Settings
from cms_oauth.http_server import create_app


class FakeTokenEndpoint:
    """
    Provider token endpoint behind an ``httpx.MockTransport``. Records every
    request and answers with whatever the test configured.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.json: object = {"access_token": "XYZ", "token_type": "bearer", "scope": "repo,user"}
        self.content: Optional[bytes] = None
        self.error: Optional[Exception] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.content is not None:
            return httpx.Response(self.status_code, content=self.content)
        return httpx.Response(self.status_code, json=self.json)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def settings_factory():
    def make_settings(**overrides) -> Settings:
        values = {
            "APP_ENV": "test",
            "ALLOWED_DOMAINS": "*.example.com",
            "GITHUB_CLIENT_ID": "gh-client",
            "GITHUB_CLIENT_SECRET": "gh-secret",
            "GITLAB_CLIENT_ID": "gl-client",
            "GITLAB_CLIENT_SECRET": "gl-secret",
        }
        values.update(overrides)
        return Settings.model_validate(values)

    return make_settings


@pytest.fixture
def settings(settings_factory) -> Settings:
    return settings_factory()


@pytest.fixture
def token_endpoint() -> FakeTokenEndpoint:
    return FakeTokenEndpoint()


@pytest.fixture
def client(settings, token_endpoint):
    app = create_app(settings, token_transport=token_endpoint.transport)
    with TestClient(app, follow_redirects=False) as client:
        yield client
