"""
Git hosting providers the relay can broker an authorization code flow for.

Each provider is a small class carrying its own endpoint paths, scope and
per-provider request shaping. ``ProviderRegistry`` binds the classes to the
configured credentials once, so the handlers never branch on provider names.

    GitHub:    https://docs.github.com/en/apps/oauth-apps/building-oauth-apps/authorizing-oauth-apps
    GitLab:    https://docs.gitlab.com/ee/api/oauth2.html#authorization-code-flow
"""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional
from urllib.parse import urlencode

from cms_oauth.config import ProviderCredentials, Settings


class ProviderId(str, Enum):
    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"


@dataclass(frozen=True, slots=True)
class TokenRequest:
    url: str
    body: dict[str, str]


class ProviderDescriptor:
    id: ClassVar[ProviderId]
    display_name: ClassVar[str]
    authorize_path: ClassVar[str] = ""
    token_path: ClassVar[str] = ""
    scope: ClassVar[str] = ""
    implemented: ClassVar[bool] = True

    def __init__(self, credentials: ProviderCredentials):
        self.credentials = credentials

    @property
    def name(self) -> str:
        return self.id.value

    @property
    def hostname(self) -> str:
        return self.credentials.hostname

    @property
    def not_implemented_message(self) -> str:
        return f"{self.display_name} OAuth is not yet supported."

    def authorize_params(self, callback_url: str) -> dict[str, str]:
        """Query parameters the provider needs besides client_id, scope and state."""
        return {}

    def token_params(self, callback_url: str) -> dict[str, str]:
        """Token request fields the provider needs besides code and client credentials."""
        return {}

    def authorize_url(self, state: str, callback_url: str) -> str:
        params = {
            "client_id": self.credentials.client_id,
            **self.authorize_params(callback_url),
            "scope": self.scope,
            "state": state,
        }
        return f"https://{self.hostname}{self.authorize_path}?{urlencode(params)}"

    def token_request(self, code: str, callback_url: str) -> TokenRequest:
        body = {
            "code": code,
            "client_id": self.credentials.client_id,
            "client_secret": self.credentials.client_secret,
            **self.token_params(callback_url),
        }
        return TokenRequest(url=f"https://{self.hostname}{self.token_path}", body=body)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} hostname={self.hostname!r} configured={self.credentials.is_configured}>"


class GitHubProvider(ProviderDescriptor):
    # GitHub falls back to the OAuth app's registered callback URL
    id = ProviderId.GITHUB
    display_name = "GitHub"
    authorize_path = "/login/oauth/authorize"
    token_path = "/login/oauth/access_token"
    scope = "repo,user"


class GitLabProvider(ProviderDescriptor):
    id = ProviderId.GITLAB
    display_name = "GitLab"
    authorize_path = "/oauth/authorize"
    token_path = "/oauth/token"
    scope = "api"

    def authorize_params(self, callback_url: str) -> dict[str, str]:
        return {"redirect_uri": callback_url, "response_type": "code"}

    def token_params(self, callback_url: str) -> dict[str, str]:
        return {"grant_type": "authorization_code", "redirect_uri": callback_url}


class BitbucketProvider(ProviderDescriptor):
    id = ProviderId.BITBUCKET
    display_name = "Bitbucket"
    implemented = False


PROVIDER_CLASSES: dict[ProviderId, type[ProviderDescriptor]] = {
    cls.id: cls for cls in (GitHubProvider, GitLabProvider, BitbucketProvider)
}


class ProviderRegistry:
    """Supported providers bound to their configured credentials."""

    def __init__(self, settings: Settings):
        self._providers: dict[str, ProviderDescriptor] = {
            provider_id.value: cls(settings.credentials_for(provider_id.value))
            for provider_id, cls in PROVIDER_CLASSES.items()
        }

    def resolve(self, name: Optional[str]) -> Optional[ProviderDescriptor]:
        """Returns the provider for ``name``, or None when it is not supported."""
        if not name:
            return None
        return self._providers.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __iter__(self):
        return iter(self._providers.values())
