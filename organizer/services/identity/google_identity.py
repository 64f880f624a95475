"""
Google Identity Provider

Sign-in and the calendar both use one delegated Google credential. In a
browser this is a consent popup; here it is the standard OAuth
authorization-code redirect:

1. Send the user to authorization_url()
2. Google redirects back with ?code=...
3. exchange_code() trades it for a bearer token
4. fetch_identity() asks the userinfo endpoint who the token belongs to

Revocation on sign-out is best-effort; callers decide what a failure means.
"""

from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import urlencode

import requests
import structlog
from pydantic import BaseModel
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from organizer.config import GoogleOAuthSettings, get_settings
from organizer.models.profile import IdentityAssertion


logger = structlog.get_logger(__name__)

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"
REVOKE_URL = "https://oauth2.googleapis.com/revoke"


class OAuthToken(BaseModel):
    access_token: str
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    token_type: str = "Bearer"


class IdentityProvider(ABC):
    """Abstract external identity / consent flow."""

    @abstractmethod
    def authorization_url(self, state: Optional[str] = None) -> str:
        pass

    @abstractmethod
    async def exchange_code(self, code: str) -> OAuthToken:
        """
        Trade an authorization code for a bearer token.

        Raises:
            IdentityProviderError: consent failed or the network is down
        """
        pass

    @abstractmethod
    async def fetch_identity(self, access_token: str) -> IdentityAssertion:
        """
        Resolve a bearer token to email / name / picture.

        Raises:
            IdentityProviderError: token rejected or the network is down
        """
        pass

    @abstractmethod
    async def revoke(self, access_token: str) -> bool:
        """Revoke a token. Returns False instead of raising."""
        pass


class GoogleIdentityProvider(IdentityProvider):
    """Google OAuth 2.0 endpoints over plain HTTPS."""

    def __init__(
        self,
        settings: Optional[GoogleOAuthSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        self._settings = settings or get_settings().google_oauth
        self._http = session or requests.Session()
        self._timeout = self._settings.request_timeout_seconds

    def authorization_url(self, state: Optional[str] = None) -> str:
        params = {
            "client_id": self._settings.client_id,
            "redirect_uri": self._settings.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self._settings.scopes_list),
            "access_type": "online",
            "include_granted_scopes": "true",
            "prompt": "consent",
        }
        if state:
            params["state"] = state
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    @retry(
        retry=retry_if_exception_type(requests.ConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    def _post(self, url: str, data: dict) -> requests.Response:
        return self._http.post(url, data=data, timeout=self._timeout)

    @retry(
        retry=retry_if_exception_type(requests.ConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    def _get(self, url: str, token: str) -> requests.Response:
        return self._http.get(
            url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=self._timeout,
        )

    async def exchange_code(self, code: str) -> OAuthToken:
        try:
            response = self._post(TOKEN_URL, {
                "code": code,
                "client_id": self._settings.client_id,
                "client_secret": self._settings.client_secret,
                "redirect_uri": self._settings.redirect_uri,
                "grant_type": "authorization_code",
            })
        except requests.RequestException as e:
            raise IdentityProviderError(f"Could not reach Google: {e}") from e

        if response.status_code != 200:
            raise IdentityProviderError(
                f"Google rejected the authorization code ({response.status_code})"
            )
        return OAuthToken.model_validate(response.json())

    async def fetch_identity(self, access_token: str) -> IdentityAssertion:
        try:
            response = self._get(USERINFO_URL, access_token)
        except requests.RequestException as e:
            raise IdentityProviderError(f"Could not reach Google: {e}") from e

        if response.status_code == 401:
            raise IdentityProviderError("Google session expired, sign in again")
        if response.status_code != 200:
            raise IdentityProviderError(
                f"Google user info request failed ({response.status_code})"
            )

        data = response.json()
        if not data.get("email"):
            raise IdentityProviderError("Google did not return an email address")
        return IdentityAssertion(
            email=data["email"],
            name=data.get("name"),
            picture=data.get("picture"),
        )

    async def revoke(self, access_token: str) -> bool:
        try:
            response = self._http.post(
                REVOKE_URL,
                params={"token": access_token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.warning("token_revoke_failed", error=str(e))
            return False
        if response.status_code != 200:
            logger.warning("token_revoke_rejected", status=response.status_code)
            return False
        return True


class IdentityProviderError(Exception):
    """Identity provider or network failure during sign-in."""
    pass
