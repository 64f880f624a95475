"""Identity provider (Google OAuth) package."""

from organizer.services.identity.google_identity import (
    GoogleIdentityProvider,
    IdentityProvider,
    IdentityProviderError,
    OAuthToken,
)

__all__ = [
    "GoogleIdentityProvider",
    "IdentityProvider",
    "IdentityProviderError",
    "OAuthToken",
]
