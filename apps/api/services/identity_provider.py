"""
External identity providers (optional Google sign-in)

The provider is chosen once at startup: Google when both client credentials
are configured, otherwise a disabled provider whose routes answer 404.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt
from sqlmodel import Session, select

from config import Settings
from errors import NotFound, Unauthorized
from models import User, UserRole

logger = logging.getLogger(__name__)

# OAuth users get the least privileged role until an admin promotes them
DEFAULT_EXTERNAL_ROLE = UserRole.STAFF


@dataclass
class ExternalIdentity:
    subject: str
    email: Optional[str] = None
    full_name: Optional[str] = None


class IdentityProvider(ABC):
    name: str
    enabled: bool

    @abstractmethod
    def authorization_url(self, state: str) -> str:
        """URL the browser is redirected to for sign-in"""

    @abstractmethod
    def fetch_identity(self, code: str) -> ExternalIdentity:
        """Exchange an authorization code for the signed-in identity"""


class DisabledIdentityProvider(IdentityProvider):
    name = "disabled"
    enabled = False

    def authorization_url(self, state: str) -> str:
        raise NotFound("External login is not configured")

    def fetch_identity(self, code: str) -> ExternalIdentity:
        raise NotFound("External login is not configured")


class GoogleIdentityProvider(IdentityProvider):
    name = "google"
    enabled = True

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    ISSUERS = {"accounts.google.com", "https://accounts.google.com"}

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str, http_client: Optional[httpx.Client] = None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._http = http_client or httpx.Client(timeout=10.0)

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    def fetch_identity(self, code: str) -> ExternalIdentity:
        try:
            response = self._http.post(self.TOKEN_URL, data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            })
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Google token exchange failed: {e}")
            raise Unauthorized("External login failed")

        id_token = response.json().get("id_token")
        if not id_token:
            raise Unauthorized("External login failed")

        # The token came straight from Google's token endpoint over TLS,
        # so its claims are read without re-verifying the signature.
        try:
            claims = jwt.get_unverified_claims(id_token)
        except JWTError:
            raise Unauthorized("External login failed")

        if claims.get("aud") != self.client_id or claims.get("iss") not in self.ISSUERS:
            raise Unauthorized("External login failed")

        return ExternalIdentity(
            subject=str(claims["sub"]),
            email=claims.get("email"),
            full_name=claims.get("name"),
        )


def build_identity_provider(settings: Settings) -> IdentityProvider:
    if settings.google_enabled:
        logger.info("Google sign-in enabled")
        return GoogleIdentityProvider(
            settings.GOOGLE_CLIENT_ID,
            settings.GOOGLE_CLIENT_SECRET,
            settings.GOOGLE_REDIRECT_URI,
        )
    return DisabledIdentityProvider()


def provision_external_user(session: Session, identity: ExternalIdentity, provider: str = "google") -> User:
    """
    Find or create the local user for an external identity.

    Matches on the provider subject first, then links an existing account
    with the same email, otherwise creates a new staff account with no
    local password.
    """
    user = session.exec(select(User).where(User.google_id == identity.subject)).first()
    if user:
        return user

    if identity.email:
        user = session.exec(select(User).where(User.email == identity.email)).first()
        if user:
            user.google_id = identity.subject
            session.add(user)
            session.commit()
            session.refresh(user)
            logger.info(f"Linked {provider} account to user {user.id}")
            return user

    username = identity.email or f"{provider}_{identity.subject}"
    if session.exec(select(User).where(User.username == username)).first():
        username = f"{provider}_{identity.subject}"

    user = User(
        username=username,
        email=identity.email or "",
        full_name=identity.full_name or "Google User",
        role=DEFAULT_EXTERNAL_ROLE,
        is_active=True,
        google_id=identity.subject,
        password_hash=None,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info(f"Provisioned user {user.id} from {provider} sign-in")
    return user
