import logging
from dataclasses import dataclass, field
from typing import Optional

import requests
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from marketplace.core.config import settings
from marketplace.core.db import get_db
from marketplace.core.errors import Forbidden, Unauthenticated
from marketplace.models.profile import Profile

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


@dataclass
class Identity:
    """What we know about the caller from the identity provider's claims."""

    user_id: str
    email: Optional[str] = None
    phone: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    claims: dict = field(default_factory=dict)


def identity_from_claims(claims: Optional[dict]) -> Optional[Identity]:
    if not claims or not claims.get("sub"):
        return None
    meta = claims.get("user_metadata") or {}
    return Identity(
        user_id=str(claims["sub"]),
        email=claims.get("email") or meta.get("email"),
        phone=claims.get("phone") or None,
        display_name=meta.get("full_name") or meta.get("name"),
        avatar_url=meta.get("avatar_url") or meta.get("picture"),
        claims=claims,
    )


class IdentityResolver:
    """Maps a bearer token to an Identity.

    A token is verified locally when the provider's JWT secret is configured;
    otherwise the provider's userinfo endpoint is asked, with a bounded wait.
    Every failure mode resolves to ``None`` (unauthenticated).
    """

    def __init__(self, jwt_secret: str = "", algorithm: str = "HS256", userinfo_url: str = "",
                 api_key: str = "", timeout: float = 5.0):
        self.jwt_secret = jwt_secret
        self.algorithm = algorithm
        self.userinfo_url = userinfo_url
        self.api_key = api_key
        self.timeout = timeout

    def resolve(self, token: Optional[str]) -> Optional[Identity]:
        if not token:
            return None
        if self.jwt_secret:
            return identity_from_claims(self._decode(token))
        if self.userinfo_url:
            return identity_from_claims(self._fetch_claims(token))
        logger.warning("no identity provider configured; treating request as anonymous")
        return None

    def _decode(self, token: str) -> Optional[dict]:
        try:
            return jwt.decode(
                token,
                self.jwt_secret,
                algorithms=[self.algorithm],
                options={"verify_aud": False},
            )
        except JWTError as e:
            logger.info("rejected bearer token: %s", e)
            return None

    def _fetch_claims(self, token: str) -> Optional[dict]:
        headers = {"Authorization": f"Bearer {token}"}
        if self.api_key:
            headers["apikey"] = self.api_key
        try:
            r = requests.get(self.userinfo_url, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("claims fetch failed: %s", e)
            return None
        if r.status_code != 200:
            logger.info("claims fetch returned http_%s", r.status_code)
            return None
        try:
            data = r.json()
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None
        # userinfo endpoints answer with "id"; tokens carry "sub"
        if "sub" not in data and data.get("id"):
            data = {**data, "sub": data["id"]}
        return data


def get_identity_resolver() -> IdentityResolver:
    return IdentityResolver(
        jwt_secret=settings.AUTH_JWT_SECRET,
        algorithm=settings.AUTH_JWT_ALG,
        userinfo_url=settings.AUTH_USERINFO_URL,
        api_key=settings.AUTH_API_KEY,
        timeout=settings.AUTH_TIMEOUT_SECONDS,
    )


def get_identity_optional(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Optional[Identity]:
    """None when there is no usable session; never raises."""
    if creds is None or (creds.scheme or "").lower() != "bearer":
        return None
    return resolver.resolve(creds.credentials)


def get_current_identity(identity: Optional[Identity] = Depends(get_identity_optional)) -> Identity:
    if identity is None:
        raise Unauthenticated()
    return identity


def get_current_profile(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> Profile:
    """Most actions need the onboarding profile, not just a session."""
    profile = db.query(Profile).filter(Profile.user_id == identity.user_id).first()
    if profile is None:
        raise Forbidden("PROFILE_REQUIRED", "Please complete your profile first.")
    return profile
