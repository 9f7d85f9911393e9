"""
Credentials and bearer tokens.

Passwords are hashed with passlib; access tokens are HMAC-signed JWTs
carrying the user id in ``sub``. Google sign-in tokens are verified
against a configured JSON web key set.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import LedgerSettings
from .errors import UnauthorizedError

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    return pwd_context.verify(plain_password, password_hash)


@dataclass(frozen=True)
class Session:
    """Identity resolved from a bearer token, handed explicitly to every ledger call."""
    user_id: UUID
    expires_at: Optional[datetime] = None


class TokenIssuer:
    def __init__(self, settings: LedgerSettings):
        self.secret = settings.jwt_secret
        self.algorithm = settings.jwt_algorithm
        self.ttl = timedelta(minutes=settings.access_token_ttl_minutes)

    def issue(self, user_id: UUID) -> str:
        expire = datetime.now(timezone.utc) + self.ttl
        return jwt.encode({"sub": str(user_id), "exp": expire}, self.secret, algorithm=self.algorithm)

    def resolve(self, token: str) -> Session:
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
            user_id = UUID(payload["sub"])
        except (JWTError, KeyError, ValueError, TypeError):
            raise UnauthorizedError()
        exp = payload.get("exp")
        expires_at = datetime.fromtimestamp(exp, tz=timezone.utc) if exp else None
        return Session(user_id=user_id, expires_at=expires_at)


@dataclass(frozen=True)
class ExternalIdentity:
    email: str
    name: Optional[str] = None


class GoogleTokenVerifier:
    ISSUERS = ("accounts.google.com", "https://accounts.google.com")

    def __init__(self, client_id: Optional[str], jwks: Optional[str]):
        self.client_id = client_id
        self.jwks = json.loads(jwks) if jwks else None

    @property
    def is_available(self) -> bool:
        return bool(self.client_id and self.jwks)

    def verify(self, id_token: str) -> ExternalIdentity:
        if not self.is_available:
            raise UnauthorizedError("Google sign-in is not available")
        try:
            claims = jwt.decode(
                id_token,
                self.jwks,
                algorithms=["RS256"],
                audience=self.client_id,
                options={"verify_at_hash": False},
            )
        except JWTError:
            raise UnauthorizedError("Invalid Google credentials")
        if claims.get("iss") not in self.ISSUERS or not claims.get("email_verified"):
            raise UnauthorizedError("Invalid Google credentials")
        return ExternalIdentity(email=claims["email"], name=claims.get("name"))
