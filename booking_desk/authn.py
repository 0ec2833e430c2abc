from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol

import structlog
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import settings
from .errors import InvalidCredentials
from .models import User

logger = structlog.get_logger("booking_desk.authn")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


@dataclass
class AuthIdentity:
    email: str
    role: str
    user_id: int


@dataclass
class LoginResult:
    token: str
    user: User


class SessionGate(Protocol):
    """Issues and checks opaque staff session tokens."""

    def issue(self, user: User) -> str: ...

    def validate(self, token: str) -> bool: ...


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        return False


def _token_exp(minutes: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=max(1, int(minutes)))


class JwtSessionGate:
    """Signed, expiring tokens carrying the staff member's identity."""

    def __init__(
        self,
        secret_key: str | None = None,
        algorithm: str | None = None,
        issuer: str | None = None,
        audience: str | None = None,
        ttl_minutes: int | None = None,
    ):
        self.secret_key = secret_key or settings.AUTH_SECRET_KEY
        self.algorithm = algorithm or settings.AUTH_ALGORITHM
        self.issuer = issuer or settings.AUTH_ISSUER
        self.audience = audience or settings.AUTH_AUDIENCE
        self.ttl_minutes = ttl_minutes or settings.AUTH_ACCESS_TOKEN_MINUTES

    def issue(self, user: User) -> str:
        payload = {
            "sub": user.email,
            "uid": int(user.id),
            "role": user.role.value,
            "iss": self.issuer,
            "aud": self.audience,
            "iat": datetime.now(timezone.utc),
            "exp": _token_exp(self.ttl_minutes),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode(self, token: str) -> AuthIdentity | None:
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
            )
        except JWTError:
            return None

        email = str(payload.get("sub") or "").strip().lower()
        role = str(payload.get("role") or "").strip().upper()
        uid = int(payload.get("uid") or 0)
        if not email or not role or uid <= 0:
            return None
        return AuthIdentity(email=email, role=role, user_id=uid)

    def validate(self, token: str) -> bool:
        return bool(token) and self.decode(token) is not None


default_gate = JwtSessionGate()


def authenticate(db: Session, email: str, password: str, gate: SessionGate | None = None) -> LoginResult:
    """Check staff credentials and issue a session token.

    Every failure raises ``InvalidCredentials`` with the same message so a
    caller cannot tell a missing account from a wrong password.
    """
    gate = gate or default_gate
    normalized_email = (email or "").strip().lower()
    user = db.execute(select(User).where(User.email == normalized_email)).scalar_one_or_none()

    reason = None
    if user is None:
        reason = "unknown_email"
    elif not user.is_active:
        reason = "inactive_user"
    elif not user.password_hash or not verify_password(password, user.password_hash):
        reason = "bad_password"
    elif not user.role.is_staff:
        reason = "role_not_allowed"

    if reason is not None:
        logger.warning("login_failed", email=normalized_email, reason=reason)
        raise InvalidCredentials("Invalid credentials")

    token = gate.issue(user)
    logger.info("login_succeeded", user_id=user.id, role=user.role.value)
    return LoginResult(token=token, user=user)


def bearer_token(authorization_header: str | None) -> str | None:
    raw = (authorization_header or "").strip()
    if not raw.lower().startswith("bearer "):
        return None
    return raw[7:].strip() or None


def identity_from_authorization_header(authorization_header: str | None) -> AuthIdentity | None:
    token = bearer_token(authorization_header)
    if not token:
        return None
    return default_gate.decode(token)
