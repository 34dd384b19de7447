"""Identity token verification (and minting, for trusted issuers and tests)."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from assignment_engine.config import Settings, get_settings
from assignment_engine.errors import AuthenticationFailure

LEARNER = "learner"
REVIEWER = "reviewer"
ROLES = (LEARNER, REVIEWER)


@dataclass(frozen=True)
class Identity:
    uid: str
    role: str = LEARNER

    @property
    def is_reviewer(self) -> bool:
        return self.role == REVIEWER


def issue_identity_token(
    uid: str,
    role: str = LEARNER,
    settings: Optional[Settings] = None,
    ttl_minutes: Optional[int] = None,
) -> str:
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    ttl = settings.identity_ttl_minutes if ttl_minutes is None else ttl_minutes
    payload = {
        "sub": uid,
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=ttl),
    }
    return jwt.encode(payload, settings.identity_secret, algorithm=settings.identity_algorithm)


def verify_identity_token(token: str, settings: Optional[Settings] = None) -> Identity:
    """Decode a bearer token into an `Identity`.

    Raises:
        AuthenticationFailure: if the token is missing, expired, forged or has no subject.
    """
    settings = settings or get_settings()
    if not token:
        raise AuthenticationFailure()
    try:
        payload = jwt.decode(
            token,
            settings.identity_secret,
            algorithms=[settings.identity_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationFailure("Identity token has expired.")
    except jwt.InvalidTokenError:
        raise AuthenticationFailure("Invalid identity token.")

    role = payload.get("role", LEARNER)
    if role not in ROLES:
        raise AuthenticationFailure(f"Unknown role: {role!r}")
    return Identity(uid=str(payload["sub"]), role=role)


def bearer_token(authorization: Optional[str]) -> str:
    """Extract the token from an ``Authorization: Bearer ...`` header value."""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthenticationFailure()
    return authorization.split(" ", 1)[1].strip()
