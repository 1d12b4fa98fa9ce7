# Overview: Validates bearer session tokens issued by the sign-in collaborator.

"""
Session token validation.

Signing in happens elsewhere; this module only turns a bearer token into the
authenticated Principal the sale engine needs (user_id, role, store_id).
Tokens are stored hashed with SHA-256 and bound to a store at issue time.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import as_utc_naive, utcnow

SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str
    store_id: int | None
    name: str | None = None


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def issue_token(user_id: int, ttl: timedelta = SESSION_ABSOLUTE_TIMEOUT) -> str:
    """
    Create a session for an existing user and return the plaintext token.

    Raises ValueError if the user does not exist or is inactive.
    """
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        raise ValueError("User not found or inactive")

    plaintext_token = generate_token()
    session = SessionToken(
        user_id=user.id,
        store_id=user.store_id,
        token_hash=hash_token(plaintext_token),
        expires_at=utcnow() + ttl,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return plaintext_token


def validate_session(token: str) -> Principal | None:
    """
    Return the Principal for a live token, or None.

    None when the token is unknown, revoked, expired, or its user has been
    deactivated.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if as_utc_naive(session.expires_at) < utcnow():
        return None

    user = session.user
    if not user or not user.is_active:
        return None

    principal = Principal(
        user_id=user.id,
        role=user.role,
        store_id=session.store_id,
        name=user.name,
    )
    # Leave no open read transaction behind for the request handler
    db.session.commit()
    return principal


def revoke_token(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        return False

    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True
