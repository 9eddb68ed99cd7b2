"""
Auth service: password login and bearer-token handling.

Users log in with email and password and receive a signed JWT that is
sent back as ``Authorization: Bearer <token>`` on every request.  The
token carries the user id, email and role; the user row is re-loaded on
every request so deactivation takes effect immediately.
"""

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from flask import current_app
from jose import JWTError, jwt
from sqlalchemy import func
from werkzeug.security import check_password_hash, generate_password_hash

from app.exceptions import AuthenticationError, PermissionDeniedError, ValidationError
from app.extensions import db
from app.models.user import ROLE_ADMIN, User
from app.services import audit_service

logger = logging.getLogger(__name__)


# -- Password hashing ------------------------------------------------------

def hash_password(plain_password: str) -> str:
    """Hash a plaintext password with werkzeug's scrypt KDF."""
    return generate_password_hash(plain_password, method="scrypt")


def verify_password(password_hash: str, plain_password: str) -> bool:
    """
    Verify a plaintext password against a stored hash.

    bcrypt hashes (``$2a$``/``$2b$``) come from restored backups of the
    previous system and are checked with bcrypt; everything else is a
    werkzeug hash.
    """
    if not password_hash or not plain_password:
        return False
    if password_hash.startswith("$2"):
        try:
            return bcrypt.checkpw(
                plain_password.encode("utf-8"), password_hash.encode("utf-8")
            )
        except ValueError:
            return False
    return check_password_hash(password_hash, plain_password)


# -- Tokens ----------------------------------------------------------------

def create_token(user: User) -> str:
    """Return a signed bearer token for ``user``."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "userId": user.id,
        "email": user.email,
        "role": user.role,
        "name": user.name,
        "iat": int(now.timestamp()),
        "exp": now + timedelta(days=current_app.config["JWT_EXPIRES_DAYS"]),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET"],
        algorithm=current_app.config["JWT_ALGORITHM"],
    )


def decode_token(token: str) -> dict | None:
    """Return the token claims, or None for invalid or expired tokens."""
    try:
        return jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
        )
    except JWTError as exc:
        logger.debug("Rejected bearer token: %s", exc)
        return None


def user_from_token(token: str) -> User | None:
    """Resolve an active user from a bearer token."""
    if not token:
        return None
    claims = decode_token(token)
    if not claims:
        return None
    user_id = claims.get("userId") or claims.get("sub")
    user = db.session.get(User, user_id) if user_id else None
    if user is None or not user.is_active:
        return None
    return user


# -- Login -----------------------------------------------------------------

def ensure_default_admin() -> User:
    """
    Guarantee the configured default admin exists and is usable.

    Creates the account when missing and restores its ADMIN role and
    active flag when they were changed, so there is always a way in.
    An existing password is never touched.
    """
    config = current_app.config
    email = config["DEFAULT_ADMIN_EMAIL"]
    admin = User.query.filter(func.lower(User.email) == email.strip().lower()).first()

    if admin is None:
        admin = User(
            email=email,
            name=config["DEFAULT_ADMIN_NAME"],
            password=hash_password(config["DEFAULT_ADMIN_PASSWORD"]),
            role=ROLE_ADMIN,
            is_active=True,
        )
        db.session.add(admin)
        db.session.commit()
        logger.info("Created default admin account %s", email)
        return admin

    changed = False
    if admin.role != ROLE_ADMIN or not admin.is_active:
        admin.role = ROLE_ADMIN
        admin.is_active = True
        changed = True
    if not admin.name:
        admin.name = config["DEFAULT_ADMIN_NAME"]
        changed = True

    if changed:
        db.session.commit()
        logger.warning("Default admin account %s was repaired", email)
    return admin


def login(email: str | None, password: str | None) -> tuple[User, str]:
    """
    Authenticate a user and issue a token.

    Returns:
        ``(user, token)``.

    Raises:
        ValidationError:       Email or password missing.
        AuthenticationError:   Unknown email or wrong password.
        PermissionDeniedError: The account is inactive.
    """
    if not email or not password:
        raise ValidationError("Email and password are required")

    ensure_default_admin()

    user = User.query.filter(func.lower(User.email) == email.strip().lower()).first()
    if user is None:
        raise AuthenticationError("Invalid credentials")
    if not user.is_active:
        raise PermissionDeniedError("Account is inactive")
    if not verify_password(user.password, password):
        logger.info("Failed login for %s", email)
        raise AuthenticationError("Invalid credentials")

    token = create_token(user)
    audit_service.log_login(user.id)
    db.session.commit()
    return user, token


def logout(user: User) -> None:
    """Record a logout; tokens are stateless and simply expire."""
    audit_service.log_logout(user.id)
    db.session.commit()
