"""
User service: application accounts and their roles.

Handles CRUD for the users that log in to the API.  Password hashing
lives in ``auth_service``; this service only decides *when* a password
is (re)hashed.
"""

import logging

from sqlalchemy import func, or_

from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.extensions import db
from app.models.user import ROLE_ADMIN, ROLE_VIEWER, ROLES, User
from app.services import audit_service, auth_service
from app.services.validation import (
    parse_bool,
    require_text,
    validate_email,
    validate_password,
)

logger = logging.getLogger(__name__)


# -- User lookup -----------------------------------------------------------


def get_user_by_id(user_id: str) -> User | None:
    """Return a user by primary key, or None if not found."""
    return db.session.get(User, user_id)


def get_user_by_email(email: str) -> User | None:
    """Return a user by email address (case-insensitive)."""
    return User.query.filter(func.lower(User.email) == email.strip().lower()).first()


def get_all_users(
    page: int = 1,
    per_page: int = 10,
    search: str | None = None,
    role: str | None = None,
):
    """
    Return a paginated list of users, newest first.

    Args:
        page:     Page number (1-indexed).
        per_page: Records per page.
        search:   Case-insensitive match on name or email.
        role:     Restrict to one role; ``all`` or empty means any.

    Returns:
        A SQLAlchemy pagination object.
    """
    query = User.query.order_by(User.created_at.desc())
    if role and role != "all":
        query = query.filter(User.role == role)
    if search and search.strip():
        term = f"%{search.strip()}%"
        query = query.filter(or_(User.name.ilike(term), User.email.ilike(term)))
    return query.paginate(page=page, per_page=per_page, error_out=False)


# -- User creation and updates ---------------------------------------------


def _check_role(role: str) -> str:
    if role not in ROLES:
        raise ValidationError(
            "Invalid role. Must be ADMIN, SO_ASSET_USER, or VIEWER"
        )
    return role


def create_user(
    email: str,
    name: str,
    password: str,
    role: str | None = None,
    created_by: str | None = None,
) -> User:
    """
    Create a new user.

    Raises:
        ValidationError: Missing fields, bad email, short password or
                         unknown role.
        ConflictError:   The email is already taken.
    """
    if not email or not name or not password:
        raise ValidationError("Email, name, and password are required")
    email = validate_email(email)
    name = require_text(name, "Name", max_length=200)
    validate_password(password)
    role = _check_role(role or ROLE_VIEWER)

    if get_user_by_email(email) is not None:
        raise ConflictError("User with this email already exists")

    user = User(
        email=email,
        name=name,
        password=auth_service.hash_password(password),
        role=role,
        is_active=True,
        created_by=created_by,
    )
    db.session.add(user)
    db.session.flush()

    audit_service.log_change(
        user_id=created_by,
        action_type="CREATE",
        entity_type="user",
        entity_id=user.id,
        new_value={"email": email, "name": name, "role": role},
    )
    db.session.commit()

    logger.info("Created user %s with role %s", email, role)
    return user


def update_user(user_id: str, data: dict, changed_by: str | None = None) -> User:
    """
    Apply a partial update (name, email, role, isActive, password).

    Raises:
        NotFoundError:   Unknown user.
        ConflictError:   The new email belongs to another user.
        ValidationError: Invalid values or nothing to change.
    """
    user = get_user_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")

    previous: dict = {}
    new: dict = {}

    name = data.get("name")
    if isinstance(name, str) and name.strip():
        previous["name"], new["name"] = user.name, name.strip()
        user.name = name.strip()

    email = data.get("email")
    if isinstance(email, str) and email.strip() and email.strip() != user.email:
        email = validate_email(email)
        owner = get_user_by_email(email)
        if owner is not None and owner.id != user.id:
            raise ConflictError("Email is already in use by another user")
        previous["email"], new["email"] = user.email, email
        user.email = email

    role = data.get("role")
    if role:
        _check_role(role)
        previous["role"], new["role"] = user.role, role
        user.role = role

    is_active = parse_bool(data.get("isActive", data.get("is_active")))
    if is_active is not None:
        previous["is_active"], new["is_active"] = user.is_active, is_active
        user.is_active = is_active

    password = data.get("password")
    if isinstance(password, str) and password.strip():
        validate_password(password)
        user.password = auth_service.hash_password(password)
        new["password"] = "changed"

    if not new:
        raise ValidationError("No changes provided")

    audit_service.log_change(
        user_id=changed_by,
        action_type="UPDATE",
        entity_type="user",
        entity_id=user.id,
        previous_value=previous,
        new_value=new,
    )
    db.session.commit()

    logger.info("Updated user %s (%s)", user.email, ", ".join(new))
    return user


def delete_user(user_id: str, deleted_by: str | None = None) -> None:
    """
    Delete a user account.

    Raises:
        NotFoundError:   Unknown user.
        ValidationError: Deleting yourself, or the last admin.
    """
    user = get_user_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    if deleted_by is not None and user.id == deleted_by:
        raise ValidationError("You cannot delete your own account")
    if user.role == ROLE_ADMIN and User.query.filter_by(role=ROLE_ADMIN).count() <= 1:
        raise ValidationError("Cannot delete the last admin user")

    snapshot = user.to_dict()
    # Keep accounts this user created; just drop the back-reference.
    User.query.filter_by(created_by=user.id).update({"created_by": None})
    db.session.delete(user)

    audit_service.log_change(
        user_id=deleted_by,
        action_type="DELETE",
        entity_type="user",
        entity_id=user_id,
        previous_value=snapshot,
    )
    db.session.commit()

    logger.info("Deleted user %s", snapshot["email"])
