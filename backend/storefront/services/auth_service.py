# Overview: Service-layer operations for auth; encapsulates account and password logic.

"""
Account and password management.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Emails are normalized (strip + lower) everywhere they enter the system
- Session tokens managed separately (see session_service.py)
"""

import bcrypt
import re
from ..extensions import db
from ..errors import EmailNotVerifiedError
from ..models import User, ROLE_USER, ROLE_ADMIN
from storefront.time_utils import utcnow

BCRYPT_ROUNDS = 12


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt (cost factor 12)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() compares in constant time. Malformed hashes verify as False.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def get_user_by_email(email: str) -> User | None:
    return db.session.query(User).filter_by(email=normalize_email(email)).first()


def create_user(email: str, password: str, name: str | None = None, role: str = ROLE_USER) -> User:
    """
    Create new account with bcrypt password hashing.

    The email starts unverified; callers send the verification link.

    Raises:
        ValueError: If the email is missing/taken or the role is unknown
        PasswordValidationError: If password doesn't meet requirements
    """
    normalized = normalize_email(email)
    if not normalized or "@" not in normalized:
        raise ValueError("A valid email is required")
    if role not in (ROLE_USER, ROLE_ADMIN):
        raise ValueError(f"Unknown role: {role}")

    if get_user_by_email(normalized):
        raise ValueError("User already exists")

    # Hash password with bcrypt (validates strength automatically)
    password_hash = hash_password(password)

    user = User(
        email=normalized,
        name=name,
        password_hash=password_hash,
        role=role,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate by email and password.

    Returns User if credentials valid, None otherwise. Unknown email and
    wrong password are indistinguishable to the caller.

    Raises EmailNotVerifiedError when the credentials are correct but the
    email has not been verified yet (only revealed to the password holder).
    """
    user = db.session.query(User).filter(
        User.email == normalize_email(email),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if not verify_password(password, user.password_hash):
        return None

    if not user.email_verified_at:
        raise EmailNotVerifiedError()

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def set_password(user: User, new_password: str) -> None:
    """Replace the password (strength validated). Caller revokes sessions."""
    user.password_hash = hash_password(new_password)
    db.session.commit()
