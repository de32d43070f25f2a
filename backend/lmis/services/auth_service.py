# Overview: Service-layer operations for auth; user accounts and password checks.

"""
Authentication Service

WHY: Every box event names the user who performed it. Uses bcrypt for
password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, mixed case, digit and special character
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt

from ..extensions import db
from ..models import Facility, FacilityType, User
from ..permissions import Role
from ..validation import ConflictError, ValidationError
from lmis.time_utils import utcnow


BCRYPT_ROUNDS = 12


def validate_password_strength(password: str) -> None:
    """Raise ValidationError unless the password meets the strength rules."""
    if not password or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise ValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise ValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise ValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise ValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Hash password using bcrypt. Password is validated for strength first."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    *,
    email: str,
    full_name: str,
    password: str,
    role: str,
    facility_code: str | None = None,
) -> User:
    """
    Create a user bound to a facility.

    - SUPER_ADMIN needs no facility.
    - WAREHOUSE_OFFICER must be bound to a WAREHOUSE.
    - Every other role must be bound to a FACILITY.
    """
    email = (email or "").strip().lower()
    full_name = (full_name or "").strip()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    if len(full_name) < 2:
        raise ValidationError("fullName must be at least 2 characters")
    if role not in Role.ALL:
        raise ValidationError(f"role must be one of: {', '.join(Role.ALL)}")

    facility = None
    if role != Role.SUPER_ADMIN:
        if not facility_code:
            raise ValidationError("facilityCode is required for non-SUPER_ADMIN users")
        facility = db.session.query(Facility).filter_by(code=str(facility_code).strip()).first()
        if not facility:
            raise ValidationError(f'Facility with code "{facility_code}" not found')
        if role == Role.WAREHOUSE_OFFICER and facility.type != FacilityType.WAREHOUSE:
            raise ValidationError(
                f'WAREHOUSE_OFFICER must be assigned to a WAREHOUSE facility. "{facility.code}" is type "{facility.type}".'
            )
        if role != Role.WAREHOUSE_OFFICER and facility.type != FacilityType.FACILITY:
            raise ValidationError(
                f'{role} must be assigned to a FACILITY (not a warehouse). "{facility.code}" is type "{facility.type}".'
            )

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("Email already exists")

    user = User(
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        role=role,
        facility_id=facility.id if facility else None,
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Return the active user matching the credentials, or None.

    Updates last_login_at on success (caller commits).
    """
    user = db.session.query(User).filter(
        User.email == (email or "").strip().lower(),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password or "", user.password_hash):
        user.last_login_at = utcnow()
        return user

    return None
