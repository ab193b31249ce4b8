from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from school_inventory.auth import Principal, assert_super_admin
from school_inventory.config import settings
from school_inventory.db import atomic
from school_inventory.errors import DuplicateUser, Forbidden, NotFound, TooManyAttempts, ValidationFailed
from school_inventory.models import UserProfile, UserRole, UserStatus
from school_inventory.security.passwords import check_password_strength, hash_password, verify_password
from school_inventory.security.sessions import revoke_user_sessions
from school_inventory.services.audit_service import count_recent_failures, log_auth_event, log_user_status_change

logger = logging.getLogger(__name__)

ASSIGNABLE_ROLES = frozenset({UserRole.ADMIN, UserRole.STAFF})


def normalize_email(value: str) -> str:
    return (value or '').strip().lower()


def _parse_assignable_role(raw: str) -> UserRole:
    try:
        role = UserRole(raw)
    except ValueError as exc:
        raise ValidationFailed(f'Unknown role: {raw!r}') from exc
    if role not in ASSIGNABLE_ROLES:
        raise ValidationFailed('Role must be admin or staff')
    return role


def get_user(db: Session, *, user_id: int) -> UserProfile:
    user = db.execute(select(UserProfile).where(UserProfile.id == user_id)).scalar_one_or_none()
    if not user:
        raise NotFound('User profile not found')
    return user


def list_users(db: Session) -> list[UserProfile]:
    return db.execute(select(UserProfile).order_by(UserProfile.created_at.desc(), UserProfile.id.desc())).scalars().all()


def create_user(db: Session, *, principal: Principal, email: str, password: str, role: str) -> UserProfile:
    assert_super_admin(principal, 'create users')
    clean_email = normalize_email(email)
    if not clean_email or '@' not in clean_email:
        raise ValidationFailed('A valid email is required')
    user_role = _parse_assignable_role(role)
    check_password_strength(password)

    existing = db.execute(select(UserProfile.id).where(UserProfile.email == clean_email)).scalar_one_or_none()
    if existing:
        raise DuplicateUser()

    with atomic(db):
        user = UserProfile(
            email=clean_email,
            password_hash=hash_password(password),
            role=user_role,
            status=UserStatus.ACTIVE,
        )
        db.add(user)
    logger.info('User %s created with role %s by user %s', user.id, user_role.value, principal.id)
    return user


def set_user_status(
    db: Session,
    *,
    principal: Principal,
    user_id: int,
    status: str,
    notes: str | None = None,
) -> tuple[UserProfile, bool]:
    """Set a user's status; returns ``(user, changed)``."""
    assert_super_admin(principal, 'change user status')
    try:
        new_status = UserStatus(status)
    except ValueError as exc:
        raise ValidationFailed(f'Unknown status: {status!r}') from exc

    user = get_user(db, user_id=user_id)
    if user.status == new_status:
        return user, False
    if user.id == principal.id:
        raise Forbidden('You cannot change the status of your own account')

    old_status = user.status
    with atomic(db):
        user.status = new_status
        log_user_status_change(
            db,
            target_user_id=user.id,
            changed_by_user_id=principal.id,
            old_status=old_status.value,
            new_status=new_status.value,
            notes=(notes or '').strip() or None,
        )
        if new_status == UserStatus.SUSPENDED:
            revoke_user_sessions(db, user.id)
    logger.info('User %s status %s -> %s by user %s', user.id, old_status.value, new_status.value, principal.id)
    return user, True


def set_user_role(db: Session, *, principal: Principal, user_id: int, role: str) -> UserProfile:
    assert_super_admin(principal, 'assign roles')
    new_role = _parse_assignable_role(role)
    user = get_user(db, user_id=user_id)
    if user.role == UserRole.SUPER_ADMIN:
        raise Forbidden('Super admin accounts cannot be reassigned')
    if user.role == new_role:
        return user

    with atomic(db):
        user.role = new_role
    logger.info('User %s role set to %s by user %s', user.id, new_role.value, principal.id)
    return user


def authenticate(
    db: Session,
    *,
    email: str,
    password: str,
    ip: str | None,
    user_agent: str | None,
) -> UserProfile | None:
    """Check credentials and record the attempt.

    Returns the user on success and ``None`` on a bad email, bad password or
    suspended account. Raises ``TooManyAttempts`` while the email is locked out.
    """
    clean_email = normalize_email(email)
    failures = count_recent_failures(
        db,
        attempted_username=clean_email,
        window_minutes=settings.login_lockout_minutes,
    )
    if failures >= settings.login_max_failed_attempts:
        log_auth_event(
            db,
            attempted_username=clean_email,
            success=False,
            failure_reason='LOCKED_OUT',
            ip=ip,
            user_agent=user_agent,
        )
        raise TooManyAttempts()

    user = db.execute(select(UserProfile).where(UserProfile.email == clean_email)).scalar_one_or_none()
    failure_reason = None
    if not user:
        failure_reason = 'UNKNOWN_USERNAME'
    elif user.status != UserStatus.ACTIVE:
        failure_reason = 'SUSPENDED'
    elif not verify_password(password, user.password_hash):
        failure_reason = 'BAD_PASSWORD'

    log_auth_event(
        db,
        attempted_username=clean_email,
        success=failure_reason is None,
        failure_reason=failure_reason,
        user_id=user.id if user else None,
        ip=ip,
        user_agent=user_agent,
    )
    if failure_reason:
        logger.info('Login failed for %s: %s', clean_email, failure_reason)
        return None
    return user


def ensure_superadmin(db: Session, *, email: str, password: str) -> tuple[UserProfile, bool]:
    """Create the super admin account, or reset its password and role if it exists.

    Returns ``(user, created)``.
    """
    clean_email = normalize_email(email)
    if not clean_email:
        raise ValidationFailed('Email is required')
    check_password_strength(password)

    user = db.execute(select(UserProfile).where(UserProfile.email == clean_email)).scalar_one_or_none()
    with atomic(db):
        if user:
            user.password_hash = hash_password(password)
            user.role = UserRole.SUPER_ADMIN
            user.status = UserStatus.ACTIVE
            created = False
        else:
            user = UserProfile(
                email=clean_email,
                password_hash=hash_password(password),
                role=UserRole.SUPER_ADMIN,
                status=UserStatus.ACTIVE,
            )
            db.add(user)
            created = True
    return user, created
