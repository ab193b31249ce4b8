from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from school_inventory.models import AuthEvent, UserStatusAudit, utcnow


def log_auth_event(
    db: Session,
    *,
    attempted_username: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    user_id: int | None = None,
    failure_reason: str | None = None,
) -> None:
    db.add(
        AuthEvent(
            attempted_username=attempted_username,
            success=success,
            failure_reason=failure_reason,
            user_id=user_id,
            ip=ip,
            user_agent=user_agent,
        )
    )


def count_recent_failures(db: Session, *, attempted_username: str, window_minutes: int, now: datetime | None = None) -> int:
    since = (now or utcnow()) - timedelta(minutes=window_minutes)
    return db.execute(
        select(func.count(AuthEvent.id)).where(
            AuthEvent.attempted_username == attempted_username,
            AuthEvent.success.is_(False),
            AuthEvent.created_at >= since,
        )
    ).scalar_one()


def log_user_status_change(
    db: Session,
    *,
    target_user_id: int,
    changed_by_user_id: int,
    old_status: str,
    new_status: str,
    notes: str | None,
) -> None:
    db.add(
        UserStatusAudit(
            target_user_id=target_user_id,
            changed_by_user_id=changed_by_user_id,
            old_status=old_status,
            new_status=new_status,
            notes=notes,
        )
    )
