from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from school_inventory.auth import Principal, Role, require_role
from school_inventory.db import commit, get_db
from school_inventory.schemas import UserIn, UserOut, UserRoleIn, UserStatusIn, UserStatusOut, user_out
from school_inventory.security.csrf import verify_csrf
from school_inventory.services.user_service import create_user, list_users, set_user_role, set_user_status

router = APIRouter(prefix='/users', tags=['users'])
super_admin_access = require_role(Role.SUPER_ADMIN)


@router.get('', response_model=list[UserOut])
def users_page(_: Principal = Depends(super_admin_access), db: Session = Depends(get_db)):
    return [user_out(user) for user in list_users(db)]


@router.post('', response_model=UserOut, status_code=201)
def user_create(
    payload: UserIn,
    principal: Principal = Depends(super_admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    user = create_user(db, principal=principal, email=payload.email, password=payload.password, role=payload.role)
    commit(db)
    return user_out(user)


@router.post('/{user_id}/status', response_model=UserStatusOut)
def user_status(
    user_id: int,
    payload: UserStatusIn,
    principal: Principal = Depends(super_admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    user, changed = set_user_status(db, principal=principal, user_id=user_id, status=payload.status, notes=payload.notes)
    commit(db)
    return UserStatusOut(user=user_out(user), unchanged=not changed)


@router.post('/{user_id}/role', response_model=UserOut)
def user_role(
    user_id: int,
    payload: UserRoleIn,
    principal: Principal = Depends(super_admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    user = set_user_role(db, principal=principal, user_id=user_id, role=payload.role)
    commit(db)
    return user_out(user)
