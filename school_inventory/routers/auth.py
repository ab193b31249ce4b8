from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from school_inventory.auth import Principal, get_current_principal
from school_inventory.config import settings
from school_inventory.db import commit, get_db
from school_inventory.dependencies import get_client_ip, get_user_agent
from school_inventory.errors import TooManyAttempts
from school_inventory.schemas import LoginIn, UserOut, user_out
from school_inventory.security.csrf import verify_csrf
from school_inventory.security.sessions import create_web_session, revoke_web_session
from school_inventory.services.user_service import authenticate, get_user

router = APIRouter(prefix='/auth', tags=['auth'])


@router.post('/login', response_model=UserOut)
def login_submit(
    payload: LoginIn,
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    ip = get_client_ip(request)
    user_agent = get_user_agent(request)
    try:
        user = authenticate(db, email=payload.email, password=payload.password, ip=ip, user_agent=user_agent)
    except TooManyAttempts:
        commit(db)
        raise

    if not user:
        commit(db)
        return JSONResponse({'error': 'Unauthorized', 'detail': 'Invalid email or password'}, status_code=401)

    token = create_web_session(db, user.id, ip=ip, user_agent=user_agent)
    commit(db)

    response = JSONResponse(user_out(user).model_dump(mode='json'))
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


@router.post('/logout')
def logout(request: Request, db: Session = Depends(get_db), _: None = Depends(verify_csrf)):
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)
    commit(db)

    response = JSONResponse({'ok': True})
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get('/me', response_model=UserOut)
def me(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return user_out(get_user(db, user_id=principal.id))
