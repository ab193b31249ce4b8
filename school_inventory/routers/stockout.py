from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from school_inventory.auth import INVENTORY_WRITE_ROLES, STAFF_ROLES, Principal, require_role
from school_inventory.db import commit, get_db
from school_inventory.schemas import (
    ApprovalOut,
    DecisionIn,
    PendingCountOut,
    StockoutRequestIn,
    StockoutRequestOut,
    item_out,
    log_out,
    request_out,
)
from school_inventory.security.csrf import verify_csrf
from school_inventory.services.stockout_service import (
    approve_request,
    count_pending_requests,
    deny_request,
    list_pending_requests,
    list_request_activity,
    list_requests_for_user,
    submit_request,
)
from school_inventory.services.time_ranges import TimeRange

router = APIRouter(prefix='/stockout', tags=['stockout'])
staff_access = require_role(*STAFF_ROLES)
admin_access = require_role(*INVENTORY_WRITE_ROLES)


@router.post('/requests', response_model=StockoutRequestOut, status_code=201)
def request_submit(
    payload: StockoutRequestIn,
    principal: Principal = Depends(staff_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    request = submit_request(
        db,
        principal=principal,
        item_id=payload.inventory_id,
        quantity=payload.quantity,
        notes=payload.notes,
    )
    commit(db)
    return request_out(request)


@router.get('/requests/pending', response_model=list[StockoutRequestOut])
def pending_requests(_: Principal = Depends(admin_access), db: Session = Depends(get_db)):
    return list_pending_requests(db)


@router.get('/requests/pending/count', response_model=PendingCountOut)
def pending_count(_: Principal = Depends(admin_access), db: Session = Depends(get_db)):
    return PendingCountOut(pending=count_pending_requests(db))


@router.get('/requests/mine', response_model=list[StockoutRequestOut])
def my_requests(principal: Principal = Depends(staff_access), db: Session = Depends(get_db)):
    return list_requests_for_user(db, principal=principal)


@router.get('/activity', response_model=list[StockoutRequestOut])
def approvals_activity(
    time_range: TimeRange = Query(TimeRange.MONTH, alias='range'),
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    return list_request_activity(db, time_range=time_range)


@router.post('/requests/{request_id}/approve', response_model=ApprovalOut)
def request_approve(
    request_id: int,
    payload: DecisionIn,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    result = approve_request(db, principal=principal, request_id=request_id, decision_notes=payload.decision_notes)
    commit(db)
    return ApprovalOut(
        item=item_out(result.item),
        log_entry=log_out(result.log_entry),
        request=request_out(result.request),
    )


@router.post('/requests/{request_id}/deny', response_model=StockoutRequestOut)
def request_deny(
    request_id: int,
    payload: DecisionIn,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    request = deny_request(db, principal=principal, request_id=request_id, decision_notes=payload.decision_notes)
    commit(db)
    return request_out(request)
