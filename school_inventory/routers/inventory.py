from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from school_inventory.auth import INVENTORY_WRITE_ROLES, Principal, get_current_principal, require_role
from school_inventory.db import commit, get_db
from school_inventory.schemas import (
    AdjustmentIn,
    ItemIn,
    ItemOut,
    LedgerWriteOut,
    LogOut,
    item_out,
    log_out,
)
from school_inventory.security.csrf import verify_csrf
from school_inventory.services.inventory_service import (
    ItemFields,
    LedgerWrite,
    apply_direct_adjustment,
    create_item,
    get_item,
    inventory_summary,
    list_items,
    list_logs,
    list_low_stock_items,
    set_archived,
    update_item,
)
from school_inventory.services.time_ranges import TimeRange

router = APIRouter(prefix='/inventory', tags=['inventory'])
admin_access = require_role(*INVENTORY_WRITE_ROLES)


def _fields(payload: ItemIn) -> ItemFields:
    return ItemFields(
        item_name=payload.item_name,
        category=payload.category,
        quantity=payload.quantity,
        unit=payload.unit,
        minimum_stock=payload.minimum_stock,
        location=payload.location,
        notes=payload.notes,
    )


def _ledger_out(result: LedgerWrite) -> LedgerWriteOut:
    return LedgerWriteOut(item=item_out(result.item), log_entry=log_out(result.log_entry))


@router.get('/items', response_model=list[ItemOut])
def items_page(
    archived: bool = False,
    category: str | None = None,
    search: str | None = None,
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return [item_out(item) for item in list_items(db, archived=archived, category=category, search=search)]


@router.get('/items/{item_id}', response_model=ItemOut)
def item_detail(item_id: int, _: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return item_out(get_item(db, item_id=item_id))


@router.post('/items', response_model=LedgerWriteOut, status_code=201)
def item_create(
    payload: ItemIn,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    result = create_item(db, principal=principal, fields=_fields(payload))
    commit(db)
    return _ledger_out(result)


@router.post('/items/{item_id}', response_model=LedgerWriteOut)
def item_update(
    item_id: int,
    payload: ItemIn,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    result = update_item(db, principal=principal, item_id=item_id, fields=_fields(payload))
    commit(db)
    return _ledger_out(result)


@router.post('/items/{item_id}/archive', response_model=LedgerWriteOut)
def item_archive(
    item_id: int,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    result = set_archived(db, principal=principal, item_id=item_id, archived=True)
    commit(db)
    return _ledger_out(result)


@router.post('/items/{item_id}/restore', response_model=LedgerWriteOut)
def item_restore(
    item_id: int,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    result = set_archived(db, principal=principal, item_id=item_id, archived=False)
    commit(db)
    return _ledger_out(result)


@router.post('/items/{item_id}/adjust', response_model=LedgerWriteOut)
def item_adjust(
    item_id: int,
    payload: AdjustmentIn,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    result = apply_direct_adjustment(
        db,
        principal=principal,
        item_id=item_id,
        direction=payload.direction,
        amount=payload.amount,
        notes=payload.notes,
    )
    commit(db)
    return _ledger_out(result)


@router.get('/low-stock', response_model=list[ItemOut])
def low_stock(_: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return [item_out(item) for item in list_low_stock_items(db)]


@router.get('/summary')
def summary(_: Principal = Depends(admin_access), db: Session = Depends(get_db)):
    return inventory_summary(db)


@router.get('/logs', response_model=list[LogOut])
def logs(
    time_range: TimeRange = Query(TimeRange.MONTH, alias='range'),
    item_id: int | None = None,
    _: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
):
    return [log_out(entry) for entry in list_logs(db, time_range=time_range, item_id=item_id)]
