from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from school_inventory.auth import Principal, assert_inventory_writer, assert_staff
from school_inventory.db import atomic
from school_inventory.errors import (
    AlreadyResolved,
    InsufficientStock,
    InvalidQuantity,
    ItemArchived,
    NotFound,
    OutOfStock,
)
from school_inventory.models import InventoryAction, InventoryItem, InventoryLog, StockoutRequest, StockoutStatus, utcnow
from school_inventory.services.inventory_service import change_quantity, get_item, write_log
from school_inventory.services.time_ranges import TimeRange, range_start

logger = logging.getLogger(__name__)

DEFAULT_APPROVAL_NOTE = 'Approved stock-out request'


@dataclass
class ApprovalResult:
    item: InventoryItem
    log_entry: InventoryLog
    request: StockoutRequest


def _clean_notes(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _lock_request(db: Session, *, request_id: int) -> StockoutRequest:
    request = db.execute(
        select(StockoutRequest)
        .where(StockoutRequest.id == request_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not request:
        raise NotFound('Stock-out request not found')
    return request


def _ensure_pending(request: StockoutRequest) -> None:
    if request.status != StockoutStatus.PENDING:
        raise AlreadyResolved(f'Request {request.id} was already {request.status.value}')


def _resolve(
    db: Session,
    *,
    request: StockoutRequest,
    status: StockoutStatus,
    approver_id: int,
    decision_notes: str | None,
) -> None:
    # Only a pending row may move; a concurrent resolution leaves rowcount at 0.
    result = db.execute(
        update(StockoutRequest)
        .where(StockoutRequest.id == request.id, StockoutRequest.status == StockoutStatus.PENDING)
        .values(status=status, approved_by=approver_id, decision_notes=decision_notes, updated_at=utcnow())
    )
    if result.rowcount != 1:
        raise AlreadyResolved(f'Request {request.id} was resolved by someone else')


def submit_request(
    db: Session,
    *,
    principal: Principal,
    item_id: int,
    quantity: int,
    notes: str | None = None,
) -> StockoutRequest:
    """Record a pending withdrawal request.

    Availability is checked against the item's current quantity but nothing
    is reserved; approval re-validates against the stock at that time.
    """
    assert_staff(principal)
    if quantity <= 0:
        raise InvalidQuantity('Requested quantity must be a positive whole number')

    item = get_item(db, item_id=item_id)
    if item.is_archived:
        raise ItemArchived('Archived items cannot be requested')
    if item.quantity == 0:
        raise OutOfStock(f'{item.item_name} is out of stock')
    if quantity > item.quantity:
        raise InsufficientStock(f'Only {item.quantity} {item.unit} of {item.item_name} available')

    with atomic(db):
        request = StockoutRequest(
            inventory_id=item.id,
            requested_by=principal.id,
            quantity=quantity,
            notes=_clean_notes(notes),
            status=StockoutStatus.PENDING,
        )
        db.add(request)
    logger.info('Stock-out request %s submitted by user %s: item %s qty=%s', request.id, principal.id, item.id, quantity)
    return request


def approve_request(
    db: Session,
    *,
    principal: Principal,
    request_id: int,
    decision_notes: str | None = None,
) -> ApprovalResult:
    assert_inventory_writer(principal, 'approve stock-out requests')
    notes = _clean_notes(decision_notes)

    with atomic(db):
        request = _lock_request(db, request_id=request_id)
        _ensure_pending(request)
        item, previous, new = change_quantity(db, item_id=request.inventory_id, delta=-request.quantity)
        entry = write_log(
            db,
            item=item,
            action=InventoryAction.STOCK_OUT,
            actor_id=principal.id,
            previous_quantity=previous,
            new_quantity=new,
            quantity_change=-request.quantity,
            notes=notes or DEFAULT_APPROVAL_NOTE,
        )
        _resolve(db, request=request, status=StockoutStatus.APPROVED, approver_id=principal.id, decision_notes=notes)
    logger.info('Stock-out request %s approved by user %s: item %s %s -> %s', request.id, principal.id, item.id, previous, new)
    return ApprovalResult(item=item, log_entry=entry, request=request)


def deny_request(
    db: Session,
    *,
    principal: Principal,
    request_id: int,
    decision_notes: str | None = None,
) -> StockoutRequest:
    assert_inventory_writer(principal, 'deny stock-out requests')

    with atomic(db):
        request = _lock_request(db, request_id=request_id)
        _ensure_pending(request)
        _resolve(
            db,
            request=request,
            status=StockoutStatus.DENIED,
            approver_id=principal.id,
            decision_notes=_clean_notes(decision_notes),
        )
    logger.info('Stock-out request %s denied by user %s', request.id, principal.id)
    return request


def _request_rows(db: Session, query) -> list[dict]:
    rows = db.execute(query).all()
    return [
        {
            'id': request.id,
            'inventory_id': request.inventory_id,
            'item_name': item_name,
            'unit': unit,
            'requested_by': request.requested_by,
            'quantity': request.quantity,
            'notes': request.notes,
            'status': request.status.value,
            'approved_by': request.approved_by,
            'decision_notes': request.decision_notes,
            'created_at': request.created_at,
            'updated_at': request.updated_at,
        }
        for request, item_name, unit in rows
    ]


def _base_request_query():
    return select(StockoutRequest, InventoryItem.item_name, InventoryItem.unit).join(
        InventoryItem, InventoryItem.id == StockoutRequest.inventory_id
    )


def list_pending_requests(db: Session) -> list[dict]:
    return _request_rows(
        db,
        _base_request_query()
        .where(StockoutRequest.status == StockoutStatus.PENDING)
        .order_by(StockoutRequest.created_at.desc(), StockoutRequest.id.desc()),
    )


def count_pending_requests(db: Session) -> int:
    return db.execute(
        select(func.count(StockoutRequest.id)).where(StockoutRequest.status == StockoutStatus.PENDING)
    ).scalar_one()


def list_request_activity(db: Session, *, time_range: TimeRange, now: datetime | None = None) -> list[dict]:
    return _request_rows(
        db,
        _base_request_query()
        .where(StockoutRequest.created_at >= range_start(time_range, now=now))
        .order_by(StockoutRequest.created_at.desc(), StockoutRequest.id.desc()),
    )


def list_requests_for_user(db: Session, *, principal: Principal, limit: int = 50) -> list[dict]:
    return _request_rows(
        db,
        _base_request_query()
        .where(StockoutRequest.requested_by == principal.id)
        .order_by(StockoutRequest.created_at.desc(), StockoutRequest.id.desc())
        .limit(limit),
    )
