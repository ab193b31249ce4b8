from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from school_inventory.services.inventory_service import AdjustmentDirection, stock_status


class ItemIn(BaseModel):
    item_name: str
    category: str
    quantity: int
    unit: str
    minimum_stock: int
    location: str | None = None
    notes: str | None = None


class ItemOut(BaseModel):
    id: int
    item_name: str
    category: str
    quantity: int
    unit: str
    minimum_stock: int
    location: str | None
    notes: str | None
    is_archived: bool
    stock_status: str
    created_at: datetime
    updated_at: datetime


class LogOut(BaseModel):
    id: int
    inventory_id: int | None
    action_type: str
    item_name: str
    previous_quantity: int | None
    new_quantity: int | None
    quantity_change: int | None
    field_changed: str | None
    old_value: str | None
    new_value: str | None
    notes: str | None
    actor_id: int | None
    created_at: datetime


class LedgerWriteOut(BaseModel):
    item: ItemOut
    log_entry: LogOut | None


class AdjustmentIn(BaseModel):
    direction: AdjustmentDirection
    amount: int
    notes: str | None = None


class StockoutRequestIn(BaseModel):
    inventory_id: int
    quantity: int
    notes: str | None = None


class DecisionIn(BaseModel):
    decision_notes: str | None = None


class StockoutRequestOut(BaseModel):
    id: int
    inventory_id: int
    item_name: str | None = None
    unit: str | None = None
    requested_by: int
    quantity: int
    notes: str | None
    status: str
    approved_by: int | None
    decision_notes: str | None
    created_at: datetime
    updated_at: datetime


class ApprovalOut(BaseModel):
    item: ItemOut
    log_entry: LogOut
    request: StockoutRequestOut


class PendingCountOut(BaseModel):
    pending: int


class LoginIn(BaseModel):
    email: str
    password: str


class UserIn(BaseModel):
    email: str
    password: str
    role: str


class UserStatusIn(BaseModel):
    status: str
    notes: str | None = None


class UserRoleIn(BaseModel):
    role: str


class UserOut(BaseModel):
    id: int
    email: str
    role: str
    status: str
    created_at: datetime
    updated_at: datetime


class UserStatusOut(BaseModel):
    user: UserOut
    unchanged: bool


def item_out(item) -> ItemOut:
    return ItemOut(
        id=item.id,
        item_name=item.item_name,
        category=item.category.value,
        quantity=item.quantity,
        unit=item.unit,
        minimum_stock=item.minimum_stock,
        location=item.location,
        notes=item.notes,
        is_archived=item.is_archived,
        stock_status=stock_status(item).value,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


def log_out(entry) -> LogOut | None:
    if entry is None:
        return None
    return LogOut(
        id=entry.id,
        inventory_id=entry.inventory_id,
        action_type=entry.action_type.value,
        item_name=entry.item_name,
        previous_quantity=entry.previous_quantity,
        new_quantity=entry.new_quantity,
        quantity_change=entry.quantity_change,
        field_changed=entry.field_changed,
        old_value=entry.old_value,
        new_value=entry.new_value,
        notes=entry.notes,
        actor_id=entry.actor_id,
        created_at=entry.created_at,
    )


def request_out(request) -> StockoutRequestOut:
    return StockoutRequestOut(
        id=request.id,
        inventory_id=request.inventory_id,
        requested_by=request.requested_by,
        quantity=request.quantity,
        notes=request.notes,
        status=request.status.value,
        approved_by=request.approved_by,
        decision_notes=request.decision_notes,
        created_at=request.created_at,
        updated_at=request.updated_at,
    )


def user_out(user) -> UserOut:
    return UserOut(
        id=user.id,
        email=user.email,
        role=user.role.value,
        status=user.status.value,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )
