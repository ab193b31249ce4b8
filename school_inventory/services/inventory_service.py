from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from school_inventory.auth import Principal, assert_inventory_writer
from school_inventory.config import settings
from school_inventory.db import atomic
from school_inventory.errors import (
    DuplicateItem,
    InvalidCategory,
    InvalidQuantity,
    ItemArchived,
    NotFound,
    StorageFailure,
    ValidationFailed,
)
from school_inventory.models import InventoryAction, InventoryItem, InventoryLog, ItemCategory, utcnow
from school_inventory.services.time_ranges import TimeRange, range_start

logger = logging.getLogger(__name__)

RUNNING_LOW_FACTOR = Decimal('1.5')
TRACKED_FIELDS = ('item_name', 'category', 'quantity', 'unit', 'minimum_stock', 'location', 'notes')


class AdjustmentDirection(str, Enum):
    IN = 'in'
    OUT = 'out'


class StockStatus(str, Enum):
    OUT_OF_STOCK = 'Out of Stock'
    LOW_STOCK = 'Low Stock'
    RUNNING_LOW = 'Running Low'
    IN_STOCK = 'In Stock'


@dataclass
class ItemFields:
    item_name: str
    category: str
    quantity: int
    unit: str
    minimum_stock: int
    location: str | None = None
    notes: str | None = None


@dataclass
class LedgerWrite:
    item: InventoryItem
    log_entry: InventoryLog | None


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_category(raw: str) -> ItemCategory:
    try:
        return ItemCategory((raw or '').strip())
    except ValueError as exc:
        raise InvalidCategory(f'Unknown category: {raw!r}') from exc


def _validated(fields: ItemFields) -> dict:
    item_name = (fields.item_name or '').strip()
    if not item_name:
        raise ValidationFailed('Item name is required')
    unit = (fields.unit or '').strip()
    if not unit:
        raise ValidationFailed('Unit is required')
    category = _parse_category(fields.category)
    if item_name.lower() == 'paper' and category != ItemCategory.PAPER_PRODUCTS:
        raise InvalidCategory('Items named "Paper" must use the "Paper Products" category')
    if fields.quantity < 0:
        raise InvalidQuantity('Quantity cannot be negative')
    if fields.minimum_stock < 0:
        raise InvalidQuantity('Minimum stock cannot be negative')
    return {
        'item_name': item_name,
        'category': category,
        'quantity': fields.quantity,
        'unit': unit,
        'minimum_stock': fields.minimum_stock,
        'location': _clean_optional(fields.location),
        'notes': _clean_optional(fields.notes),
    }


def _ensure_unique(db: Session, *, item_name: str, category: ItemCategory, exclude_id: int | None = None) -> None:
    query = select(InventoryItem.id).where(
        func.lower(InventoryItem.item_name) == item_name.lower(),
        InventoryItem.category == category,
        InventoryItem.is_archived.is_(False),
    )
    if exclude_id is not None:
        query = query.where(InventoryItem.id != exclude_id)
    if db.execute(query.limit(1)).first():
        raise DuplicateItem(f'An active item named "{item_name}" already exists in {category.value}')


def get_item(db: Session, *, item_id: int) -> InventoryItem:
    item = db.execute(select(InventoryItem).where(InventoryItem.id == item_id)).scalar_one_or_none()
    if not item:
        raise NotFound('Item not found')
    return item


def lock_item(db: Session, *, item_id: int) -> InventoryItem:
    item = db.execute(
        select(InventoryItem)
        .where(InventoryItem.id == item_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not item:
        raise NotFound('Item not found')
    return item


def write_log(
    db: Session,
    *,
    item: InventoryItem,
    action: InventoryAction,
    actor_id: int | None,
    previous_quantity: int | None,
    new_quantity: int | None,
    quantity_change: int | None,
    notes: str | None,
    field_changed: str | None = None,
    old_value: str | None = None,
    new_value: str | None = None,
) -> InventoryLog:
    entry = InventoryLog(
        inventory_id=item.id,
        action_type=action,
        item_name=item.item_name,
        previous_quantity=previous_quantity,
        new_quantity=new_quantity,
        quantity_change=quantity_change,
        field_changed=field_changed,
        old_value=old_value,
        new_value=new_value,
        notes=notes,
        actor_id=actor_id,
    )
    db.add(entry)
    return entry


def change_quantity(
    db: Session,
    *,
    item_id: int,
    delta: int | None = None,
    target: int | None = None,
    allow_archived: bool = False,
) -> tuple[InventoryItem, int, int]:
    """Move an item's quantity and return ``(item, previous, new)``.

    Pass either a signed ``delta`` or an absolute ``target``; both are
    resolved against the row read under ``FOR UPDATE``. The write is a
    compare-and-swap on the value that was read, so the returned previous/new
    pair always matches the transition that was stored. Archived items are
    refused unless ``allow_archived`` is set.
    """
    if (delta is None) == (target is None):
        raise TypeError('change_quantity() takes exactly one of delta or target')

    for _ in range(max(1, settings.ledger_update_attempts)):
        item = lock_item(db, item_id=item_id)
        if item.is_archived and not allow_archived:
            raise ItemArchived('Restore the item before changing its stock')
        previous = item.quantity
        new = target if target is not None else previous + delta
        if new < 0:
            raise InvalidQuantity(f'Cannot reduce stock below 0 ({previous} on hand, change of {new - previous})')
        result = db.execute(
            update(InventoryItem)
            .where(InventoryItem.id == item_id, InventoryItem.quantity == previous)
            .values(quantity=new, updated_at=utcnow())
        )
        if result.rowcount == 1:
            return item, previous, new
        logger.warning('Quantity of item %s changed during write, retrying', item_id)
    raise StorageFailure('Stock level changed while saving. Reload and try again.')


def create_item(db: Session, *, principal: Principal, fields: ItemFields) -> LedgerWrite:
    assert_inventory_writer(principal, 'create items')
    values = _validated(fields)
    _ensure_unique(db, item_name=values['item_name'], category=values['category'])

    with atomic(db):
        item = InventoryItem(is_archived=False, **values)
        db.add(item)
        db.flush()
        entry = write_log(
            db,
            item=item,
            action=InventoryAction.CREATED,
            actor_id=principal.id,
            previous_quantity=None,
            new_quantity=item.quantity,
            quantity_change=item.quantity,
            notes='New item added to inventory',
        )
    logger.info('Item %s created: %s (%s) qty=%s', item.id, item.item_name, item.category.value, item.quantity)
    return LedgerWrite(item=item, log_entry=entry)


def _display(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)


def update_item(db: Session, *, principal: Principal, item_id: int, fields: ItemFields) -> LedgerWrite:
    assert_inventory_writer(principal, 'edit items')
    values = _validated(fields)

    with atomic(db):
        # Diff against the locked row, not whatever copy the session already holds.
        item = lock_item(db, item_id=item_id)
        changed = [name for name in TRACKED_FIELDS if getattr(item, name) != values[name]]
        if not changed:
            return LedgerWrite(item=item, log_entry=None)

        renamed = 'item_name' in changed or 'category' in changed
        if renamed and not item.is_archived:
            _ensure_unique(db, item_name=values['item_name'], category=values['category'], exclude_id=item.id)

        old_values = {name: getattr(item, name) for name in changed}
        previous = item.quantity
        if 'quantity' in changed:
            item, previous, _ = change_quantity(db, item_id=item.id, target=values['quantity'], allow_archived=True)
            old_values['quantity'] = previous
        for name in changed:
            if name != 'quantity':
                setattr(item, name, values[name])
        db.flush()

        single = changed[0] if len(changed) == 1 else None
        entry = write_log(
            db,
            item=item,
            action=InventoryAction.UPDATED,
            actor_id=principal.id,
            previous_quantity=previous,
            new_quantity=item.quantity,
            quantity_change=item.quantity - previous,
            notes='Item details updated',
            field_changed=', '.join(changed),
            old_value=_display(old_values[single]) if single else None,
            new_value=_display(values[single]) if single else None,
        )
    logger.info('Item %s updated: %s', item.id, ', '.join(changed))
    return LedgerWrite(item=item, log_entry=entry)


def set_archived(db: Session, *, principal: Principal, item_id: int, archived: bool) -> LedgerWrite:
    assert_inventory_writer(principal, 'archive items')
    item = get_item(db, item_id=item_id)
    if item.is_archived == archived:
        return LedgerWrite(item=item, log_entry=None)
    if not archived:
        _ensure_unique(db, item_name=item.item_name, category=item.category, exclude_id=item.id)

    with atomic(db):
        item.is_archived = archived
        entry = write_log(
            db,
            item=item,
            action=InventoryAction.ARCHIVED if archived else InventoryAction.RESTORED,
            actor_id=principal.id,
            previous_quantity=item.quantity,
            new_quantity=item.quantity,
            quantity_change=0,
            notes='Item archived' if archived else 'Item restored from archive',
        )
    logger.info('Item %s %s', item.id, 'archived' if archived else 'restored')
    return LedgerWrite(item=item, log_entry=entry)


def apply_direct_adjustment(
    db: Session,
    *,
    principal: Principal,
    item_id: int,
    direction: AdjustmentDirection,
    amount: int,
    notes: str | None = None,
) -> LedgerWrite:
    assert_inventory_writer(principal, 'adjust stock')
    direction = AdjustmentDirection(direction)
    if amount <= 0:
        raise InvalidQuantity('Adjustment amount must be a positive whole number')

    delta = amount if direction == AdjustmentDirection.IN else -amount
    with atomic(db):
        item, previous, new = change_quantity(db, item_id=item_id, delta=delta)
        entry = write_log(
            db,
            item=item,
            action=InventoryAction.STOCK_IN if direction == AdjustmentDirection.IN else InventoryAction.STOCK_OUT,
            actor_id=principal.id,
            previous_quantity=previous,
            new_quantity=new,
            quantity_change=delta,
            notes=_clean_optional(notes) or ('Stock added' if direction == AdjustmentDirection.IN else 'Stock removed'),
        )
    logger.info('Item %s stock %s by %s: %s -> %s', item.id, direction.value, amount, previous, new)
    return LedgerWrite(item=item, log_entry=entry)


def list_items(
    db: Session,
    *,
    archived: bool = False,
    category: str | None = None,
    search: str | None = None,
) -> list[InventoryItem]:
    query = select(InventoryItem).where(InventoryItem.is_archived.is_(archived))
    if category:
        query = query.where(InventoryItem.category == _parse_category(category))
    term = (search or '').strip().lower()
    if term:
        pattern = f'%{term}%'
        query = query.where(
            or_(
                func.lower(InventoryItem.item_name).like(pattern),
                func.lower(func.coalesce(InventoryItem.location, '')).like(pattern),
            )
        )
    return db.execute(query.order_by(InventoryItem.item_name.asc(), InventoryItem.id.asc())).scalars().all()


def list_low_stock_items(db: Session) -> list[InventoryItem]:
    return db.execute(
        select(InventoryItem)
        .where(
            InventoryItem.is_archived.is_(False),
            InventoryItem.quantity <= InventoryItem.minimum_stock,
        )
        .order_by(InventoryItem.quantity.asc(), InventoryItem.item_name.asc())
    ).scalars().all()


def stock_status(item: InventoryItem) -> StockStatus:
    if item.quantity == 0:
        return StockStatus.OUT_OF_STOCK
    if item.quantity <= item.minimum_stock:
        return StockStatus.LOW_STOCK
    if item.quantity <= item.minimum_stock * RUNNING_LOW_FACTOR:
        return StockStatus.RUNNING_LOW
    return StockStatus.IN_STOCK


def inventory_summary(db: Session) -> dict:
    items = db.execute(select(InventoryItem)).scalars().all()
    active = [item for item in items if not item.is_archived]

    by_category: dict[str, dict] = {}
    for item in active:
        bucket = by_category.setdefault(item.category.value, {'category': item.category.value, 'count': 0, 'total_quantity': 0})
        bucket['count'] += 1
        bucket['total_quantity'] += item.quantity

    return {
        'total_items': len(active),
        'low_stock_items': sum(1 for item in active if item.quantity <= item.minimum_stock),
        'out_of_stock_items': sum(1 for item in active if item.quantity == 0),
        'archived_items': len(items) - len(active),
        'total_quantity': sum(item.quantity for item in active),
        'categories': [by_category[c.value] for c in ItemCategory if c.value in by_category],
    }


def list_logs(
    db: Session,
    *,
    time_range: TimeRange,
    now: datetime | None = None,
    item_id: int | None = None,
) -> list[InventoryLog]:
    query = select(InventoryLog).where(InventoryLog.created_at >= range_start(time_range, now=now))
    if item_id is not None:
        query = query.where(InventoryLog.inventory_id == item_id)
    return db.execute(query.order_by(InventoryLog.created_at.desc(), InventoryLog.id.desc())).scalars().all()
