from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
IdType = BigInteger().with_variant(Integer(), 'sqlite')


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Base(DeclarativeBase):
    pass


class UserRole(str, Enum):
    SUPER_ADMIN = 'superAdmin'
    ADMIN = 'admin'
    STAFF = 'staff'


class UserStatus(str, Enum):
    ACTIVE = 'Active'
    SUSPENDED = 'Suspended'


class ItemCategory(str, Enum):
    WRITING_MATERIALS = 'Writing Materials'
    PAPER_PRODUCTS = 'Paper Products'
    ART_SUPPLIES = 'Art Supplies'
    OFFICE_SUPPLIES = 'Office Supplies'
    TECHNOLOGY = 'Technology'
    CLASSROOM_EQUIPMENT = 'Classroom Equipment'
    SPORTS_EQUIPMENT = 'Sports Equipment'
    BOOKS_READING = 'Books & Reading Materials'
    SCIENCE_LAB = 'Science Lab Equipment'
    OTHER = 'Other'


class InventoryAction(str, Enum):
    CREATED = 'created'
    UPDATED = 'updated'
    ARCHIVED = 'archived'
    RESTORED = 'restored'
    STOCK_IN = 'stock_in'
    STOCK_OUT = 'stock_out'


class StockoutStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    DENIED = 'denied'


class UserProfile(Base):
    __tablename__ = 'user_profiles'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole, name='user_role', values_callable=_enum_values),
        nullable=False,
        default=UserRole.STAFF,
    )
    status: Mapped[UserStatus] = mapped_column(
        SQLEnum(UserStatus, name='user_status', values_callable=_enum_values),
        nullable=False,
        default=UserStatus.ACTIVE,
        server_default='Active',
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )


class InventoryItem(Base):
    __tablename__ = 'inventory'
    __table_args__ = (
        CheckConstraint('quantity >= 0', name='inventory_quantity_non_negative_ck'),
        CheckConstraint('minimum_stock >= 0', name='inventory_minimum_stock_non_negative_ck'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[ItemCategory] = mapped_column(
        SQLEnum(ItemCategory, name='item_category', values_callable=_enum_values), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    minimum_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    location: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )


Index(
    'inventory_active_name_category_uniq',
    func.lower(InventoryItem.item_name),
    InventoryItem.category,
    unique=True,
    postgresql_where=InventoryItem.is_archived.is_(False),
    sqlite_where=InventoryItem.is_archived.is_(False),
)


class InventoryLog(Base):
    __tablename__ = 'inventory_logs'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    inventory_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('inventory.id', ondelete='SET NULL'))
    action_type: Mapped[InventoryAction] = mapped_column(
        SQLEnum(InventoryAction, name='inventory_action', values_callable=_enum_values), nullable=False
    )
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    previous_quantity: Mapped[int | None] = mapped_column(Integer)
    new_quantity: Mapped[int | None] = mapped_column(Integer)
    quantity_change: Mapped[int | None] = mapped_column(Integer)
    field_changed: Mapped[str | None] = mapped_column(Text)
    old_value: Mapped[str | None] = mapped_column(Text)
    new_value: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    actor_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('user_profiles.id'))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), index=True
    )


class StockoutRequest(Base):
    __tablename__ = 'stockout_requests'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='stockout_requests_quantity_positive_ck'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    inventory_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('inventory.id'), nullable=False)
    requested_by: Mapped[int] = mapped_column(BigInteger, ForeignKey('user_profiles.id'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    status: Mapped[StockoutStatus] = mapped_column(
        SQLEnum(StockoutStatus, name='stockout_status', values_callable=_enum_values),
        nullable=False,
        default=StockoutStatus.PENDING,
        server_default='pending',
        index=True,
    )
    approved_by: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('user_profiles.id'))
    decision_notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, server_default=func.now()
    )


class UserStatusAudit(Base):
    __tablename__ = 'user_status_audit'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    target_user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('user_profiles.id'), nullable=False)
    changed_by_user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('user_profiles.id'), nullable=False)
    old_status: Mapped[str] = mapped_column(String(16), nullable=False)
    new_status: Mapped[str] = mapped_column(String(16), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    attempted_username: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    user_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey('user_profiles.id'))
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    session_token: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey('user_profiles.id'), nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    last_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
