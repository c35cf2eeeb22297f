"""
SQLAlchemy ORM models for the normalised schema.

Dimension tables: stores, promoters, user_profiles, area_hierarchy.
Fact tables: sales (legacy, before the cutover) and
vast_finance_applications (successor, from the cutover on). Both fact tables
use ``deleted_at`` for soft deletes; only rows with ``deleted_at IS NULL``
are live.
"""

from datetime import date, datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

UUID_TYPE = String(36)


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Store(Base):
    __tablename__ = "stores"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    area_detail: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id: Mapped[str] = mapped_column(UUID_TYPE, primary_key=True, default=new_id)
    email: Mapped[str | None] = mapped_column(Text, unique=True)
    employee_id: Mapped[str | None] = mapped_column(Text, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False)
    area: Mapped[str] = mapped_column(Text, nullable=False)
    sator_name: Mapped[str | None] = mapped_column(Text)
    password_hash: Mapped[str | None] = mapped_column(Text)
    pin_hash: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class Promoter(Base):
    __tablename__ = "promoters"

    id: Mapped[str] = mapped_column(UUID_TYPE, primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    sator: Mapped[str] = mapped_column(Text, nullable=False)
    target: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    store_id: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    employee_id: Mapped[str | None] = mapped_column(Text)
    user_id: Mapped[str | None] = mapped_column(
        UUID_TYPE, ForeignKey("user_profiles.id", ondelete="SET NULL")
    )
    spv_id: Mapped[str | None] = mapped_column(UUID_TYPE)
    area: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (Index("ix_promoters_name_store", "name", "store_id"),)


class Sale(Base):
    """Legacy fact table: live rows are strictly before the cutover date."""

    __tablename__ = "sales"

    id: Mapped[str] = mapped_column(UUID_TYPE, primary_key=True, default=new_id)
    sale_date: Mapped[date] = mapped_column(Date, nullable=False)
    promoter_name: Mapped[str] = mapped_column(Text, nullable=False)
    store_id: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    phone_type: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(Text)
    image_public_id: Mapped[str | None] = mapped_column(Text)
    created_by_user_id: Mapped[str | None] = mapped_column(UUID_TYPE)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (Index("ix_sales_sale_date", "sale_date"),)


class FinanceApplication(Base):
    """Successor fact table: live rows are on or after the cutover date."""

    __tablename__ = "vast_finance_applications"

    id: Mapped[str] = mapped_column(UUID_TYPE, primary_key=True, default=new_id)
    sale_date: Mapped[date] = mapped_column(Date, nullable=False)
    status_pengajuan: Mapped[str] = mapped_column(Text, nullable=False)
    customer_name: Mapped[str] = mapped_column(Text, nullable=False)
    customer_phone: Mapped[str] = mapped_column(Text, nullable=False)
    pekerjaan: Mapped[str] = mapped_column(Text, nullable=False)
    penghasilan: Mapped[float | None] = mapped_column(Float)
    has_npwp: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    limit_amount: Mapped[float | None] = mapped_column(Float)
    promoter_name: Mapped[str | None] = mapped_column(Text)
    promoter_id: Mapped[str | None] = mapped_column(UUID_TYPE)
    store_id: Mapped[str | None] = mapped_column(Text)
    phone_type: Mapped[str | None] = mapped_column(Text)
    proof_image_url: Mapped[str | None] = mapped_column(Text)
    proof_image_public_id: Mapped[str | None] = mapped_column(Text)
    ktp_image_url: Mapped[str | None] = mapped_column(Text)
    ktp_image_public_id: Mapped[str | None] = mapped_column(Text)
    created_by_user_id: Mapped[str | None] = mapped_column(UUID_TYPE)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (Index("ix_vast_finance_sale_date", "sale_date"),)


class AreaHierarchy(Base):
    __tablename__ = "area_hierarchy"

    id: Mapped[str] = mapped_column(UUID_TYPE, primary_key=True, default=new_id)
    area: Mapped[str] = mapped_column(Text, nullable=False)
    manager_name: Mapped[str | None] = mapped_column(Text)
    manager_user_id: Mapped[str | None] = mapped_column(UUID_TYPE)
    sator_name: Mapped[str] = mapped_column(Text, nullable=False)
    sator_user_id: Mapped[str | None] = mapped_column(UUID_TYPE)
    promoter_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class ImageCleanupLog(Base):
    __tablename__ = "image_cleanup_logs"

    id: Mapped[str] = mapped_column(UUID_TYPE, primary_key=True, default=new_id)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    total_checked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deleted_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[list | None] = mapped_column(JSON)
    executed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
