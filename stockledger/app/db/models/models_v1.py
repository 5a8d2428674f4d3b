from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    Uuid,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockledger.app.db.base import Base
from stockledger.app.db.models.core_types import MovementType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- MASTER DATA ----------
class Product(Base):
    __tablename__ = "products"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(String(100), index=True)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0, nullable=False)

    stock_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    low_stock_threshold: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # incrémenté à chaque mouvement ; sert aussi de colonne de verrou optimiste
    revision: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    movements: Mapped[list["StockMovement"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="StockMovement.revision",
    )

    __mapper_args__ = {
        "version_id_col": revision,
        "version_id_generator": False,
    }
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_product_stock_nonneg"),
        CheckConstraint("low_stock_threshold >= 0", name="ck_product_threshold_nonneg"),
        CheckConstraint("unit_price >= 0", name="ck_product_unit_price_nonneg"),
    )

    def __repr__(self) -> str:
        return f"<Product {self.sku}: qty={self.stock_quantity} threshold={self.low_stock_threshold}>"


# ---------- INVENTORY ----------
class StockMovement(Base):
    __tablename__ = "stock_movements"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    movement_type: Mapped[MovementType] = mapped_column(Enum(MovementType, name="movement_type"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)  # effet signé (new - previous)
    reason: Mapped[str | None] = mapped_column(String(255))

    previous_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    new_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    revision: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    product: Mapped[Product] = relationship(back_populates="movements")

    __table_args__ = (
        CheckConstraint("previous_quantity >= 0", name="ck_stock_movement_previous_nonneg"),
        CheckConstraint("new_quantity >= 0", name="ck_stock_movement_new_nonneg"),
        CheckConstraint("new_quantity - previous_quantity = quantity", name="ck_stock_movement_effect"),
        UniqueConstraint("product_id", "revision", name="uq_stock_movement_product_revision"),
        Index("ix_stock_movements_product_time", "product_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<StockMovement {self.movement_type.value} {self.quantity:+d} "
            f"({self.previous_quantity} -> {self.new_quantity})>"
        )
