import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from stockledger.app.db.models.core_types import MovementType


class ProductCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(default=None, max_length=100)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0, max_digits=14, decimal_places=2)
    initial_stock: int = Field(default=0, ge=0)
    low_stock_threshold: int | None = Field(default=None, ge=0)  # None -> seuil par défaut (config)


class ProductFilter(BaseModel):
    category: str | None = None
    search_term: str | None = None
    min_price: Decimal | None = Field(default=None, ge=0)
    max_price: Decimal | None = Field(default=None, ge=0)
    in_stock_only: bool = False

    @model_validator(mode="after")
    def _check_price_range(self):
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("min_price must not exceed max_price")
        return self


class ProductRead(BaseModel):
    id: uuid.UUID
    sku: str
    name: str
    category: str | None
    unit_price: Decimal

    stock_quantity: int
    low_stock_threshold: int
    updated_at: datetime

    class Config:
        from_attributes = True


class StockMovementRead(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    movement_type: MovementType
    quantity: int  # effet signé
    reason: str | None

    previous_quantity: int
    new_quantity: int
    created_at: datetime

    class Config:
        from_attributes = True
