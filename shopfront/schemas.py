# schemas.py
"""Pydantic schemas for request validation and response shaping."""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl

from shopfront.models import OrderStatus


# --- Categories ---

class CategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    slug: Optional[str] = Field(default=None, min_length=1)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    slug: Optional[str] = Field(default=None, min_length=1)


class CategorySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    slug: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryOut(CategorySummary):
    product_count: int = 0


# --- Products ---

class ProductCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    image_url: Optional[HttpUrl] = None
    stock: int = Field(default=0, ge=0)
    category_id: Optional[uuid.UUID] = None


class StockUpdate(BaseModel):
    stock: int = Field(ge=0)


class ProductSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    price: float
    image_url: Optional[str] = None


class ProductOut(ProductSummary):
    description: Optional[str] = None
    stock: int
    category_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProductDetail(ProductOut):
    category: Optional[CategorySummary] = None


class CategoryDetail(CategoryOut):
    products: List[ProductOut] = []


# --- Orders ---

MAX_ITEM_QUANTITY = 10_000


class OrderItemIn(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(gt=0, le=MAX_ITEM_QUANTITY)


class OrderCreate(BaseModel):
    items: List[OrderItemIn] = Field(min_length=1)
    customer_email: EmailStr


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: uuid.UUID
    quantity: int
    price: float
    product: Optional[ProductSummary] = None


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    customer_email: str
    total_amount: float
    status: OrderStatus
    stripe_payment_intent_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemOut] = []


class PaymentIntentOut(BaseModel):
    order: OrderOut
    client_secret: str


class StockAdjustmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: uuid.UUID
    quantity: int
    applied: bool
    error: Optional[str] = None


class OrderStatusOut(BaseModel):
    order: OrderOut
    stock_adjustments: List[StockAdjustmentOut] = []
    notified: bool = False


class OrderPage(BaseModel):
    orders: List[OrderOut]
    total: int
    limit: Optional[int] = None
    offset: Optional[int] = None
