# products.py
import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shopfront.auth import require_admin
from shopfront.db import get_db
from shopfront.errors import AppError, ErrorKind, parse_uuid
from shopfront.models import Category, Product
from shopfront.responses import send_success
from shopfront.schemas import ProductCreate, ProductDetail, ProductOut, StockUpdate

# --- Configuration & Setup ---
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/products", tags=["Products"])


async def _get_product_detail(db: AsyncSession, product_id, refresh: bool = False) -> Optional[Product]:
    query = select(Product).where(Product.id == product_id).options(selectinload(Product.category))
    if refresh:
        query = query.execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalars().first()


# --- API Endpoints ---

@router.get("", summary="List products")
async def list_products(
    search: Optional[str] = None,
    category_id: Optional[str] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
    in_stock: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Lists the catalog, newest first.

    - `search` matches name or description, case-insensitive.
    - `in_stock=true` keeps only products with stock left.
    """
    query = select(Product).options(selectinload(Product.category))

    if search:
        like = f"%{search}%"
        query = query.where(or_(Product.name.ilike(like), Product.description.ilike(like)))
    if category_id:
        query = query.where(Product.category_id == parse_uuid(category_id, "category ID"))
    if min_price is not None:
        query = query.where(Product.price >= min_price)
    if max_price is not None:
        query = query.where(Product.price <= max_price)
    if in_stock:
        query = query.where(Product.stock > 0)

    result = await db.execute(query.order_by(Product.created_at.desc()))
    products = [ProductDetail.model_validate(p) for p in result.scalars().all()]
    return send_success(products, "Products fetched successfully")


@router.get("/{product_id}", summary="Get a single product")
async def get_product(product_id: str, db: AsyncSession = Depends(get_db)):
    product = await _get_product_detail(db, parse_uuid(product_id, "product ID"))
    if not product:
        raise AppError("Product not found", kind=ErrorKind.NOT_FOUND)
    return send_success(ProductDetail.model_validate(product), "Product fetched successfully")


@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_admin)])
async def create_product(payload: ProductCreate, db: AsyncSession = Depends(get_db)):
    if payload.category_id and not await db.get(Category, payload.category_id):
        raise AppError("Category not found", kind=ErrorKind.NOT_FOUND)

    product = Product(
        name=payload.name,
        description=payload.description or None,
        price=payload.price,
        image_url=str(payload.image_url) if payload.image_url else None,
        stock=payload.stock,
        category_id=payload.category_id,
    )
    db.add(product)
    await db.commit()

    logger.info(f"Created product {product.name!r} ({product.id})")
    product = await _get_product_detail(db, product.id, refresh=True)
    return send_success(ProductDetail.model_validate(product), "Product created successfully", 201)


@router.put("/{product_id}/stock", dependencies=[Depends(require_admin)])
async def update_product_stock(product_id: str, payload: StockUpdate, db: AsyncSession = Depends(get_db)):
    product = await db.get(Product, parse_uuid(product_id, "product ID"))
    if not product:
        raise AppError("Product not found", kind=ErrorKind.NOT_FOUND)

    product.stock = payload.stock
    await db.commit()
    return send_success(ProductOut.model_validate(product), "Product stock updated successfully")
