# categories.py
import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shopfront.auth import require_admin
from shopfront.db import get_db
from shopfront.errors import AppError, ErrorKind, parse_uuid
from shopfront.models import Category, Product
from shopfront.responses import send_success
from shopfront.schemas import CategoryCreate, CategoryDetail, CategoryOut, CategoryUpdate

# --- Configuration & Setup ---
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/categories", tags=["Categories"])

_WHITESPACE_RE = re.compile(r"\s+")
_INVALID_SLUG_CHARS_RE = re.compile(r"[^a-z0-9-]")


def slugify(value: str) -> str:
    """Lower-case, whitespace runs to hyphens, anything else non-alphanumeric dropped."""
    slug = _WHITESPACE_RE.sub("-", value.strip().lower())
    return _INVALID_SLUG_CHARS_RE.sub("", slug)


def resolve_slug(name: str, slug: Optional[str] = None) -> str:
    source = slug if slug and slug.strip() else name
    resolved = slugify(source)
    if not resolved:
        raise AppError("Category name must contain at least one alphanumeric character", 400)
    return resolved


async def _product_count(db: AsyncSession, category_id) -> int:
    result = await db.execute(select(func.count(Product.id)).where(Product.category_id == category_id))
    return result.scalar_one()


async def _commit_unique(db: AsyncSession, category: Category) -> None:
    slug = category.slug
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Category unique constraint violation for slug {slug!r}: {e.orig}")
        raise AppError("Category with this name or slug already exists", 400)


# --- API Endpoints ---

@router.get("", summary="List all categories")
async def list_categories(db: AsyncSession = Depends(get_db)):
    query = (
        select(Category, func.count(Product.id))
        .outerjoin(Product, Product.category_id == Category.id)
        .group_by(Category.id)
        .order_by(Category.name.asc())
    )
    rows = (await db.execute(query)).all()
    categories = [
        CategoryOut.model_validate(category).model_copy(update={"product_count": count})
        for category, count in rows
    ]
    return send_success(categories, "Categories fetched successfully")


@router.get("/{category_id}", summary="Get a category with its products")
async def get_category(category_id: str, db: AsyncSession = Depends(get_db)):
    cid = parse_uuid(category_id, "category ID")
    result = await db.execute(
        select(Category).where(Category.id == cid).options(selectinload(Category.products))
    )
    category = result.scalars().first()
    if not category:
        raise AppError("Category not found", kind=ErrorKind.NOT_FOUND)

    detail = CategoryDetail.model_validate(category).model_copy(
        update={"product_count": len(category.products)}
    )
    return send_success(detail, "Category fetched successfully")


@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_admin)])
async def create_category(payload: CategoryCreate, db: AsyncSession = Depends(get_db)):
    category = Category(name=payload.name.strip(), slug=resolve_slug(payload.name, payload.slug))
    db.add(category)
    await _commit_unique(db, category)

    logger.info(f"Created category {category.slug} ({category.id})")
    return send_success(CategoryOut.model_validate(category), "Category created successfully", 201)


@router.put("/{category_id}", dependencies=[Depends(require_admin)])
async def update_category(category_id: str, payload: CategoryUpdate, db: AsyncSession = Depends(get_db)):
    category = await db.get(Category, parse_uuid(category_id, "category ID"))
    if not category:
        raise AppError("Category not found", kind=ErrorKind.NOT_FOUND)

    if payload.name:
        category.name = payload.name.strip()
    if payload.slug:
        category.slug = resolve_slug(payload.slug)
    await _commit_unique(db, category)

    count = await _product_count(db, category.id)
    out = CategoryOut.model_validate(category).model_copy(update={"product_count": count})
    return send_success(out, "Category updated successfully")
