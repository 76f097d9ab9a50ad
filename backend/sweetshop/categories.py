import logging
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sweetshop import models
from sweetshop.errors import Conflict, NotFound, ValidationError
from sweetshop.redis_client import RedisClient
from sweetshop.schemas import CategoryResponse
from sweetshop.validation import parse_id

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255
INVALID_ID = "Invalid category ID format."
NOT_FOUND = "Category not found."
DUPLICATE = "Category with this name already exists."


def _clean_name(payload: Dict[str, Any]) -> str:
    name = payload.get("name")
    if name is None:
        raise ValidationError("Category name is required.")
    if not isinstance(name, str):
        raise ValidationError("Category name must be a string.")

    name = name.strip()
    if name == "":
        raise ValidationError("Category name is required.")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError("Category name must be less than 255 characters.")
    return name


def _find_duplicate(db: Session, name: str, exclude_id: Optional[int] = None):
    query = db.query(models.Category).filter(func.lower(models.Category.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(models.Category.id != exclude_id)
    return query.first()


def _get_or_404(db: Session, category_id: int) -> models.Category:
    category = db.query(models.Category).filter(models.Category.id == category_id).first()
    if not category:
        raise NotFound(NOT_FOUND)
    return category


def _commit_unique(db: Session):
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(DUPLICATE)


def create_category(db: Session, payload: Dict[str, Any], cache: RedisClient = None) -> dict:
    name = _clean_name(payload)
    if _find_duplicate(db, name):
        raise Conflict(DUPLICATE)

    category = models.Category(name=name)
    db.add(category)
    _commit_unique(db)
    db.refresh(category)

    if cache:
        cache.invalidate_categories_cache()
    logger.info("Created category %s (%s)", category.id, category.name)
    return CategoryResponse.model_validate(category).to_json()


def update_category(db: Session, raw_id: Any, payload: Dict[str, Any], cache: RedisClient = None) -> dict:
    category_id = parse_id(raw_id, INVALID_ID)
    name = _clean_name(payload)
    category = _get_or_404(db, category_id)

    if _find_duplicate(db, name, exclude_id=category_id):
        raise Conflict(DUPLICATE)

    category.name = name
    _commit_unique(db)
    db.refresh(category)

    if cache:
        cache.invalidate_categories_cache()
        # product payloads embed the category name
        cache.invalidate_all_products_cache()
    return CategoryResponse.model_validate(category).to_json()


def delete_category(db: Session, raw_id: Any, cache: RedisClient = None) -> dict:
    """
    Delete a category together with its products and every order item that
    references those products. All three deletes commit or roll back together.
    """
    category_id = parse_id(raw_id, INVALID_ID)
    category = _get_or_404(db, category_id)
    category_name = category.name

    product_ids = [
        row.id for row in db.query(models.Product.id).filter(models.Product.category_id == category_id)
    ]

    try:
        deleted_items = 0
        if product_ids:
            deleted_items = db.query(models.OrderItem) \
                .filter(models.OrderItem.product_id.in_(product_ids)) \
                .delete(synchronize_session=False)
        deleted_products = db.query(models.Product) \
            .filter(models.Product.category_id == category_id) \
            .delete(synchronize_session=False)
        db.query(models.Category).filter(models.Category.id == category_id).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.expire_all()

    if cache:
        cache.invalidate_categories_cache()
        cache.invalidate_product_cache(*product_ids)

    logger.info(
        "Deleted category %s with %d products and %d order items",
        category_id, deleted_products, deleted_items,
    )
    return {
        "id": category_id,
        "name": category_name,
        "deleted": True,
        "deletedProductsCount": deleted_products,
        "deletedOrderItemsCount": deleted_items,
    }


def list_categories(db: Session, cache: RedisClient = None) -> dict:
    if cache:
        cached = cache.get_cached_categories()
        if cached:
            return cached

    categories = db.query(models.Category).order_by(models.Category.name.asc()).all()
    data = {
        "categories": [CategoryResponse.model_validate(c).to_json() for c in categories],
        "total": len(categories),
    }

    if cache:
        cache.cache_categories(data)
    return data


def get_category(db: Session, raw_id: Any) -> dict:
    category_id = parse_id(raw_id, INVALID_ID)
    return CategoryResponse.model_validate(_get_or_404(db, category_id)).to_json()
