import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from sweetshop import models
from sweetshop.errors import Conflict, NotFound, ValidationError
from sweetshop.redis_client import RedisClient
from sweetshop.schemas import ProductResponse
from sweetshop.validation import (
    INT4_MAX,
    escape_like,
    is_int4,
    is_integer,
    is_number,
    is_valid_url,
    optional_int,
    pagination_meta,
    parse_id,
    parse_pagination,
)

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255
MAX_IMAGES = 5
DEFAULT_LIMIT = 12
MAX_LIMIT = 50
INVALID_ID = "Valid product ID is required."
NOT_FOUND = "Product not found."
DUPLICATE = "Product with this name already exists."


# ---------- field rules shared by create and update ----------

def _check_name(name: Any) -> str:
    if not isinstance(name, str) or name.strip() == "":
        raise ValidationError("Product name must be a non-empty string.")
    name = name.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError("Product name must be less than 255 characters.")
    return name


def _check_price(price: Any) -> int:
    if not is_number(price) or price <= 0:
        raise ValidationError("Price must be a positive number.")
    if not is_integer(price):
        raise ValidationError("Price must be a whole number of minor currency units.")
    if price > INT4_MAX:
        raise ValidationError(f"Price must not exceed {INT4_MAX}.")
    return int(price)


def _check_stock(stock_quantity: Any) -> int:
    if not is_integer(stock_quantity) or stock_quantity < 0:
        raise ValidationError("Stock quantity must be 0 or greater.")
    if stock_quantity > INT4_MAX:
        raise ValidationError(f"Stock quantity must not exceed {INT4_MAX}.")
    return int(stock_quantity)


def _check_category(db: Session, category_id: Any) -> int:
    if not is_int4(category_id):
        raise ValidationError("Valid category ID is required.")
    category_id = int(category_id)
    if not db.query(models.Category.id).filter(models.Category.id == category_id).first():
        raise NotFound("Category not found.")
    return category_id


def _check_description(description: Any) -> Optional[str]:
    if description is None:
        return None
    if not isinstance(description, str):
        raise ValidationError("Description must be a string.")
    return description.strip() or None


def _check_image_urls(image_urls: Any) -> List[str]:
    if image_urls is None:
        return []
    if not isinstance(image_urls, list):
        raise ValidationError("Image URLs must be an array.")
    if len(image_urls) > MAX_IMAGES:
        raise ValidationError("Maximum 5 images allowed per product.")
    if not all(is_valid_url(url) for url in image_urls):
        raise ValidationError("All image URLs must be valid URLs.")
    return list(image_urls)


def _find_duplicate(db: Session, name: str, exclude_id: Optional[int] = None):
    query = db.query(models.Product).filter(func.lower(models.Product.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(models.Product.id != exclude_id)
    return query.first()


def _load(db: Session, product_id: int) -> Optional[models.Product]:
    return db.query(models.Product) \
        .options(joinedload(models.Product.category)) \
        .filter(models.Product.id == product_id) \
        .first()


def _commit_unique(db: Session):
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(DUPLICATE)


# ---------- operations ----------

def create_product(db: Session, payload: Dict[str, Any]) -> dict:
    name = payload.get("name")
    price = payload.get("price")
    stock_quantity = payload.get("stock_quantity")
    category_id = payload.get("categoryId")

    missing = []
    if not isinstance(name, str) or name.strip() == "":
        missing.append("name")
    if price is None:
        missing.append("price")
    if stock_quantity is None:
        missing.append("stock_quantity")
    if not category_id:
        missing.append("categoryId")
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}.")

    price = _check_price(price)
    stock_quantity = _check_stock(stock_quantity)
    if not is_int4(category_id):
        raise ValidationError("Valid category ID is required.")
    name = _check_name(name)
    description = _check_description(payload.get("description"))
    image_urls = _check_image_urls(payload.get("image_urls"))
    category_id = _check_category(db, category_id)

    if _find_duplicate(db, name):
        raise Conflict(DUPLICATE)

    product = models.Product(
        name=name,
        price=price,
        description=description,
        stock_quantity=stock_quantity,
        category_id=category_id,
        image_urls=image_urls,
    )
    db.add(product)
    _commit_unique(db)

    logger.info("Created product %s (%s)", product.id, name)
    return ProductResponse.model_validate(_load(db, product.id)).to_json()


def update_product(db: Session, raw_id: Any, payload: Dict[str, Any], cache: RedisClient = None) -> dict:
    """Apply only the fields present in ``payload``."""
    product_id = parse_id(raw_id, INVALID_ID)
    product = _load(db, product_id)
    if not product:
        raise NotFound(NOT_FOUND)

    changes: Dict[str, Any] = {}
    if "name" in payload:
        changes["name"] = _check_name(payload["name"])
    if "price" in payload:
        changes["price"] = _check_price(payload["price"])
    if "stock_quantity" in payload:
        changes["stock_quantity"] = _check_stock(payload["stock_quantity"])
    if "categoryId" in payload:
        changes["category_id"] = _check_category(db, payload["categoryId"])
    if "image_urls" in payload:
        changes["image_urls"] = _check_image_urls(payload["image_urls"])
    if "description" in payload:
        changes["description"] = _check_description(payload["description"])

    new_name = changes.get("name")
    if new_name is not None and new_name.lower() != product.name.lower():
        if _find_duplicate(db, new_name, exclude_id=product_id):
            raise Conflict(DUPLICATE)

    for key, value in changes.items():
        setattr(product, key, value)
    _commit_unique(db)
    db.expire_all()

    if cache:
        cache.invalidate_product_cache(product_id)
    return ProductResponse.model_validate(_load(db, product_id)).to_json()


def delete_product(db: Session, raw_id: Any, cache: RedisClient = None) -> dict:
    """Delete a product and the order items that reference it, atomically."""
    product_id = parse_id(raw_id, INVALID_ID)
    product = db.query(models.Product).filter(models.Product.id == product_id).first()
    if not product:
        raise NotFound(NOT_FOUND)
    product_name = product.name

    try:
        deleted_items = db.query(models.OrderItem) \
            .filter(models.OrderItem.product_id == product_id) \
            .delete(synchronize_session=False)
        db.query(models.Product).filter(models.Product.id == product_id).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.expire_all()

    if cache:
        cache.invalidate_product_cache(product_id)

    logger.info("Deleted product %s and %d order items", product_id, deleted_items)
    return {
        "id": product_id,
        "name": product_name,
        "deletedOrderItemsCount": deleted_items,
        "deleted_at": datetime.now(timezone.utc).isoformat(),
    }


def list_products(db: Session, page: Optional[str] = None, limit: Optional[str] = None,
                  category_id: Optional[str] = None, search: Optional[str] = None,
                  min_price: Optional[str] = None, max_price: Optional[str] = None,
                  in_stock: Optional[str] = None) -> dict:
    page_number, limit_number = parse_pagination(page, limit, DEFAULT_LIMIT, MAX_LIMIT)

    query = db.query(models.Product)

    category_filter = optional_int(category_id)
    if category_filter is not None:
        query = query.filter(models.Product.category_id == category_filter)

    if search:
        pattern = f"%{escape_like(search)}%"
        query = query.filter(or_(
            models.Product.name.ilike(pattern, escape="\\"),
            models.Product.description.ilike(pattern, escape="\\"),
        ))

    min_value = optional_int(min_price)
    if min_value is not None:
        query = query.filter(models.Product.price >= min_value)
    max_value = optional_int(max_price)
    if max_value is not None:
        query = query.filter(models.Product.price <= max_value)

    if in_stock == "true":
        query = query.filter(models.Product.stock_quantity > 0)

    total = query.count()
    products = query.options(joinedload(models.Product.category)) \
        .order_by(models.Product.created_at.desc(), models.Product.id.desc()) \
        .offset((page_number - 1) * limit_number) \
        .limit(limit_number) \
        .all()

    return {
        "products": [ProductResponse.model_validate(p).to_json() for p in products],
        "pagination": pagination_meta(page_number, limit_number, total, "totalProducts"),
    }


def get_product(db: Session, raw_id: Any, cache: RedisClient = None) -> dict:
    product_id = parse_id(raw_id, INVALID_ID)

    if cache:
        cached = cache.get_cached_product(product_id)
        if cached:
            return cached

    product = _load(db, product_id)
    if not product:
        raise NotFound(NOT_FOUND)

    data = ProductResponse.model_validate(product).to_json()
    if cache:
        cache.cache_product(product_id, data)
    return data
