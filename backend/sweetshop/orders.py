"""
Order placement and order queries.

Placing an order validates the cart, prices it from live product rows and
then, inside a single transaction, decrements stock with conditional
updates, takes the next token number from the per-day counter and writes
the order with its items. Any failure in that transaction leaves nothing
behind.
"""
import logging
import re
from collections import OrderedDict
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from sweetshop import models
from sweetshop.auth import TokenClaims
from sweetshop.errors import (
    AuthenticationError,
    InsufficientStock,
    NotFound,
    OrderProcessingFailed,
    ValidationError,
)
from sweetshop.redis_client import RedisClient
from sweetshop.schemas import AdminOrderResponse, OrderResponse, OrderSummary
from sweetshop.validation import (
    INT4_MAX,
    escape_like,
    is_blank,
    is_int4,
    is_integer,
    pagination_meta,
    parse_id,
    parse_pagination,
)

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^[0-9]{10}$")
PINCODE_RE = re.compile(r"^[0-9]{6}$")

# column sizes of the free-text order fields
TEXT_LIMITS = {
    "customer_name": ("Customer name", 255),
    "address_line1": ("Address line 1", 255),
    "address_line2": ("Address line 2", 255),
    "city": ("City", 100),
    "landmark": ("Landmark", 255),
}

USER_DEFAULT_LIMIT, USER_MAX_LIMIT = 10, 50
ADMIN_DEFAULT_LIMIT, ADMIN_MAX_LIMIT = 20, 100

INT8_MAX = 9223372036854775807

INVALID_ID = "Invalid order ID format."
NOT_FOUND = "Order not found."


# ---------- validation ----------

def _validate_order_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    customer_name = payload.get("customer_name")
    phone_number = payload.get("phone_number")
    order_type = payload.get("order_type")
    items = payload.get("items")

    missing = []
    if is_blank(customer_name):
        missing.append("customer_name")
    if is_blank(phone_number):
        missing.append("phone_number")
    if order_type not in models.ORDER_TYPES:
        missing.append("order_type")
    if not isinstance(items, list) or len(items) == 0:
        missing.append("items")
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}.")

    if not PHONE_RE.fullmatch(phone_number):
        raise ValidationError("Phone number must be exactly 10 digits.")
    _check_length("customer_name", customer_name.strip())

    address = {
        "address_line1": None,
        "address_line2": None,
        "city": None,
        "pincode": None,
        "landmark": None,
    }
    if order_type == "DELIVERY":
        missing_address = [
            field for field in ("address_line1", "city", "pincode") if is_blank(payload.get(field))
        ]
        if missing_address:
            raise ValidationError(f"Delivery orders require address fields: {', '.join(missing_address)}.")

        pincode = payload["pincode"].strip()
        if not PINCODE_RE.fullmatch(pincode):
            raise ValidationError("Pincode must be exactly 6 digits.")

        address["address_line1"] = payload["address_line1"].strip()
        address["city"] = payload["city"].strip()
        address["pincode"] = pincode
        for optional_field in ("address_line2", "landmark"):
            value = payload.get(optional_field)
            address[optional_field] = (value.strip() or None) if isinstance(value, str) else None

        for field, value in address.items():
            if value is not None:
                _check_length(field, value)

    lines = []
    for item in items:
        if not isinstance(item, dict):
            raise ValidationError("Each item must have a valid product_id.")
        product_id = item.get("product_id")
        quantity = item.get("quantity")
        if not is_int4(product_id) or product_id <= 0:
            raise ValidationError("Each item must have a valid product_id.")
        if not is_integer(quantity) or quantity <= 0:
            raise ValidationError("Each item must have a positive quantity.")
        lines.append((int(product_id), int(quantity)))

    return {
        "customer_name": customer_name.strip(),
        "phone_number": phone_number.strip(),
        "order_type": order_type,
        "address": address,
        "lines": lines,
    }


def _check_length(field: str, value: str):
    if field in TEXT_LIMITS:
        label, limit = TEXT_LIMITS[field]
        if len(value) > limit:
            raise ValidationError(f"{label} must be at most {limit} characters.")


def _requested_quantities(lines) -> "OrderedDict[int, int]":
    totals: "OrderedDict[int, int]" = OrderedDict()
    for product_id, quantity in lines:
        totals[product_id] = totals.get(product_id, 0) + quantity
    return totals


def _shortfall_message(shortfalls: List[str]) -> str:
    return f"Insufficient stock for: {', '.join(shortfalls)}."


# ---------- token numbers ----------

def next_token_number(db: Session, day: date) -> int:
    """
    Increment and return the token counter for ``day``.

    Runs inside the caller's transaction. The UPDATE holds the counter row
    until commit, so concurrent orders for the same day are serialised.
    """
    counter = models.DailyTokenCounter
    increment = update(counter) \
        .where(counter.day == day) \
        .values(last_token=counter.last_token + 1) \
        .execution_options(synchronize_session=False)

    if db.execute(increment).rowcount == 0:
        # first order of the day; continue after any orders already stored for it
        start = (db.query(func.max(models.Order.token_number))
                 .filter(models.Order.order_date == day)
                 .scalar() or 0) + 1
        try:
            with db.begin_nested():
                db.add(counter(day=day, last_token=start))
            return start
        except IntegrityError:
            # a concurrent order created the row first
            db.execute(increment)

    return db.query(counter.last_token).filter(counter.day == day).scalar()


def _reserve_stock(db: Session, quantities: Dict[int, int], products: Dict[int, models.Product]):
    # ascending id order so concurrent carts lock rows in the same sequence
    for product_id, quantity in sorted(quantities.items()):
        result = db.execute(
            update(models.Product)
            .where(models.Product.id == product_id, models.Product.stock_quantity >= quantity)
            .values(stock_quantity=models.Product.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            available = db.query(models.Product.stock_quantity) \
                .filter(models.Product.id == product_id).scalar() or 0
            product = products[product_id]
            raise InsufficientStock(_shortfall_message([
                f"{product.name} (available: {available}, requested: {quantity})"
            ]))


# ---------- operations ----------

def _load_order(db: Session, order_id: int, owner_id: Optional[int] = None, with_user: bool = False):
    options = [selectinload(models.Order.items).joinedload(models.OrderItem.product)]
    if with_user:
        options.append(joinedload(models.Order.user))
    query = db.query(models.Order).options(*options).filter(models.Order.id == order_id)
    if owner_id is not None:
        query = query.filter(models.Order.user_id == owner_id)
    return query.first()


def create_order(db: Session, claims: Optional[TokenClaims], payload: Dict[str, Any],
                 cache: RedisClient = None, today: Optional[date] = None) -> dict:
    if claims is None or not claims.id:
        raise AuthenticationError("Authentication required.")

    order_input = _validate_order_payload(payload)
    quantities = _requested_quantities(order_input["lines"])

    products = {
        p.id: p for p in db.query(models.Product).filter(models.Product.id.in_(list(quantities))).all()
    }
    missing_ids = [str(pid) for pid in quantities if pid not in products]
    if missing_ids:
        raise NotFound(f"Product not found with IDs: {', '.join(missing_ids)}.")

    # report every shortfall at once
    shortfalls = [
        f"{products[pid].name} (available: {products[pid].stock_quantity}, requested: {qty})"
        for pid, qty in quantities.items()
        if products[pid].stock_quantity < qty
    ]
    if shortfalls:
        raise InsufficientStock(_shortfall_message(shortfalls))

    unit_prices = {pid: products[pid].price for pid in quantities}
    total_amount = sum(unit_prices[pid] * qty for pid, qty in order_input["lines"])
    if total_amount > INT8_MAX:
        raise ValidationError("Order total is too large.")
    order_day = today or date.today()

    try:
        _reserve_stock(db, quantities, products)
        token_number = next_token_number(db, order_day)

        order = models.Order(
            user_id=claims.id,
            customer_name=order_input["customer_name"],
            phone_number=order_input["phone_number"],
            token_number=token_number,
            order_date=order_day,
            order_type=order_input["order_type"],
            status="PENDING",
            total_amount=total_amount,
            **order_input["address"],
        )
        db.add(order)
        db.flush()

        for product_id, quantity in order_input["lines"]:
            db.add(models.OrderItem(
                order_id=order.id,
                product_id=product_id,
                quantity=quantity,
                price=unit_prices[product_id],
            ))
        db.commit()
    except InsufficientStock:
        db.rollback()
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Order transaction failed for user %s", claims.id)
        raise OrderProcessingFailed()

    order_id = order.id
    db.expire_all()
    if cache:
        cache.invalidate_product_cache(*quantities.keys())

    logger.info("Created order %s (token %s, total %s) for user %s",
                order_id, token_number, total_amount, claims.id)
    return OrderResponse.model_validate(_load_order(db, order_id)).to_json()


def _apply_filters(query, status: Optional[str], order_type: Optional[str]):
    if status in models.ORDER_STATUSES:
        query = query.filter(models.Order.status == status)
    if order_type in models.ORDER_TYPES:
        query = query.filter(models.Order.order_type == order_type)
    return query


def list_user_orders(db: Session, claims: Optional[TokenClaims], page: Optional[str] = None,
                     limit: Optional[str] = None, status: Optional[str] = None,
                     order_type: Optional[str] = None) -> dict:
    """Orders owned by the caller only, newest first."""
    if claims is None or not claims.id:
        raise AuthenticationError("Authentication required.")
    page_number, limit_number = parse_pagination(page, limit, USER_DEFAULT_LIMIT, USER_MAX_LIMIT)

    query = _apply_filters(
        db.query(models.Order).filter(models.Order.user_id == claims.id), status, order_type
    )
    total = query.count()
    orders = query.options(selectinload(models.Order.items).joinedload(models.OrderItem.product)) \
        .order_by(models.Order.created_at.desc(), models.Order.id.desc()) \
        .offset((page_number - 1) * limit_number) \
        .limit(limit_number) \
        .all()

    return {
        "orders": [OrderResponse.model_validate(o).to_json() for o in orders],
        "total": total,
        "pagination": pagination_meta(page_number, limit_number, total, "totalOrders"),
    }


def list_all_orders(db: Session, page: Optional[str] = None, limit: Optional[str] = None,
                    status: Optional[str] = None, order_type: Optional[str] = None,
                    search: Optional[str] = None) -> dict:
    page_number, limit_number = parse_pagination(page, limit, ADMIN_DEFAULT_LIMIT, ADMIN_MAX_LIMIT)

    query = _apply_filters(db.query(models.Order), status, order_type)
    if search and search.strip():
        term = search.strip()
        conditions = [
            models.Order.customer_name.ilike(f"%{escape_like(term)}%", escape="\\"),
            models.Order.phone_number.contains(term, autoescape=True),
        ]
        if term.isdigit() and int(term) <= INT4_MAX:
            conditions.append(models.Order.token_number == int(term))
        query = query.filter(or_(*conditions))

    total = query.count()
    orders = query.options(
        selectinload(models.Order.items).joinedload(models.OrderItem.product),
        joinedload(models.Order.user),
    ) \
        .order_by(models.Order.created_at.desc(), models.Order.id.desc()) \
        .offset((page_number - 1) * limit_number) \
        .limit(limit_number) \
        .all()

    return {
        "orders": [AdminOrderResponse.model_validate(o).to_json() for o in orders],
        "pagination": pagination_meta(page_number, limit_number, total, "totalOrders"),
    }


def get_order(db: Session, raw_id: Any, claims: Optional[TokenClaims]) -> dict:
    """
    Admins can read any order. Everyone else only sees their own; another
    user's order is reported as not found.
    """
    if claims is None or not claims.id:
        raise AuthenticationError("Authentication required.")
    order_id = parse_id(raw_id, INVALID_ID)

    if claims.role == models.ROLE_ADMIN:
        order = _load_order(db, order_id, with_user=True)
        if not order:
            raise NotFound(NOT_FOUND)
        return AdminOrderResponse.model_validate(order).to_json()

    order = _load_order(db, order_id, owner_id=claims.id)
    if not order:
        raise NotFound(NOT_FOUND)
    return OrderResponse.model_validate(order).to_json()


def update_order_status(db: Session, raw_id: Any, payload: Dict[str, Any]) -> dict:
    order_id = parse_id(raw_id, INVALID_ID)
    new_status = payload.get("status")
    if new_status not in models.ORDER_STATUSES:
        raise ValidationError(f"Valid status is required ({', '.join(models.ORDER_STATUSES)}).")

    order = db.query(models.Order).filter(models.Order.id == order_id).first()
    if not order:
        raise NotFound(NOT_FOUND)

    previous = order.status
    order.status = new_status
    db.commit()
    db.refresh(order)

    logger.info("Order %s status %s -> %s", order_id, previous, new_status)
    return OrderSummary.model_validate(order).to_json()
