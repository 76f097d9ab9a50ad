"""
HTTP routes, mounted under /v1 by ``main``.

/auth   registration, login, token check
/user   public catalog plus the caller's own orders
/admin  catalog management and order handling, admin tokens only
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, Query, status
from sqlalchemy.orm import Session

from sweetshop import categories, config, orders, products, users
from sweetshop.auth import TokenClaims
from sweetshop.database import get_db
from sweetshop.dependencies import authenticate, get_current_claims, require_admin
from sweetshop.errors import AuthenticationError
from sweetshop.redis_client import RedisClient, get_cache, rate_limit
from sweetshop.responses import create_response

auth_router = APIRouter(prefix="/auth", tags=["auth"])
user_router = APIRouter(prefix="/user", tags=["user"])
admin_router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

login_rate_limit = rate_limit(
    max_requests=config.LOGIN_RATE_LIMIT,
    window=config.LOGIN_RATE_WINDOW,
    key_prefix="rate_limit:login",
    message=f"Too many login attempts. Try again in {config.LOGIN_RATE_WINDOW} seconds.",
)


# ========== auth ==========

@auth_router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: dict = Body(...), db: Session = Depends(get_db)):
    return create_response(True, "User registered successfully.", users.register_user(db, payload))


@auth_router.post("/login", dependencies=[Depends(login_rate_limit)])
def login(payload: dict = Body(...), db: Session = Depends(get_db)):
    return create_response(True, "Login successful.", users.login_user(db, payload))


@auth_router.get("/verify")
def verify(authorization: Optional[str] = Header(None), db: Session = Depends(get_db)):
    try:
        claims = authenticate(authorization)
    except AuthenticationError as exc:
        exc.data = {"valid": False, "user": None}
        raise
    return create_response(True, "Token is valid.", users.get_verified_user(db, claims))


# ========== public catalog ==========

@user_router.get("/listCategories")
def list_categories(db: Session = Depends(get_db), cache: RedisClient = Depends(get_cache)):
    return create_response(True, "Categories retrieved successfully.", categories.list_categories(db, cache))


@user_router.get("/categories/{category_id}")
def get_category(category_id: str, db: Session = Depends(get_db)):
    return create_response(True, "Category retrieved successfully.", categories.get_category(db, category_id))


@user_router.get("/products")
def list_products(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    category_id: Optional[str] = Query(None, alias="categoryId"),
    search: Optional[str] = None,
    min_price: Optional[str] = Query(None, alias="minPrice"),
    max_price: Optional[str] = Query(None, alias="maxPrice"),
    in_stock: Optional[str] = Query(None, alias="inStock"),
    db: Session = Depends(get_db),
):
    data = products.list_products(
        db,
        page=page,
        limit=limit,
        category_id=category_id,
        search=search,
        min_price=min_price,
        max_price=max_price,
        in_stock=in_stock,
    )
    return create_response(True, "Products retrieved successfully.", data)


@user_router.get("/products/{product_id}")
def get_product(product_id: str, db: Session = Depends(get_db), cache: RedisClient = Depends(get_cache)):
    return create_response(
        True, "Product details retrieved successfully.", products.get_product(db, product_id, cache)
    )


# ========== customer orders ==========

@user_router.post("/orders", status_code=status.HTTP_201_CREATED)
def create_order(
    payload: dict = Body(...),
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
    cache: RedisClient = Depends(get_cache),
):
    return create_response(True, "Order created successfully.", orders.create_order(db, claims, payload, cache))


@user_router.get("/orders")
def list_my_orders(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    order_status: Optional[str] = Query(None, alias="status"),
    order_type: Optional[str] = None,
    claims: TokenClaims = Depends(get_current_claims),
    db: Session = Depends(get_db),
):
    data = orders.list_user_orders(db, claims, page=page, limit=limit, status=order_status, order_type=order_type)
    return create_response(True, "Orders retrieved successfully.", data)


@user_router.get("/orders/{order_id}")
def get_my_order(order_id: str, claims: TokenClaims = Depends(get_current_claims), db: Session = Depends(get_db)):
    return create_response(True, "Order details retrieved successfully.", orders.get_order(db, order_id, claims))


# ========== admin: categories ==========

@admin_router.post("/categories", status_code=status.HTTP_201_CREATED)
def create_category(payload: dict = Body(...), db: Session = Depends(get_db),
                    cache: RedisClient = Depends(get_cache)):
    return create_response(True, "Category created successfully.", categories.create_category(db, payload, cache))


@admin_router.put("/categories/{category_id}")
def update_category(category_id: str, payload: dict = Body(...), db: Session = Depends(get_db),
                    cache: RedisClient = Depends(get_cache)):
    data = categories.update_category(db, category_id, payload, cache)
    return create_response(True, "Category updated successfully.", data)


@admin_router.delete("/categories/{category_id}")
def delete_category(category_id: str, db: Session = Depends(get_db), cache: RedisClient = Depends(get_cache)):
    return create_response(True, "Category deleted successfully.", categories.delete_category(db, category_id, cache))


# ========== admin: products ==========

@admin_router.post("/products", status_code=status.HTTP_201_CREATED)
def create_product(payload: dict = Body(...), db: Session = Depends(get_db)):
    return create_response(True, "Product added successfully.", products.create_product(db, payload))


@admin_router.put("/products/{product_id}")
def update_product(product_id: str, payload: dict = Body(...), db: Session = Depends(get_db),
                   cache: RedisClient = Depends(get_cache)):
    data = products.update_product(db, product_id, payload, cache)
    return create_response(True, "Product updated successfully.", data)


@admin_router.delete("/products/{product_id}")
def delete_product(product_id: str, db: Session = Depends(get_db), cache: RedisClient = Depends(get_cache)):
    return create_response(True, "Product deleted successfully.", products.delete_product(db, product_id, cache))


# ========== admin: orders ==========

@admin_router.get("/orders")
def list_all_orders(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    order_status: Optional[str] = Query(None, alias="status"),
    order_type: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
):
    data = orders.list_all_orders(
        db, page=page, limit=limit, status=order_status, order_type=order_type, search=search
    )
    return create_response(True, "Orders retrieved successfully.", data)


@admin_router.get("/orders/{order_id}")
def get_any_order(order_id: str, claims: TokenClaims = Depends(require_admin), db: Session = Depends(get_db)):
    return create_response(True, "Order details retrieved successfully.", orders.get_order(db, order_id, claims))


@admin_router.put("/orders/{order_id}/status")
def update_order_status(order_id: str, payload: dict = Body(...), db: Session = Depends(get_db)):
    data = orders.update_order_status(db, order_id, payload)
    return create_response(True, "Order status updated successfully.", data)
