from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from sweetshop.database import Base

ROLE_ADMIN = "ADMIN"
ROLE_CUSTOMER = "CUSTOMER"
ROLES = (ROLE_ADMIN, ROLE_CUSTOMER)

ORDER_TYPES = ("DINE_IN", "DELIVERY")
ORDER_STATUSES = ("PENDING", "READY", "COMPLETED")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=ROLE_CUSTOMER)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    orders = relationship("Order", back_populates="user")


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    products = relationship("Product", back_populates="category")


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    price = Column(Integer, nullable=False)  # minor currency units
    description = Column(Text, nullable=True)
    stock_quantity = Column(Integer, nullable=False, default=0)
    category_id = Column("categoryId", Integer, ForeignKey("categories.id"), nullable=False, index=True)
    image_urls = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    category = relationship("Category", back_populates="products")
    order_items = relationship("OrderItem", back_populates="product")

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
    )


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column("userId", Integer, ForeignKey("users.id"), nullable=False, index=True)
    customer_name = Column(String(255), nullable=False)
    phone_number = Column(String(20), nullable=False)
    token_number = Column(Integer, nullable=False)
    order_date = Column(Date, nullable=False, index=True)
    order_type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")
    total_amount = Column(BigInteger, nullable=False)  # sum of INT4 line totals can exceed INT4
    address_line1 = Column(String(255), nullable=True)
    address_line2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    pincode = Column(String(10), nullable=True)
    landmark = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan",
                         order_by="OrderItem.id")

    __table_args__ = (
        UniqueConstraint("order_date", "token_number", name="uq_orders_day_token"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False)  # unit price when the order was placed

    order = relationship("Order", back_populates="items")
    product = relationship("Product", back_populates="order_items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )


class DailyTokenCounter(Base):
    __tablename__ = "daily_token_counters"

    day = Column(Date, primary_key=True)
    last_token = Column(Integer, nullable=False, default=0)


# Names are unique regardless of case
Index("uq_categories_name_lower", func.lower(Category.name), unique=True)
Index("uq_products_name_lower", func.lower(Product.name), unique=True)
