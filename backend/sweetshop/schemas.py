from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json")


class UserResponse(ORMModel):
    id: int
    name: str
    email: str
    role: str
    created_at: datetime


class OwnerSummary(ORMModel):
    id: int
    name: str
    email: str


class CategoryResponse(ORMModel):
    id: int
    name: str
    created_at: datetime
    updated_at: datetime


class CategorySummary(ORMModel):
    id: int
    name: str


class ProductResponse(ORMModel):
    id: int
    name: str
    price: int
    description: Optional[str] = None
    stock_quantity: int
    categoryId: int = Field(validation_alias="category_id")
    category: CategorySummary
    image_urls: List[str]
    created_at: datetime

    @computed_field
    @property
    def isInStock(self) -> bool:
        return self.stock_quantity > 0


class ProductSummary(ORMModel):
    id: int
    name: str
    image_urls: List[str]


class OrderItemResponse(ORMModel):
    id: int
    product_id: int
    quantity: int
    price: int
    product: ProductSummary


class OrderSummary(ORMModel):
    id: int
    customer_name: str
    phone_number: str
    token_number: int
    order_type: str
    status: str
    total_amount: int
    created_at: datetime
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    pincode: Optional[str] = None
    landmark: Optional[str] = None


class OrderResponse(OrderSummary):
    userId: int = Field(validation_alias="user_id")
    order_items: List[OrderItemResponse] = Field(validation_alias="items")


class AdminOrderResponse(OrderResponse):
    user: OwnerSummary
