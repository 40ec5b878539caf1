"""
Database Schemas for the Electronics Store

Each Pydantic model represents a document in a MongoDB collection.
Collection name is the lowercase class name (Product -> "product").
CartItem and OrderItem describe the entries of the cart and order "items" arrays.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import BaseModel, Field

OBJECT_ID_PATTERN = r"^[0-9a-fA-F]{24}$"

# 24 hex characters, the shape of a MongoDB ObjectId
ObjectIdStr = Annotated[str, Field(pattern=OBJECT_ID_PATTERN)]


class Address(BaseModel):
    name: str = Field(..., min_length=3, max_length=100)
    phone: str = Field(..., min_length=3, max_length=100)
    street: str = Field(..., min_length=3, max_length=100)
    city: str = Field(..., min_length=3, max_length=100)
    state: str = Field(..., min_length=3, max_length=100)
    postal_code: str = Field(..., min_length=3, max_length=100)
    country: str = Field(..., min_length=3, max_length=100)


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: str = Field(..., description="Email address, stored lowercase")
    password: str = Field(..., description="argon2 hash of the password")
    is_seller: bool = Field(False, description="Sellers manage products and order statuses")
    address: Optional[Address] = None


class ProductStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    OUT_OF_STOCK = "out_of_stock"


class Category(str, Enum):
    LAPTOP = "Laptop"
    MOBILE = "Mobile"
    TABLET = "Tablet"
    ACCESSORY = "Accessory"


class Brand(str, Enum):
    APPLE = "Apple"
    SAMSUNG = "Samsung"
    DELL = "Dell"
    HP = "HP"
    GOOGLE = "Google"
    ONEPLUS = "OnePlus"
    SONY = "Sony"
    LENOVO = "Lenovo"
    MICROSOFT = "Microsoft"
    HUAWEI = "Huawei"
    XIAOMI = "Xiaomi"
    AMAZON = "Amazon"
    VIVO = "Vivo"


class Product(BaseModel):
    name: str = Field(..., min_length=3, max_length=100, description="Product name")
    price: float = Field(..., ge=1, le=1_000_000, description="Unit price")
    description: str = Field(..., min_length=10, max_length=500)
    brand: Brand
    category: Category
    status: ProductStatus = ProductStatus.ACTIVE
    stock: int = Field(0, ge=0, description="Single counter, not reserved by orders")
    images: List[str] = Field(default_factory=list, description="Image URLs")
    created_by: Optional[str] = Field(None, description="Seller that listed the product")
    is_deleted: bool = Field(False, description="Soft delete flag")


class CartItem(BaseModel):
    id: Optional[str] = Field(None, description="Line id, used by update and remove")
    product: str
    quantity: int = Field(..., ge=1)


class Cart(BaseModel):
    user: str = Field(..., description="Owner; one cart per user")
    items: List[CartItem] = Field(default_factory=list)


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class OrderItem(BaseModel):
    product: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., description="Unit price copied when the order was placed")
    seller_id: Optional[str] = None


class Order(BaseModel):
    user: str
    items: List[OrderItem]
    address: Optional[Address] = None
    total_price: float = Field(..., description="Sum of quantity x price over items, fixed at placement")
    status: OrderStatus = OrderStatus.PENDING
    created_at: Optional[datetime] = None


# These schemas are used for validation/documentation by the database viewer and backend.
