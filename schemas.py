"""
Database Schemas

Pydantic models for the MongoDB collections and the JSON API.
Documents are stored with snake_case keys; the API speaks camelCase
(`discountPrice`, `orderId`, `totalAmount`, ...) through the alias generator.
- Book  -> "book" collection
- Order -> "order" collection
- Admin -> "admin" collection
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Optional, List

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, EmailStr, conlist, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True,
                              validate_default=True)


def normalize_email(value: str) -> str:
    return value.strip().lower()


# Admin emails are matched case-insensitively, so they are stored lower-cased
AdminEmail = Annotated[EmailStr, AfterValidator(normalize_email)]


class Role(str, Enum):
    admin = "admin"
    super_admin = "super_admin"


class OrderStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


class PaymentStatus(str, Enum):
    pending = "pending"
    paid = "paid"
    failed = "failed"


# ------------------------- Books ------------------------------
class Book(CamelModel):
    title: str = Field(..., min_length=1, description="Book title")
    author: str = Field(..., min_length=1, description="Author name")
    price: float = Field(..., ge=0, description="Regular price in BDT")
    discount_price: Optional[float] = Field(None, ge=0, description="Sale price, used instead of price when set")
    stock: int = Field(0, ge=0, description="Stock count")
    category: str = Field("book", description="Category")
    description: Optional[str] = Field(None, description="Description")
    features: List[str] = Field(default_factory=list, description="Feature bullet points, in display order")
    images: List[str] = Field(default_factory=list, description="Image URLs, in display order")
    is_available: bool = Field(True, description="Whether the book can be ordered")


DISCOUNT_ERROR = "discountPrice must be lower than price"


def discount_is_valid(price: float, discount_price: Optional[float]) -> bool:
    # Zero or missing means no discount
    return not discount_price or discount_price < price


class BookCreate(Book):
    @model_validator(mode="after")
    def check_discount(self):
        if not discount_is_valid(self.price, self.discount_price):
            raise ValueError(DISCOUNT_ERROR)
        return self


class BookUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1)
    author: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    discount_price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    category: Optional[str] = None
    description: Optional[str] = None
    features: Optional[List[str]] = None
    images: Optional[List[str]] = None
    is_available: Optional[bool] = None


class BookOut(Book):
    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ------------------------- Orders -----------------------------
class Customer(CamelModel):
    name: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: Optional[str] = None


class OrderLineIn(CamelModel):
    book_id: str = Field(..., description="Referenced Book _id as string")
    quantity: int = Field(..., ge=1, description="Quantity ordered")


class OrderLine(CamelModel):
    book_id: str = Field(..., description="Referenced Book _id as string")
    title: str = Field(..., description="Snapshot of book title")
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price at time of order")


class OrderCreate(CamelModel):
    customer: Customer
    books: conlist(OrderLineIn, min_length=1)
    payment_method: str = Field("cod", min_length=1)
    notes: Optional[str] = None


class Order(CamelModel):
    order_id: str = Field(..., description="Human readable order id")
    customer: Customer
    books: conlist(OrderLine, min_length=1)
    total_amount: float = Field(..., ge=0, description="Computed server-side at placement")
    order_status: OrderStatus = OrderStatus.pending
    payment_method: str = "cod"
    payment_status: PaymentStatus = PaymentStatus.pending
    notes: Optional[str] = None


class OrderOut(Order):
    id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderPlaced(CamelModel):
    message: str
    order: OrderOut


class OrderStatusUpdate(CamelModel):
    order_status: OrderStatus


class PaymentStatusUpdate(CamelModel):
    payment_status: PaymentStatus


# ------------------------- Admins -----------------------------
class Admin(CamelModel):
    username: str = Field(..., min_length=1)
    email: AdminEmail
    password: str = Field(..., description="pbkdf2_sha256 hash of the password")
    role: Role = Role.admin
    is_active: bool = True
    last_login: Optional[datetime] = None


class AdminOut(CamelModel):
    id: str
    username: str
    email: str
    role: Role
    is_active: bool = True
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AdminCreate(CamelModel):
    username: str = Field(..., min_length=1)
    email: AdminEmail
    password: str = Field(..., min_length=6)
    role: Role = Role.admin


class AdminUpdate(CamelModel):
    username: Optional[str] = Field(None, min_length=1)
    email: Optional[AdminEmail] = None
    role: Optional[Role] = None
    is_active: Optional[bool] = None


class ProfileUpdate(CamelModel):
    username: Optional[str] = Field(None, min_length=1)
    email: Optional[AdminEmail] = None


class PasswordChange(CamelModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class AdminSaved(CamelModel):
    message: str
    admin: AdminOut


# ------------------------- Auth -------------------------------
class LoginRequest(CamelModel):
    email: Annotated[str, AfterValidator(normalize_email)]
    password: str


class TokenAdmin(CamelModel):
    id: str
    email: str
    username: str
    role: Role


class LoginResponse(CamelModel):
    message: str
    token: str
    admin: TokenAdmin


class TokenClaims(CamelModel):
    id: str
    email: str
    role: Role
    exp: int


class VerifyResponse(CamelModel):
    valid: bool
    admin: TokenClaims


# ------------------------- Dashboard --------------------------
class DashboardStats(CamelModel):
    total_orders: int
    total_revenue: float
    todays_orders: int
    todays_revenue: float
    monthly_orders: int
    monthly_revenue: float
    total_books: int
    total_books_sold: int
    low_stock_books: int
    pending_orders: int


class SalesBucket(CamelModel):
    year: int
    month: Optional[int] = None
    week: Optional[int] = None
    day: Optional[int] = None
    total_amount: float
    count: int


class StatusCount(CamelModel):
    status: OrderStatus
    count: int
    total_amount: float


class Message(CamelModel):
    message: str
