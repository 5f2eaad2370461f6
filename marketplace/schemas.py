from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, PositiveInt, field_validator
from pydantic.config import ConfigDict

from .models import OrderStatus, PaymentMethod, WithdrawalStatus

RESOURCES = ["orders", "products", "users", "sellers", "payments", "reports", "settings", "dashboard"]
ACTIONS = ["view", "create", "edit", "delete", "manage"]
VIEW_TYPES = ["orders", "products", "users", "sellers"]


# -------------------- Users / auth --------------------

def clean_email(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip().lower()
    if "@" not in v or v.startswith("@") or v.endswith("@"):
        raise ValueError("invalid email")
    return v


class UserRegister(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=6)

    @field_validator("email")
    def normalize_email(cls, v: str):
        return clean_email(v)


class UserCreate(UserRegister):
    role: Optional[str] = Field(default="user")


class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("email")
    def normalize_email(cls, v: Optional[str]):
        return clean_email(v)


class LoginRequest(BaseModel):
    email: str
    password: str


class UserRead(BaseModel):
    id: int
    name: str
    email: str
    role: str = "user"
    is_active: bool = True
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead


# -------------------- Roles --------------------

class Permission(BaseModel):
    resource: str
    actions: list[str] = Field(..., min_length=1)

    @field_validator("resource")
    def known_resource(cls, v: str):
        if v not in RESOURCES:
            raise ValueError(f"unknown resource '{v}'")
        return v

    @field_validator("actions")
    def known_actions(cls, v: list[str]):
        unknown = [a for a in v if a not in ACTIONS]
        if unknown:
            raise ValueError(f"unknown actions: {', '.join(unknown)}")
        return sorted(set(v))


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: str = Field(default="", max_length=200)
    permissions: list[Permission] = []


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    permissions: Optional[list[Permission]] = None


class RoleRead(BaseModel):
    id: int
    name: str
    description: str
    permissions: list[Permission]
    is_default: bool
    is_system: bool
    created_by: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class RoleAssign(BaseModel):
    role_id: PositiveInt


# -------------------- Stores / products --------------------

class StoreCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=1000)
    email: str
    phone: str = Field(..., min_length=3, max_length=40)

    @field_validator("email")
    def normalize_email(cls, v: str):
        return clean_email(v)


class StoreUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    email: Optional[str] = None
    phone: Optional[str] = Field(default=None, min_length=3, max_length=40)


class StoreRead(BaseModel):
    id: int
    owner_id: int
    name: str
    slug: str
    description: str
    email: str
    phone: str
    commission_rate: Optional[Decimal] = None
    is_verified: bool
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=2000)
    category: str = Field(default="general", max_length=60)
    price: Decimal = Field(..., ge=Decimal("0"))
    count_in_stock: int = Field(default=0, ge=0)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)
    category: Optional[str] = Field(default=None, max_length=60)
    price: Optional[Decimal] = Field(default=None, ge=Decimal("0"))
    count_in_stock: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None


class ProductRead(BaseModel):
    id: int
    seller_id: int
    name: str
    description: str
    category: str
    price: Decimal
    count_in_stock: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# -------------------- Orders --------------------

class OrderItemIn(BaseModel):
    product: PositiveInt
    quantity: int = Field(..., ge=1)


class ShippingAddress(BaseModel):
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class OrderCreate(BaseModel):
    order_items: list[OrderItemIn] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    notes: Optional[str] = Field(default=None, max_length=500)


class StatusUpdate(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=500)


class DeliverRequest(BaseModel):
    tracking_number: Optional[str] = Field(default=None, max_length=100)


class Payer(BaseModel):
    email_address: Optional[str] = None


class PaymentResultIn(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    status: str = Field(..., min_length=1)
    update_time: Optional[str] = None
    payer: Optional[Payer] = None


class OrderItemRead(BaseModel):
    product_id: int
    seller_id: int
    name: str
    quantity: int
    price: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderRead(BaseModel):
    id: int
    order_number: str
    user_id: int
    items: list[OrderItemRead]
    shipping_address: dict[str, Any]
    payment_method: str
    payment_result: Optional[dict[str, Any]] = None
    items_price: Decimal
    tax_price: Decimal
    shipping_price: Decimal
    total_price: Decimal
    is_paid: bool
    paid_at: Optional[datetime] = None
    is_delivered: bool
    delivered_at: Optional[datetime] = None
    status: str
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderEventRead(BaseModel):
    from_status: Optional[str] = None
    to_status: str
    actor_id: Optional[int] = None
    note: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class OrderPage(BaseModel):
    data: list[OrderRead]
    pagination: Pagination


# -------------------- Payments --------------------

class PaymentIntentCreate(BaseModel):
    order_id: PositiveInt
    # cents; optional, checked against the order total when given
    amount: Optional[int] = Field(default=None, ge=0)


class PaymentIntentRead(BaseModel):
    id: str
    order_id: int
    amount_cents: int
    currency: str
    status: str
    client_secret: str

    model_config = ConfigDict(from_attributes=True)


# -------------------- Seller settlement --------------------

class Earnings(BaseModel):
    total_revenue: Decimal
    platform_commission: Decimal
    platform_fee: Decimal
    net_earnings: Decimal
    total_orders: int
    total_items: int
    available_balance: Decimal


class TopProduct(BaseModel):
    product_id: int
    name: str
    units_sold: int
    revenue: Decimal


class SellerDashboard(BaseModel):
    store: StoreRead
    earnings: Earnings
    recent_orders: list[OrderRead]
    top_products: list[TopProduct]
    total_products: int


class PaymentMetrics(BaseModel):
    total_payments_made: int
    pending_payments: int
    failed_payments: int
    refunded_payments: int


class RevenuePoint(BaseModel):
    date: str
    revenue: Decimal
    orders: int


class TopSeller(BaseModel):
    seller_id: int
    store_name: Optional[str] = None
    store_slug: Optional[str] = None
    total_orders: int
    gross_sales: Decimal
    net_earnings: Decimal


class BankDetails(BaseModel):
    account_name: str = Field(..., min_length=1)
    account_number: str = Field(..., min_length=4)
    routing_number: str = Field(default="")
    bank_name: str = Field(..., min_length=1)


class WithdrawalCreate(BaseModel):
    amount: Decimal = Field(..., gt=Decimal("0"))
    bank_details: BankDetails


class WithdrawalStatusUpdate(BaseModel):
    status: WithdrawalStatus
    transaction_id: Optional[str] = None
    rejection_reason: Optional[str] = None


class WithdrawalRead(BaseModel):
    id: int
    seller_id: int
    amount: Decimal
    status: str
    transaction_id: Optional[str] = None
    rejection_reason: Optional[str] = None
    requested_at: datetime
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# -------------------- Admin customization --------------------

class SavedFilterCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: str
    filter_config: dict[str, Any]
    is_default: bool = False

    @field_validator("type")
    def known_type(cls, v: str):
        if v not in VIEW_TYPES:
            raise ValueError(f"type must be one of {VIEW_TYPES}")
        return v


class SavedFilterUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    filter_config: Optional[dict[str, Any]] = None


class SavedFilterRead(BaseModel):
    id: int
    admin_id: int
    name: str
    type: str
    filter_config: dict[str, Any]
    is_default: bool

    model_config = ConfigDict(from_attributes=True)


class ReportConfigIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    config: dict[str, Any]


class ReportConfigRead(BaseModel):
    id: int
    name: str
    config: dict[str, Any]

    model_config = ConfigDict(from_attributes=True)
