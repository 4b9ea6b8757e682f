from pydantic import BaseModel, Field, field_validator
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from ordertrack.domain.workflow import LedgerEventType, OrderStatus, Role
from .projection import ORDER_FIELDS

OrderField = Literal[ORDER_FIELDS]

DATE_FIELDS = ("received_date", "promised_date", "internal_due_date")


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class OrderCreate(BaseModel):
    customer_id: str = Field(min_length=1)
    product_type_id: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=300)
    description: str = ""
    quantity: Optional[int] = Field(default=None, ge=1)
    process_stage: str = ""
    received_date: Optional[datetime] = None  # defaults to creation time
    promised_date: datetime
    internal_due_date: Optional[datetime] = None
    notes: str = ""
    is_test: bool = False

    class Config:
        extra = "forbid"
        str_strip_whitespace = True

    @field_validator(*DATE_FIELDS)
    @classmethod
    def normalize_dates(cls, value):
        return _naive_utc(value)


class OrderUpdate(BaseModel):
    """Partial update; only fields explicitly sent are applied."""
    customer_id: Optional[str] = Field(default=None, min_length=1)
    product_type_id: Optional[str] = Field(default=None, min_length=1)
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    description: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=1)
    process_stage: Optional[str] = None
    received_date: Optional[datetime] = None
    promised_date: Optional[datetime] = None
    internal_due_date: Optional[datetime] = None
    notes: Optional[str] = None

    class Config:
        extra = "forbid"
        str_strip_whitespace = True

    @field_validator(*DATE_FIELDS)
    @classmethod
    def normalize_dates(cls, value):
        return _naive_utc(value)


class StatusChange(BaseModel):
    status: OrderStatus


class VendorAssignment(BaseModel):
    vendor_id: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class OrderFilters(BaseModel):
    status: Optional[List[OrderStatus]] = None
    vendor_id: Optional[str] = None
    product_type_id: Optional[str] = None
    customer_id: Optional[str] = None
    delayed_only: bool = False
    promised_from: Optional[datetime] = None
    promised_to: Optional[datetime] = None

    @field_validator("promised_from", "promised_to")
    @classmethod
    def normalize_dates(cls, value):
        return _naive_utc(value)


class OrderRead(BaseModel):
    id: str
    order_number: str
    customer_id: str
    customer_name: Optional[str] = None
    product_type_id: str
    title: str
    description: str
    quantity: Optional[int] = None
    status: OrderStatus
    process_stage: str
    current_vendor_id: Optional[str] = None
    received_date: datetime
    promised_date: datetime
    internal_due_date: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    notes: str
    is_deleted: bool
    is_test: bool
    created_at: datetime
    updated_at: datetime
    # Computed at read time, never stored
    is_delayed: bool = False
    days_delayed: int = 0


class OrderPage(BaseModel):
    items: List[OrderRead]
    next_cursor: Optional[str] = None
    page_size: int
    as_of: datetime


class FieldChange(BaseModel):
    from_: Any = Field(default=None, alias="from")
    to: Any = None

    class Config:
        populate_by_name = True


class LedgerPayload(BaseModel):
    changes: Dict[OrderField, FieldChange] = {}
    reason: Optional[str] = None


class LedgerEntryRead(BaseModel):
    id: str
    order_id: str
    actor_user_id: str
    event_type: LedgerEventType
    occurred_at: datetime
    version: int
    summary: str
    payload: LedgerPayload
    is_test: bool = False

    class Config:
        from_attributes = True


class ProjectionCheck(BaseModel):
    order_id: str
    consistent: bool
    drift: Dict[str, Dict[str, Any]] = {}


# ---- master data ----

class CustomerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    phone: str = ""
    notes: str = ""
    is_test: bool = False

    class Config:
        str_strip_whitespace = True


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    phone: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        str_strip_whitespace = True


class CustomerRead(BaseModel):
    id: str
    name: str
    phone: str
    notes: str
    is_deleted: bool
    is_test: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class VendorCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    service_type: str = ""
    phone: str = ""
    notes: str = ""
    is_test: bool = False

    class Config:
        str_strip_whitespace = True


class VendorUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    service_type: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        str_strip_whitespace = True


class VendorRead(BaseModel):
    id: str
    name: str
    service_type: str
    phone: str
    notes: str
    active: bool
    is_deleted: bool
    is_test: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProductTypeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    properties: Dict[str, Any] = {}
    is_test: bool = False

    class Config:
        str_strip_whitespace = True


class ProductTypeUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    properties: Optional[Dict[str, Any]] = None

    class Config:
        str_strip_whitespace = True


class ProductTypeRead(BaseModel):
    id: str
    name: str
    properties: Dict[str, Any]
    active: bool
    is_deleted: bool
    is_test: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    phone: str = Field(min_length=4, max_length=50)
    password: str = Field(min_length=8, max_length=72)
    role: Role = Role.EMPLOYEE
    is_test: bool = False


class UserRoleChange(BaseModel):
    role: Role


class UserRead(BaseModel):
    id: str
    name: str
    phone: str
    role: Role
    active: bool
    is_deleted: bool
    token_revoked_before: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TokenRequest(BaseModel):
    phone: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead
