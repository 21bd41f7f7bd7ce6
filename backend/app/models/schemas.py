"""
Pydantic 模式定义
用于操作载荷校验与结果输出
"""
import re
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List, Dict, Union, Any
from pydantic import BaseModel, Field, field_validator, ConfigDict, ValidationError
from core.result import validation_failure
from app.models.ontology import (
    RoomStatus, ReservationStatus, PaymentStatus, PaymentMethod, ChargeCategory
)

DATE_KEY_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

Moment = Union[datetime, date]


def parse_moment(v: Any) -> Any:
    """
    解析预订时间
    "YYYY-MM-DD" 解析为 date（之后按报表时区中午落库），其他 ISO 字符串解析为 datetime
    """
    if isinstance(v, (datetime, date)):
        return v
    if isinstance(v, str):
        v = v.strip()
        if re.match(DATE_KEY_PATTERN, v):
            return date.fromisoformat(v)
        try:
            return datetime.fromisoformat(v.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError("Invalid date")
    raise ValueError("Invalid date")


def _lower(v: Any) -> Any:
    """状态字符串统一小写，消除大小写变体"""
    return v.strip().lower() if isinstance(v, str) else v


# ============== 房型 Schemas ==============

class RoomTypeCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=50)
    base_price: Decimal = Field(..., ge=0)
    capacity: int = Field(default=2, ge=1)


class RoomTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    base_price: Optional[Decimal] = Field(None, ge=0)
    capacity: Optional[int] = Field(None, ge=1)


# ============== 房间 Schemas ==============

class RoomCreate(BaseModel):
    room_number: str = Field(..., min_length=1, max_length=10)
    floor: int = 1
    room_type_id: int = Field(..., gt=0)
    description: Optional[str] = None
    status: RoomStatus = RoomStatus.AVAILABLE

    @field_validator('status', mode='before')
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        return _lower(v)


class RoomUpdate(BaseModel):
    room_number: Optional[str] = Field(None, min_length=1, max_length=10)
    floor: Optional[int] = None
    room_type_id: Optional[int] = Field(None, gt=0)
    description: Optional[str] = None


class RoomStatusUpdate(BaseModel):
    status: RoomStatus

    @field_validator('status', mode='before')
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        return _lower(v)


# ============== 客人 Schemas ==============

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _clean_contact(v: Any) -> Any:
    """去掉首尾空白，空串视为未填写"""
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


class GuestCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=100, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(None, max_length=20)
    document_number: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=255)

    @field_validator('name', mode='before')
    @classmethod
    def strip_name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator('email', 'phone', 'document_number', 'address', mode='before')
    @classmethod
    def clean_contact(cls, v: Any) -> Any:
        return _clean_contact(v)


class GuestUpdate(BaseModel):
    """部分更新；显式传 None 的联系方式表示清空，name 不可清空"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=100, pattern=EMAIL_PATTERN)
    phone: Optional[str] = Field(None, max_length=20)
    document_number: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=255)

    @field_validator('name', mode='before')
    @classmethod
    def strip_name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator('email', 'phone', 'document_number', 'address', mode='before')
    @classmethod
    def clean_contact(cls, v: Any) -> Any:
        return _clean_contact(v)


# ============== 预订 Schemas ==============

class ReservationCreate(BaseModel):
    room_id: int = Field(..., gt=0)
    guest_id: Optional[int] = Field(None, gt=0)
    user_id: Optional[int] = Field(None, gt=0)
    check_in: Moment
    check_out: Moment

    @field_validator('check_in', 'check_out', mode='before')
    @classmethod
    def parse_dates(cls, v: Any) -> Any:
        return parse_moment(v)


class ReservationUpdate(BaseModel):
    """部分更新；显式传 None 的 guest_id/user_id 表示解除关联"""
    room_id: Optional[int] = Field(None, gt=0)
    guest_id: Optional[int] = Field(None, gt=0)
    user_id: Optional[int] = Field(None, gt=0)
    check_in: Optional[Moment] = None
    check_out: Optional[Moment] = None

    @field_validator('check_in', 'check_out', mode='before')
    @classmethod
    def parse_dates(cls, v: Any) -> Any:
        return None if v is None else parse_moment(v)


class ReservationMove(BaseModel):
    room_id: int = Field(..., gt=0)


class ReservationStatusUpdate(BaseModel):
    status: ReservationStatus

    @field_validator('status', mode='before')
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        return _lower(v)


class AvailabilityQuery(BaseModel):
    room_id: int = Field(..., gt=0)
    check_in: Moment
    check_out: Moment
    exclude_reservation_id: Optional[int] = Field(None, gt=0)

    @field_validator('check_in', 'check_out', mode='before')
    @classmethod
    def parse_dates(cls, v: Any) -> Any:
        return parse_moment(v)


class ReservationResponse(BaseModel):
    id: int
    hotel_id: int
    room_id: int
    guest_id: Optional[int] = None
    user_id: Optional[int] = None
    check_in: datetime
    check_out: datetime
    total_price: Decimal
    status: ReservationStatus
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class BalanceSummary(BaseModel):
    """账务汇总：grand_total = room_total + charges_total"""
    reservation_id: int
    room_total: Decimal
    charges_total: Decimal
    grand_total: Decimal
    paid_completed: Decimal
    due_amount: Decimal


class ReservationDetail(ReservationResponse):
    balance: BalanceSummary


# ============== 支付 Schemas ==============

class PaymentCreate(BaseModel):
    reservation_id: int = Field(..., gt=0)
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod
    status: PaymentStatus

    @field_validator('method', 'status', mode='before')
    @classmethod
    def normalize_enums(cls, v: Any) -> Any:
        return _lower(v)


class PaymentUpdate(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0)
    method: Optional[PaymentMethod] = None
    status: Optional[PaymentStatus] = None

    @field_validator('method', 'status', mode='before')
    @classmethod
    def normalize_enums(cls, v: Any) -> Any:
        return _lower(v)


class PaymentResponse(BaseModel):
    id: int
    reservation_id: int
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus
    created_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# ============== 消费 Schemas ==============

class ChargeCreate(BaseModel):
    """客户端提交的 total 会被忽略"""
    reservation_id: int = Field(..., gt=0)
    category: ChargeCategory = ChargeCategory.OTHER
    description: str = Field(..., min_length=1)
    quantity: int = Field(default=1, ge=1)
    unit_price: Decimal = Field(..., ge=0)
    total: Optional[Decimal] = None

    @field_validator('category', mode='before')
    @classmethod
    def normalize_enums(cls, v: Any) -> Any:
        return _lower(v)


class ChargeUpdate(BaseModel):
    category: Optional[ChargeCategory] = None
    description: Optional[str] = Field(None, min_length=1)
    quantity: Optional[int] = Field(None, ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    total: Optional[Decimal] = None

    @field_validator('category', mode='before')
    @classmethod
    def normalize_enums(cls, v: Any) -> Any:
        return _lower(v)


class ChargeResponse(BaseModel):
    id: int
    hotel_id: int
    reservation_id: int
    room_id: int
    category: ChargeCategory
    description: str
    quantity: int
    unit_price: Decimal
    total: Decimal
    model_config = ConfigDict(from_attributes=True)


# ============== 日结 Schemas ==============

class DailyCloseCreate(BaseModel):
    date_key: Optional[str] = Field(None, pattern=DATE_KEY_PATTERN)
    notes: Optional[str] = None

    @field_validator('date_key', mode='before')
    @classmethod
    def date_to_key(cls, v: Any) -> Any:
        if isinstance(v, date) and not isinstance(v, datetime):
            return v.isoformat()
        return v


class DailyClosePaymentLine(BaseModel):
    id: int
    reservation_id: int
    amount: Decimal
    method: PaymentMethod
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class DailyCloseSummary(BaseModel):
    """日结预览（不落库）"""
    date_key: str
    window_start: datetime
    window_end: datetime
    total_completed: Decimal
    count_completed: int
    by_method: Dict[str, Decimal]
    payments: List[DailyClosePaymentLine] = []


def parse_payload(schema_cls, payload: Any):
    """
    载荷统一入口：接受 schema 实例或 dict
    pydantic 校验错误转换为字段级 ValidationError 结果
    """
    if isinstance(payload, schema_cls):
        return payload
    try:
        return schema_cls.model_validate(payload or {})
    except ValidationError as e:
        errors = [
            {
                "field": ".".join(str(part) for part in err["loc"]) or "__root__",
                "message": err["msg"],
            }
            for err in e.errors()
        ]
        raise validation_failure(errors)
