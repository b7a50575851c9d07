"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from kirana_gateway.config import settings
from kirana_gateway.domain.models import (
    DeliveryStatus,
    Frequency,
    InvoiceStatus,
    PaymentMethod,
    PaymentStatus,
    TransactionType,
)
from kirana_gateway.utils.date_utils import to_shop_local

TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"
MOBILE_PATTERN = r"^\+?[0-9][0-9 \-]{8,18}$"


def _shop_local(value: datetime) -> datetime:
    return to_shop_local(value, settings.timezone)


# Offset-aware input is converted to the naive shop-local clock used everywhere else
ShopLocalDatetime = Annotated[datetime, AfterValidator(_shop_local)]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Customers and orders


class CustomerCreate(BaseModel):
    """Request body for POST /v1/customers"""

    name: str = Field(..., min_length=2)
    mobile: Optional[str] = Field(None, pattern=MOBILE_PATTERN, description="WhatsApp number")
    address: Optional[str] = None


class CustomerSchema(ORMModel):
    id: str
    name: str
    mobile: Optional[str] = None
    address: Optional[str] = None
    total_orders: int
    total_spent_paise: int


class CustomerListResponse(BaseModel):
    customers: List[CustomerSchema]


class OrderCreate(BaseModel):
    """Request body for POST /v1/customers/{id}/orders"""

    total_paise: int = Field(..., ge=0)
    placed_at: Optional[ShopLocalDatetime] = Field(None, description="Defaults to now")


class OrderSchema(ORMModel):
    id: str
    customer_id: str
    total_paise: int
    placed_at: datetime


class OrderListResponse(BaseModel):
    orders: List[OrderSchema]


class OrderRecordResponse(BaseModel):
    order: OrderSchema
    customer: CustomerSchema
    credit_score: Optional[int] = Field(None, description="Refreshed score when the customer has a khata")


# Subscriptions and deliveries


class SubscriptionCreate(BaseModel):
    """Request body for POST /v1/subscriptions"""

    customer_id: str = Field(..., min_length=1)
    product_id: str = Field(..., min_length=1)
    quantity: float = Field(..., ge=0.1, description="Quantity per delivery")
    unit: str = Field(..., min_length=1)
    price_per_unit_paise: int = Field(..., ge=0)
    frequency: Frequency
    delivery_time: str = Field(..., pattern=TIME_PATTERN, description="HH:MM")
    delivery_days: Optional[str] = Field(None, description="Comma-separated weekdays for custom frequency")
    start_date: ShopLocalDatetime
    end_date: Optional[ShopLocalDatetime] = None
    auto_charge: bool = False
    notes: Optional[str] = None


class SubscriptionUpdate(BaseModel):
    """Request body for PATCH /v1/subscriptions/{id}"""

    quantity: Optional[float] = Field(None, ge=0.1)
    price_per_unit_paise: Optional[int] = Field(None, ge=0)
    frequency: Optional[Frequency] = None
    delivery_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    delivery_days: Optional[str] = None
    end_date: Optional[ShopLocalDatetime] = None
    auto_charge: Optional[bool] = None
    notes: Optional[str] = None


class PauseRequest(BaseModel):
    reason: Optional[str] = None


class DeliverySchema(ORMModel):
    """Single delivery in a schedule"""

    id: str
    subscription_id: str
    delivery_date: datetime
    scheduled_time: str
    status: DeliveryStatus
    quantity: float
    actual_quantity: Optional[float] = None
    actual_price_paise: Optional[int] = None
    delivered_by: Optional[str] = None
    delivered_at: Optional[datetime] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None


class SubscriptionSchema(ORMModel):
    id: str
    customer_id: str
    product_id: str
    quantity: float
    unit: str
    price_per_unit_paise: int
    frequency: Frequency
    delivery_time: str
    delivery_days: Optional[str] = None
    is_active: bool
    paused: bool
    pause_reason: Optional[str] = None
    start_date: datetime
    end_date: Optional[datetime] = None
    next_delivery: Optional[datetime] = None
    auto_charge: bool
    last_charged: Optional[datetime] = None
    notes: Optional[str] = None


class SubscriptionDetail(SubscriptionSchema):
    deliveries: List[DeliverySchema] = []


class SubscriptionListResponse(BaseModel):
    subscriptions: List[SubscriptionDetail]


class SubscriptionActionResponse(BaseModel):
    """Response for pause / resume / cancel"""

    message: str
    subscription: SubscriptionSchema
    deliveries_removed: int = 0
    scheduled_delivery: Optional[DeliverySchema] = None


class DeliveryCreate(BaseModel):
    """Request body for POST /v1/deliveries (manual delivery)"""

    subscription_id: str = Field(..., min_length=1)
    delivery_date: ShopLocalDatetime
    quantity: float = Field(..., gt=0)
    notes: Optional[str] = None


class DeliveryUpdate(BaseModel):
    """Request body for PATCH /v1/deliveries/{id}"""

    status: Optional[DeliveryStatus] = None
    quantity: Optional[float] = Field(None, ge=0)
    actual_quantity: Optional[float] = Field(None, ge=0)
    actual_price_paise: Optional[int] = Field(None, ge=0)
    delivered_by: Optional[str] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None


class DeliveryListResponse(BaseModel):
    deliveries: List[DeliverySchema]


class DeliveryUpdateResponse(BaseModel):
    delivery: DeliverySchema
    next_delivery: Optional[DeliverySchema] = None
    invoice_id: Optional[str] = None
    warnings: List[str] = []


# Credit ledger


class CreditAccountCreate(BaseModel):
    """Request body for POST /v1/credit/accounts"""

    customer_id: str = Field(..., min_length=1)
    credit_limit_paise: Optional[int] = Field(None, ge=0, description="Defaults to the shop's default limit")


class CreditAccountUpdate(BaseModel):
    credit_limit_paise: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    due_date: Optional[ShopLocalDatetime] = None


class CreditAccountSchema(ORMModel):
    id: str
    customer_id: str
    credit_limit_paise: int
    current_balance_paise: int
    available_credit_paise: int
    credit_score: int
    is_active: bool
    due_date: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None


class CreditAccountListResponse(BaseModel):
    accounts: List[CreditAccountSchema]


class CreditTransactionCreate(BaseModel):
    """Request body for POST /v1/credit/transactions"""

    account_id: str = Field(..., min_length=1)
    type: TransactionType
    amount_paise: int = Field(..., description="Non-negative magnitude; direction comes from type")
    description: Optional[str] = None
    reference: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class CreditTransactionSchema(BaseModel):
    id: str
    account_id: str
    type: TransactionType
    amount_paise: int
    balance_paise: int
    description: Optional[str] = None
    reference: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime


class CreditTransactionResponse(BaseModel):
    transaction: CreditTransactionSchema
    account: CreditAccountSchema


class CreditTransactionListResponse(BaseModel):
    transactions: List[CreditTransactionSchema]


class ScoringRequest(BaseModel):
    customer_id: str = Field(..., min_length=1)


class ScoreFactorSchema(BaseModel):
    value: float
    points: int
    impact: str


class ScoringBreakdownSchema(BaseModel):
    order_history: ScoreFactorSchema
    spending: ScoreFactorSchema
    average_order_value: ScoreFactorSchema
    recent_activity: ScoreFactorSchema


class RecommendationSchema(BaseModel):
    type: str
    message: str
    priority: str


class ScoringResponse(BaseModel):
    customer_id: str
    customer_name: str
    credit_score: int
    risk_level: str
    breakdown: ScoringBreakdownSchema
    recommendations: List[RecommendationSchema]


class ScoredAccount(CreditAccountSchema):
    risk_level: str


class ScoringSummary(BaseModel):
    total_accounts: int
    active_accounts: int
    avg_credit_score: int
    high_risk_accounts: int


class ScoringSummaryResponse(BaseModel):
    summary: ScoringSummary
    accounts: List[ScoredAccount]


# Invoices and payments


class InvoiceLineSchema(BaseModel):
    product_id: str
    name: str
    quantity: float = Field(..., ge=0)
    unit_price_paise: int = Field(..., ge=0)
    total_paise: Optional[int] = None
    unit: Optional[str] = None


class InvoiceCreate(BaseModel):
    """Request body for POST /v1/invoices"""

    customer_id: Optional[str] = None
    lines: List[InvoiceLineSchema] = Field(..., min_length=1)
    status: InvoiceStatus = InvoiceStatus.DRAFT
    due_date: Optional[ShopLocalDatetime] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class InvoiceUpdate(BaseModel):
    status: Optional[InvoiceStatus] = None
    due_date: Optional[ShopLocalDatetime] = None
    notes: Optional[str] = None


class InvoiceSchema(ORMModel):
    id: str
    invoice_number: str
    customer_id: Optional[str] = None
    items: List[InvoiceLineSchema]
    subtotal_paise: int
    tax_paise: int
    total_paise: int
    paid_paise: int
    balance_paise: int
    status: InvoiceStatus
    due_date: Optional[datetime] = None
    issued_at: datetime
    reference: Optional[str] = None
    notes: Optional[str] = None


class InvoiceListResponse(BaseModel):
    invoices: List[InvoiceSchema]


class OverdueResponse(BaseModel):
    marked_overdue: List[str]


class PaymentCreate(BaseModel):
    """Request body for POST /v1/payments"""

    invoice_id: Optional[str] = None
    customer_id: Optional[str] = None
    amount_paise: int = Field(..., gt=0)
    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_ref: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class PaymentUpdate(BaseModel):
    status: Optional[PaymentStatus] = None
    transaction_ref: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class PaymentSchema(ORMModel):
    id: str
    invoice_id: Optional[str] = None
    customer_id: Optional[str] = None
    amount_paise: int
    method: PaymentMethod
    status: PaymentStatus
    transaction_ref: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class PaymentResponse(BaseModel):
    payment: PaymentSchema
    invoice: Optional[InvoiceSchema] = None
    warnings: List[str] = []


class PaymentListResponse(BaseModel):
    payments: List[PaymentSchema]


# Shop settings


class SubscriptionSettingsSchema(ORMModel):
    allow_pause: bool
    allow_cancel: bool
    default_frequency: Frequency
    pause_fee_paise: int
    cancellation_fee_paise: int
    delivery_charge_paise: int


class SubscriptionSettingsUpdate(BaseModel):
    allow_pause: Optional[bool] = None
    allow_cancel: Optional[bool] = None
    default_frequency: Optional[Frequency] = None
    pause_fee_paise: Optional[int] = Field(None, ge=0)
    cancellation_fee_paise: Optional[int] = Field(None, ge=0)
    delivery_charge_paise: Optional[int] = Field(None, ge=0)


class CreditSettingsSchema(ORMModel):
    default_credit_limit_paise: int
    min_credit_score: int
    interest_rate: float
    late_fee_rate: float
    grace_period_days: int


class CreditSettingsUpdate(BaseModel):
    default_credit_limit_paise: Optional[int] = Field(None, ge=0)
    min_credit_score: Optional[int] = Field(None, ge=0, le=100)
    interest_rate: Optional[float] = Field(None, ge=0, le=100)
    late_fee_rate: Optional[float] = Field(None, ge=0, le=1)
    grace_period_days: Optional[int] = Field(None, ge=0, le=30)


class BillingSettingsSchema(ORMModel):
    invoice_prefix: str
    tax_rate: float
    due_days: int
    accept_online: bool
    accept_cash: bool
    accept_credit: bool


class BillingSettingsUpdate(BaseModel):
    invoice_prefix: Optional[str] = Field(None, min_length=1, max_length=16)
    tax_rate: Optional[float] = Field(None, ge=0, le=100)
    due_days: Optional[int] = Field(None, ge=0, le=90)
    accept_online: Optional[bool] = None
    accept_cash: Optional[bool] = None
    accept_credit: Optional[bool] = None
