"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"


class DeliveryStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    DELIVERED = "DELIVERED"
    SKIPPED = "SKIPPED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class TransactionType(str, Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"
    PAYMENT = "PAYMENT"
    ADJUSTMENT = "ADJUSTMENT"
    INTEREST = "INTEREST"
    FEE = "FEE"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    UPI = "UPI"
    CASH = "CASH"
    CARD = "CARD"
    CREDIT = "CREDIT"
    QR = "QR"
    NETBANKING = "NETBANKING"


@dataclass(frozen=True)
class SubscriptionPolicy:
    """Per-shop subscription rules"""

    allow_pause: bool = True
    allow_cancel: bool = True
    default_frequency: Frequency = Frequency.DAILY
    pause_fee_paise: int = 0
    cancellation_fee_paise: int = 0


@dataclass(frozen=True)
class CreditPolicy:
    """Per-shop credit (khata) rules"""

    default_credit_limit_paise: int = 500_000  # ₹5,000
    min_credit_score: int = 60
    interest_rate: float = 0.0
    late_fee_rate: float = 0.02
    grace_period_days: int = 7


@dataclass(frozen=True)
class BillingPolicy:
    """Per-shop invoicing and payment rules"""

    invoice_prefix: str = "INV"
    tax_rate: float = 0.0  # percent
    due_days: int = 7
    accept_online: bool = True
    accept_cash: bool = True
    accept_credit: bool = True


@dataclass
class CustomerHistory:
    """Order history inputs for credit scoring"""

    total_orders: int
    total_spent_paise: int
    recent_orders: int


@dataclass
class AccountState:
    """Balance-relevant fields of a credit account"""

    credit_limit_paise: int
    current_balance_paise: int
    available_credit_paise: int
    is_active: bool = True


@dataclass
class BalanceChange:
    """Result of applying one ledger transaction to an account"""

    type: TransactionType
    amount_paise: int
    balance_before_paise: int
    balance_after_paise: int
    available_after_paise: int


@dataclass
class ScoreFactor:
    """One factor's contribution to a credit score"""

    value: float
    points: int
    impact: str


@dataclass
class ScoringBreakdown:
    order_history: ScoreFactor
    spending: ScoreFactor
    average_order_value: ScoreFactor
    recent_activity: ScoreFactor


@dataclass
class Recommendation:
    type: str  # RISK | ENGAGEMENT | OPPORTUNITY | RETENTION
    message: str
    priority: str  # HIGH | MEDIUM


@dataclass
class InvoiceLine:
    """Single line on an invoice"""

    product_id: str
    name: str
    quantity: float
    unit_price_paise: int
    total_paise: int
    unit: Optional[str] = None

    @classmethod
    def priced(
        cls,
        product_id: str,
        name: str,
        quantity: float,
        unit_price_paise: int,
        unit: Optional[str] = None,
    ) -> "InvoiceLine":
        return cls(
            product_id=product_id,
            name=name,
            quantity=quantity,
            unit_price_paise=unit_price_paise,
            total_paise=round(unit_price_paise * quantity),
            unit=unit,
        )


@dataclass
class InvoiceState:
    """Settlement-relevant fields of an invoice"""

    total_paise: int
    paid_paise: int
    balance_paise: int
    status: InvoiceStatus


@dataclass
class SideEffectResult:
    """Outcome of a best-effort secondary effect"""

    ok: bool
    value: Any = None
    error: Optional[str] = None
    details: dict = field(default_factory=dict)

    @classmethod
    def success(cls, value: Any = None) -> "SideEffectResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str, **details: Any) -> "SideEffectResult":
        return cls(ok=False, error=error, details=details)
