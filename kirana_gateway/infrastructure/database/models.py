"""SQLAlchemy ORM models for shops' subscriptions, credit ledger and billing"""

import uuid
from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


class Customer(Base):
    """Shop customer; identity is scoped to one shop"""

    __tablename__ = "customer"

    id = Column(String(36), primary_key=True, default=new_id)
    shop_id = Column(String(36), nullable=False, index=True)
    name = Column(Text, nullable=False)
    mobile = Column(Text, nullable=True)
    address = Column(Text, nullable=True)
    total_orders = Column(Integer, nullable=False, default=0)
    total_spent_paise = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    orders = relationship("Order", back_populates="customer")


class Order(Base):
    """Placed order, read by credit scoring for recent activity"""

    __tablename__ = "customer_order"

    id = Column(String(36), primary_key=True, default=new_id)
    shop_id = Column(String(36), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("customer.id"), nullable=False, index=True)
    total_paise = Column(BigInteger, nullable=False)
    placed_at = Column(DateTime, nullable=False)

    customer = relationship("Customer", back_populates="orders")


class Subscription(Base):
    """Recurring delivery of one product to one customer"""

    __tablename__ = "subscription"
    __table_args__ = (
        UniqueConstraint("customer_id", "product_id", "shop_id", name="uq_subscription_customer_product_shop"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    shop_id = Column(String(36), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("customer.id"), nullable=False, index=True)
    product_id = Column(String(36), nullable=False)
    quantity = Column(Float, nullable=False)
    unit = Column(Text, nullable=False)
    price_per_unit_paise = Column(BigInteger, nullable=False)
    frequency = Column(String(16), nullable=False)
    delivery_time = Column(String(5), nullable=False)
    delivery_days = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    paused = Column(Boolean, nullable=False, default=False)
    pause_reason = Column(Text, nullable=True)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    next_delivery = Column(DateTime, nullable=True)
    auto_charge = Column(Boolean, nullable=False, default=False)
    last_charged = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer")
    deliveries = relationship(
        "DeliverySchedule",
        back_populates="subscription",
        cascade="all, delete-orphan",
        order_by="DeliverySchedule.delivery_date.desc()",
    )

    __mapper_args__ = {"version_id_col": version}


class DeliverySchedule(Base):
    """Single planned or completed delivery for a subscription"""

    __tablename__ = "delivery_schedule"

    id = Column(String(36), primary_key=True, default=new_id)
    subscription_id = Column(
        String(36), ForeignKey("subscription.id", ondelete="CASCADE"), nullable=False, index=True
    )
    delivery_date = Column(DateTime, nullable=False, index=True)
    scheduled_time = Column(String(5), nullable=False)
    status = Column(String(16), nullable=False, default="SCHEDULED")
    quantity = Column(Float, nullable=False)
    actual_quantity = Column(Float, nullable=True)
    actual_price_paise = Column(BigInteger, nullable=True)
    delivered_by = Column(Text, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    delivery_address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    subscription = relationship("Subscription", back_populates="deliveries")


class CreditAccount(Base):
    """Per-customer credit (khata) account"""

    __tablename__ = "credit_account"
    __table_args__ = (UniqueConstraint("customer_id", "shop_id", name="uq_credit_account_customer_shop"),)

    id = Column(String(36), primary_key=True, default=new_id)
    shop_id = Column(String(36), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("customer.id"), nullable=False, index=True)
    credit_limit_paise = Column(BigInteger, nullable=False)
    current_balance_paise = Column(BigInteger, nullable=False, default=0)
    available_credit_paise = Column(BigInteger, nullable=False)
    credit_score = Column(Integer, nullable=False, default=100)
    is_active = Column(Boolean, nullable=False, default=True)
    due_date = Column(DateTime, nullable=True)
    last_payment_date = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    customer = relationship("Customer")
    transactions = relationship(
        "CreditTransaction",
        back_populates="account",
        order_by="CreditTransaction.created_at.desc()",
    )

    __mapper_args__ = {"version_id_col": version}


class CreditTransaction(Base):
    """Immutable ledger entry with the account balance right after it was applied"""

    __tablename__ = "credit_transaction"

    id = Column(String(36), primary_key=True, default=new_id)
    account_id = Column(String(36), ForeignKey("credit_account.id"), nullable=False, index=True)
    shop_id = Column(String(36), nullable=False, index=True)
    type = Column(String(16), nullable=False)
    amount_paise = Column(BigInteger, nullable=False)
    balance_paise = Column(BigInteger, nullable=False)
    description = Column(Text, nullable=True)
    reference = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, nullable=False)

    account = relationship("CreditAccount", back_populates="transactions")


class Invoice(Base):
    __tablename__ = "invoice"
    __table_args__ = (UniqueConstraint("shop_id", "invoice_number", name="uq_invoice_shop_number"),)

    id = Column(String(36), primary_key=True, default=new_id)
    shop_id = Column(String(36), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("customer.id"), nullable=True, index=True)
    invoice_number = Column(String(32), nullable=False)
    items = Column(JSON, nullable=False)
    subtotal_paise = Column(BigInteger, nullable=False)
    tax_paise = Column(BigInteger, nullable=False, default=0)
    total_paise = Column(BigInteger, nullable=False)
    paid_paise = Column(BigInteger, nullable=False, default=0)
    balance_paise = Column(BigInteger, nullable=False)
    status = Column(String(16), nullable=False, default="DRAFT")
    due_date = Column(DateTime, nullable=True)
    issued_at = Column(DateTime, nullable=False, index=True)
    reference = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    customer = relationship("Customer")
    payments = relationship("Payment", back_populates="invoice")


class Payment(Base):
    __tablename__ = "payment"

    id = Column(String(36), primary_key=True, default=new_id)
    shop_id = Column(String(36), nullable=False, index=True)
    invoice_id = Column(String(36), ForeignKey("invoice.id"), nullable=True, index=True)
    customer_id = Column(String(36), ForeignKey("customer.id"), nullable=True, index=True)
    amount_paise = Column(BigInteger, nullable=False)
    method = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False, default="PENDING")
    transaction_ref = Column(Text, nullable=True)
    reference = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False)

    customer = relationship("Customer")
    invoice = relationship("Invoice", back_populates="payments")


class SubscriptionSettings(Base):
    __tablename__ = "subscription_settings"

    shop_id = Column(String(36), primary_key=True)
    allow_pause = Column(Boolean, nullable=False, default=True)
    allow_cancel = Column(Boolean, nullable=False, default=True)
    default_frequency = Column(String(16), nullable=False, default="daily")
    pause_fee_paise = Column(BigInteger, nullable=False, default=0)
    cancellation_fee_paise = Column(BigInteger, nullable=False, default=0)
    delivery_charge_paise = Column(BigInteger, nullable=False, default=0)


class CreditSettings(Base):
    __tablename__ = "credit_settings"

    shop_id = Column(String(36), primary_key=True)
    default_credit_limit_paise = Column(BigInteger, nullable=False, default=500_000)
    min_credit_score = Column(Integer, nullable=False, default=60)
    interest_rate = Column(Float, nullable=False, default=0.0)
    late_fee_rate = Column(Float, nullable=False, default=0.02)
    grace_period_days = Column(Integer, nullable=False, default=7)


class BillingSettings(Base):
    __tablename__ = "billing_settings"

    shop_id = Column(String(36), primary_key=True)
    invoice_prefix = Column(String(16), nullable=False, default="INV")
    tax_rate = Column(Float, nullable=False, default=0.0)
    due_days = Column(Integer, nullable=False, default=7)
    accept_online = Column(Boolean, nullable=False, default=True)
    accept_cash = Column(Boolean, nullable=False, default=True)
    accept_credit = Column(Boolean, nullable=False, default=True)
