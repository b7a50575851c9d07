"""Data access layer for subscriptions, deliveries, credit ledger and billing"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from kirana_gateway.infrastructure.database.models import (
    BillingSettings,
    CreditAccount,
    CreditSettings,
    CreditTransaction,
    Customer,
    DeliverySchedule,
    Invoice,
    Order,
    Payment,
    Subscription,
    SubscriptionSettings,
)
from kirana_gateway.domain.exceptions import ConcurrentUpdateError, NotFoundError
from kirana_gateway.domain.models import (
    AccountState,
    BalanceChange,
    BillingPolicy,
    CreditPolicy,
    CustomerHistory,
    DeliveryStatus,
    Frequency,
    InvoiceLine,
    InvoiceState,
    InvoiceStatus,
    SubscriptionPolicy,
)
from kirana_gateway.domain.invoicing import OVERDUE_ELIGIBLE


def _flush(db: Session, entity: str) -> None:
    """Flush pending changes, reporting optimistic-lock conflicts as domain errors"""
    try:
        db.flush()
    except StaleDataError as e:
        raise ConcurrentUpdateError(f"{entity} was modified concurrently, retry the request") from e


class CustomerRepository:
    """Repository for shop customers and their order totals"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, shop_id: str, name: str, mobile: Optional[str], address: Optional[str]) -> Customer:
        customer = Customer(
            shop_id=shop_id,
            name=name,
            mobile=mobile,
            address=address,
            total_orders=0,
            total_spent_paise=0,
        )
        self.db.add(customer)
        self.db.flush()
        return customer

    def find_by_mobile(self, shop_id: str, mobile: str) -> Optional[Customer]:
        return (
            self.db.query(Customer)
            .filter(Customer.shop_id == shop_id, Customer.mobile == mobile)
            .first()
        )

    def list(self, shop_id: str, mobile: Optional[str] = None) -> List[Customer]:
        query = self.db.query(Customer).filter(Customer.shop_id == shop_id)
        if mobile:
            query = query.filter(Customer.mobile == mobile)
        return query.order_by(Customer.name).all()

    def record_order(self, customer: Customer, total_paise: int, placed_at: datetime) -> Order:
        """Append an order and roll it into the customer's lifetime totals"""
        order = Order(
            shop_id=customer.shop_id,
            customer_id=customer.id,
            total_paise=total_paise,
            placed_at=placed_at,
        )
        self.db.add(order)
        customer.total_orders = (customer.total_orders or 0) + 1
        customer.total_spent_paise = (customer.total_spent_paise or 0) + total_paise
        self.db.flush()
        return order

    def list_orders(self, customer: Customer, limit: int = 50) -> List[Order]:
        return (
            self.db.query(Order)
            .filter(Order.customer_id == customer.id)
            .order_by(Order.placed_at.desc())
            .limit(limit)
            .all()
        )

    def get_for_shop(self, shop_id: str, customer_id: str) -> Customer:
        customer = (
            self.db.query(Customer)
            .filter(Customer.id == customer_id, Customer.shop_id == shop_id)
            .first()
        )
        if not customer:
            raise NotFoundError("Customer not found")
        return customer

    def history(self, customer: Customer, now: datetime, window_days: int = 30) -> CustomerHistory:
        """Order history snapshot used by credit scoring"""
        recent = (
            self.db.query(Order)
            .filter(
                Order.customer_id == customer.id,
                Order.placed_at >= now - timedelta(days=window_days),
                Order.placed_at <= now,
            )
            .count()
        )
        return CustomerHistory(
            total_orders=customer.total_orders or 0,
            total_spent_paise=customer.total_spent_paise or 0,
            recent_orders=recent,
        )


class SettingsRepository:
    """Per-shop policy rows, created with defaults on first read"""

    def __init__(self, db: Session):
        self.db = db

    def subscription_settings(self, shop_id: str) -> SubscriptionSettings:
        row = self.db.get(SubscriptionSettings, shop_id)
        if row is None:
            defaults = SubscriptionPolicy()
            row = SubscriptionSettings(
                shop_id=shop_id,
                allow_pause=defaults.allow_pause,
                allow_cancel=defaults.allow_cancel,
                default_frequency=defaults.default_frequency.value,
                pause_fee_paise=defaults.pause_fee_paise,
                cancellation_fee_paise=defaults.cancellation_fee_paise,
                delivery_charge_paise=0,
            )
            self.db.add(row)
            self.db.flush()
        return row

    def credit_settings(self, shop_id: str) -> CreditSettings:
        row = self.db.get(CreditSettings, shop_id)
        if row is None:
            defaults = CreditPolicy()
            row = CreditSettings(
                shop_id=shop_id,
                default_credit_limit_paise=defaults.default_credit_limit_paise,
                min_credit_score=defaults.min_credit_score,
                interest_rate=defaults.interest_rate,
                late_fee_rate=defaults.late_fee_rate,
                grace_period_days=defaults.grace_period_days,
            )
            self.db.add(row)
            self.db.flush()
        return row

    def billing_settings(self, shop_id: str) -> BillingSettings:
        row = self.db.get(BillingSettings, shop_id)
        if row is None:
            defaults = BillingPolicy()
            row = BillingSettings(
                shop_id=shop_id,
                invoice_prefix=defaults.invoice_prefix,
                tax_rate=defaults.tax_rate,
                due_days=defaults.due_days,
                accept_online=defaults.accept_online,
                accept_cash=defaults.accept_cash,
                accept_credit=defaults.accept_credit,
            )
            self.db.add(row)
            self.db.flush()
        return row

    def subscription_policy(self, shop_id: str) -> SubscriptionPolicy:
        row = self.subscription_settings(shop_id)
        return SubscriptionPolicy(
            allow_pause=row.allow_pause,
            allow_cancel=row.allow_cancel,
            default_frequency=Frequency(row.default_frequency),
            pause_fee_paise=row.pause_fee_paise,
            cancellation_fee_paise=row.cancellation_fee_paise,
        )

    def credit_policy(self, shop_id: str) -> CreditPolicy:
        row = self.credit_settings(shop_id)
        return CreditPolicy(
            default_credit_limit_paise=row.default_credit_limit_paise,
            min_credit_score=row.min_credit_score,
            interest_rate=row.interest_rate,
            late_fee_rate=row.late_fee_rate,
            grace_period_days=row.grace_period_days,
        )

    def billing_policy(self, shop_id: str) -> BillingPolicy:
        row = self.billing_settings(shop_id)
        return BillingPolicy(
            invoice_prefix=row.invoice_prefix,
            tax_rate=row.tax_rate,
            due_days=row.due_days,
            accept_online=row.accept_online,
            accept_cash=row.accept_cash,
            accept_credit=row.accept_credit,
        )

    def update(self, row: Any, changes: Dict[str, Any]) -> Any:
        for field_name, value in changes.items():
            setattr(row, field_name, value)
        self.db.flush()
        return row


class SubscriptionRepository:
    """Repository for recurring-delivery subscriptions"""

    def __init__(self, db: Session):
        self.db = db

    def get_for_shop(self, shop_id: str, subscription_id: str) -> Subscription:
        subscription = (
            self.db.query(Subscription)
            .filter(Subscription.id == subscription_id, Subscription.shop_id == shop_id)
            .first()
        )
        if not subscription:
            raise NotFoundError("Subscription not found")
        return subscription

    def find_by_triple(self, shop_id: str, customer_id: str, product_id: str) -> Optional[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(
                Subscription.shop_id == shop_id,
                Subscription.customer_id == customer_id,
                Subscription.product_id == product_id,
            )
            .first()
        )

    def create(self, **fields: Any) -> Subscription:
        subscription = Subscription(**fields)
        self.db.add(subscription)
        self.db.flush()
        return subscription

    def list(
        self,
        shop_id: str,
        customer_id: Optional[str] = None,
        product_id: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> List[Subscription]:
        query = self.db.query(Subscription).filter(Subscription.shop_id == shop_id)
        if customer_id:
            query = query.filter(Subscription.customer_id == customer_id)
        if product_id:
            query = query.filter(Subscription.product_id == product_id)
        if is_active is not None:
            query = query.filter(Subscription.is_active == is_active)
        return query.order_by(Subscription.created_at.desc()).all()

    def save(self, subscription: Subscription) -> Subscription:
        _flush(self.db, "Subscription")
        return subscription

    def delete(self, subscription: Subscription) -> None:
        """Hard delete; deliveries cascade with it"""
        self.db.delete(subscription)
        self.db.flush()


class DeliveryRepository:
    """Repository for delivery schedule rows"""

    def __init__(self, db: Session):
        self.db = db

    def create_scheduled(
        self,
        subscription: Subscription,
        delivery_date: datetime,
        quantity: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> DeliverySchedule:
        delivery = DeliverySchedule(
            subscription_id=subscription.id,
            delivery_date=delivery_date,
            scheduled_time=subscription.delivery_time,
            status=DeliveryStatus.SCHEDULED.value,
            quantity=quantity if quantity is not None else subscription.quantity,
            notes=notes,
        )
        self.db.add(delivery)
        self.db.flush()
        return delivery

    def get_for_shop(self, shop_id: str, delivery_id: str) -> DeliverySchedule:
        delivery = (
            self.db.query(DeliverySchedule)
            .join(Subscription, DeliverySchedule.subscription_id == Subscription.id)
            .filter(DeliverySchedule.id == delivery_id, Subscription.shop_id == shop_id)
            .first()
        )
        if not delivery:
            raise NotFoundError("Delivery not found")
        return delivery

    def list(
        self,
        shop_id: str,
        subscription_id: Optional[str] = None,
        status: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[DeliverySchedule]:
        query = (
            self.db.query(DeliverySchedule)
            .join(Subscription, DeliverySchedule.subscription_id == Subscription.id)
            .filter(Subscription.shop_id == shop_id)
        )
        if subscription_id:
            query = query.filter(DeliverySchedule.subscription_id == subscription_id)
        if status:
            query = query.filter(DeliverySchedule.status == status)
        if date_from:
            query = query.filter(DeliverySchedule.delivery_date >= date_from)
        if date_to:
            query = query.filter(DeliverySchedule.delivery_date <= date_to)
        return query.order_by(DeliverySchedule.delivery_date.asc()).limit(limit).all()

    def find_scheduled_at(self, subscription_id: str, delivery_date: datetime) -> Optional[DeliverySchedule]:
        return (
            self.db.query(DeliverySchedule)
            .filter(
                DeliverySchedule.subscription_id == subscription_id,
                DeliverySchedule.delivery_date == delivery_date,
                DeliverySchedule.status == DeliveryStatus.SCHEDULED.value,
            )
            .first()
        )

    def recent_for_subscription(self, subscription_id: str, limit: int = 10) -> List[DeliverySchedule]:
        return (
            self.db.query(DeliverySchedule)
            .filter(DeliverySchedule.subscription_id == subscription_id)
            .order_by(DeliverySchedule.delivery_date.desc())
            .limit(limit)
            .all()
        )

    def delete_scheduled(self, subscription_id: str, since: Optional[datetime] = None) -> int:
        """Delete still-SCHEDULED deliveries, optionally only those on/after `since`"""
        query = self.db.query(DeliverySchedule).filter(
            DeliverySchedule.subscription_id == subscription_id,
            DeliverySchedule.status == DeliveryStatus.SCHEDULED.value,
        )
        if since is not None:
            query = query.filter(DeliverySchedule.delivery_date >= since)
        return query.delete(synchronize_session="fetch")


class CreditAccountRepository:
    """Repository for credit accounts and their append-only ledger"""

    def __init__(self, db: Session):
        self.db = db

    def get_for_shop(self, shop_id: str, account_id: str) -> CreditAccount:
        account = (
            self.db.query(CreditAccount)
            .filter(CreditAccount.id == account_id, CreditAccount.shop_id == shop_id)
            .first()
        )
        if not account:
            raise NotFoundError("Credit account not found")
        return account

    def find_for_customer(
        self, shop_id: str, customer_id: str, active_only: bool = False
    ) -> Optional[CreditAccount]:
        query = self.db.query(CreditAccount).filter(
            CreditAccount.shop_id == shop_id,
            CreditAccount.customer_id == customer_id,
        )
        if active_only:
            query = query.filter(CreditAccount.is_active.is_(True))
        return query.first()

    def list(self, shop_id: str, customer_id: Optional[str] = None) -> List[CreditAccount]:
        query = self.db.query(CreditAccount).filter(CreditAccount.shop_id == shop_id)
        if customer_id:
            query = query.filter(CreditAccount.customer_id == customer_id)
        return query.order_by(CreditAccount.created_at.desc()).all()

    def create(
        self,
        shop_id: str,
        customer_id: str,
        credit_limit_paise: int,
        credit_score: int,
        due_date: Optional[datetime],
    ) -> CreditAccount:
        account = CreditAccount(
            shop_id=shop_id,
            customer_id=customer_id,
            credit_limit_paise=credit_limit_paise,
            current_balance_paise=0,
            available_credit_paise=credit_limit_paise,
            credit_score=credit_score,
            is_active=True,
            due_date=due_date,
        )
        self.db.add(account)
        self.db.flush()
        return account

    @staticmethod
    def state(account: CreditAccount) -> AccountState:
        return AccountState(
            credit_limit_paise=account.credit_limit_paise,
            current_balance_paise=account.current_balance_paise,
            available_credit_paise=account.available_credit_paise,
            is_active=account.is_active,
        )

    def append_entry(
        self,
        account: CreditAccount,
        type: str,
        amount_paise: int,
        balance_paise: int,
        now: datetime,
        description: Optional[str] = None,
        reference: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CreditTransaction:
        entry = CreditTransaction(
            account_id=account.id,
            shop_id=account.shop_id,
            type=type,
            amount_paise=amount_paise,
            balance_paise=balance_paise,
            description=description,
            reference=reference,
            metadata_=metadata,
            created_at=now,
        )
        self.db.add(entry)
        return entry

    def apply_transaction(
        self,
        account: CreditAccount,
        change: BalanceChange,
        now: datetime,
        description: Optional[str] = None,
        reference: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CreditTransaction:
        """
        Persist a computed balance change: update the account and append the
        ledger entry in one flush. The entry's balance is the post-change
        balance of the account at this moment.

        Raises:
            ConcurrentUpdateError: account row changed since it was loaded
        """
        account.current_balance_paise = change.balance_after_paise
        account.available_credit_paise = change.available_after_paise
        entry = self.append_entry(
            account,
            type=change.type.value,
            amount_paise=change.amount_paise,
            balance_paise=change.balance_after_paise,
            now=now,
            description=description,
            reference=reference,
            metadata=metadata,
        )
        _flush(self.db, "Credit account")
        return entry

    def save(self, account: CreditAccount) -> CreditAccount:
        _flush(self.db, "Credit account")
        return account

    def list_transactions(
        self, shop_id: str, account_id: Optional[str] = None, limit: int = 200
    ) -> List[CreditTransaction]:
        query = self.db.query(CreditTransaction).filter(CreditTransaction.shop_id == shop_id)
        if account_id:
            query = query.filter(CreditTransaction.account_id == account_id)
        return query.order_by(CreditTransaction.created_at.desc()).limit(limit).all()


class InvoiceRepository:
    """Repository for invoices"""

    def __init__(self, db: Session):
        self.db = db

    def count_since(self, shop_id: str, since: datetime) -> int:
        return (
            self.db.query(Invoice)
            .filter(Invoice.shop_id == shop_id, Invoice.issued_at >= since)
            .count()
        )

    def create(
        self,
        shop_id: str,
        invoice_number: str,
        lines: List[InvoiceLine],
        subtotal_paise: int,
        tax_paise: int,
        total_paise: int,
        status: InvoiceStatus,
        issued_at: datetime,
        due_date: Optional[datetime],
        customer_id: Optional[str] = None,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Invoice:
        invoice = Invoice(
            shop_id=shop_id,
            customer_id=customer_id,
            invoice_number=invoice_number,
            items=[
                {
                    "product_id": line.product_id,
                    "name": line.name,
                    "quantity": line.quantity,
                    "unit_price_paise": line.unit_price_paise,
                    "total_paise": line.total_paise,
                    "unit": line.unit,
                }
                for line in lines
            ],
            subtotal_paise=subtotal_paise,
            tax_paise=tax_paise,
            total_paise=total_paise,
            paid_paise=0,
            balance_paise=total_paise,
            status=status.value,
            issued_at=issued_at,
            due_date=due_date,
            reference=reference,
            notes=notes,
        )
        self.db.add(invoice)
        self.db.flush()
        return invoice

    def get_for_shop(self, shop_id: str, invoice_id: str) -> Invoice:
        invoice = (
            self.db.query(Invoice)
            .filter(Invoice.id == invoice_id, Invoice.shop_id == shop_id)
            .first()
        )
        if not invoice:
            raise NotFoundError("Invoice not found")
        return invoice

    def list(
        self,
        shop_id: str,
        status: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> List[Invoice]:
        query = self.db.query(Invoice).filter(Invoice.shop_id == shop_id)
        if status:
            query = query.filter(Invoice.status == status)
        if customer_id:
            query = query.filter(Invoice.customer_id == customer_id)
        return query.order_by(Invoice.issued_at.desc()).all()

    def overdue_candidates(self, shop_id: str, now: datetime) -> List[Invoice]:
        return (
            self.db.query(Invoice)
            .filter(
                Invoice.shop_id == shop_id,
                Invoice.status.in_([s.value for s in OVERDUE_ELIGIBLE]),
                Invoice.due_date < now,
            )
            .all()
        )

    @staticmethod
    def state(invoice: Invoice) -> InvoiceState:
        return InvoiceState(
            total_paise=invoice.total_paise,
            paid_paise=invoice.paid_paise,
            balance_paise=invoice.balance_paise,
            status=InvoiceStatus(invoice.status),
        )

    def apply_state(self, invoice: Invoice, state: InvoiceState) -> Invoice:
        invoice.paid_paise = state.paid_paise
        invoice.balance_paise = state.balance_paise
        invoice.status = state.status.value
        self.db.flush()
        return invoice


class PaymentRepository:
    """Repository for payments"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, **fields: Any) -> Payment:
        payment = Payment(**fields)
        self.db.add(payment)
        self.db.flush()
        return payment

    def get_for_shop(self, shop_id: str, payment_id: str) -> Payment:
        payment = (
            self.db.query(Payment)
            .filter(Payment.id == payment_id, Payment.shop_id == shop_id)
            .first()
        )
        if not payment:
            raise NotFoundError("Payment not found")
        return payment

    def list(
        self,
        shop_id: str,
        invoice_id: Optional[str] = None,
        customer_id: Optional[str] = None,
        status: Optional[str] = None,
        method: Optional[str] = None,
    ) -> List[Payment]:
        query = self.db.query(Payment).filter(Payment.shop_id == shop_id)
        if invoice_id:
            query = query.filter(Payment.invoice_id == invoice_id)
        if customer_id:
            query = query.filter(Payment.customer_id == customer_id)
        if status:
            query = query.filter(Payment.status == status)
        if method:
            query = query.filter(Payment.method == method)
        return query.order_by(Payment.created_at.desc()).all()
