"""Multi-repository request workflows shared by the v1 routers"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kirana_gateway.config import settings
from kirana_gateway.domain.exceptions import DomainException
from kirana_gateway.domain.invoicing import (
    SUBSCRIPTION_INVOICE_PREFIX,
    apply_payment_to_invoice,
    generate_invoice_number,
    month_start,
    price_invoice,
)
from kirana_gateway.domain.ledger import apply_transaction
from kirana_gateway.domain.models import InvoiceLine, InvoiceStatus, SideEffectResult, TransactionType
from kirana_gateway.domain.scheduling import compute_next_delivery, delivery_charge_paise, within_horizon
from kirana_gateway.domain.scoring import compute_credit_score
from kirana_gateway.infrastructure.database.models import (
    CreditAccount,
    CreditTransaction,
    DeliverySchedule,
    Invoice,
    Subscription,
)
from kirana_gateway.infrastructure.database.repositories import (
    CreditAccountRepository,
    CustomerRepository,
    DeliveryRepository,
    InvoiceRepository,
    SettingsRepository,
)
from kirana_gateway.infrastructure.observability.logging import log_ledger_transaction, log_side_effect_failure
from kirana_gateway.infrastructure.observability.metrics import (
    invoice_generated_counter,
    invoice_generation_failures_counter,
    record_credit_score,
    record_credit_transaction,
)


def materialize_next_delivery(
    db: Session,
    subscription: Subscription,
    reference: datetime,
    now: datetime,
    after: Optional[datetime] = None,
) -> Optional[DeliverySchedule]:
    """
    Recompute `next_delivery` and create its SCHEDULED row when it falls inside
    the delivery horizon. A slot past the end date leaves no next delivery.

    The next delivery is strictly later than `after` (default: now).
    """
    next_delivery = compute_next_delivery(
        subscription.frequency,
        subscription.delivery_time,
        subscription.delivery_days,
        reference,
        max(now, after) if after else now,
        max_iterations=settings.custom_schedule_search_limit,
    )
    if subscription.end_date is not None and next_delivery > subscription.end_date:
        subscription.next_delivery = None
        return None
    subscription.next_delivery = next_delivery

    if not within_horizon(next_delivery, now, settings.delivery_horizon_days):
        return None

    deliveries = DeliveryRepository(db)
    existing = deliveries.find_scheduled_at(subscription.id, next_delivery)
    if existing:
        return existing
    return deliveries.create_scheduled(subscription, next_delivery)


def create_invoice(
    db: Session,
    shop_id: str,
    lines: list,
    now: datetime,
    status: InvoiceStatus,
    due_date: Optional[datetime],
    prefix: Optional[str] = None,
    tax_rate: Optional[float] = None,
    customer_id: Optional[str] = None,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
    source: str = "manual",
) -> Invoice:
    """Price, number and persist an invoice"""
    policy = SettingsRepository(db).billing_policy(shop_id)
    invoices = InvoiceRepository(db)

    subtotal, tax, total = price_invoice(lines, policy.tax_rate if tax_rate is None else tax_rate)
    number = generate_invoice_number(
        prefix or policy.invoice_prefix,
        now,
        invoices.count_since(shop_id, month_start(now)),
    )
    invoice = invoices.create(
        shop_id=shop_id,
        invoice_number=number,
        lines=lines,
        subtotal_paise=subtotal,
        tax_paise=tax,
        total_paise=total,
        status=status,
        issued_at=now,
        due_date=due_date,
        customer_id=customer_id,
        reference=reference,
        notes=notes,
    )
    invoice_generated_counter.labels(source=source).inc()
    return invoice


def generate_subscription_invoice(
    db: Session,
    subscription: Subscription,
    delivery: DeliverySchedule,
    now: datetime,
    request_id: str,
) -> SideEffectResult:
    """
    Best-effort auto-charge after a completed delivery.

    Runs after the delivery completion has been committed; on failure only this
    invoice is rolled back and the failure is returned, never raised.
    """
    try:
        delivered_quantity = delivery.actual_quantity if delivery.actual_quantity is not None else delivery.quantity
        amount = delivery_charge_paise(
            subscription.price_per_unit_paise,
            delivery.quantity,
            delivery.actual_quantity,
            delivery.actual_price_paise,
        )
        line = InvoiceLine(
            product_id=subscription.product_id,
            name=f"Subscription - {subscription.frequency}",
            quantity=delivered_quantity,
            unit_price_paise=subscription.price_per_unit_paise,
            total_paise=amount,
            unit=subscription.unit,
        )
        invoice = create_invoice(
            db,
            shop_id=subscription.shop_id,
            lines=[line],
            now=now,
            status=InvoiceStatus.SENT,
            due_date=now + timedelta(days=settings.invoice_due_days),
            prefix=SUBSCRIPTION_INVOICE_PREFIX,
            tax_rate=0.0,
            customer_id=subscription.customer_id,
            reference=subscription.id,
            notes="Auto-generated invoice for subscription delivery",
            source="subscription",
        )
        subscription.last_charged = now
        db.commit()
        return SideEffectResult.success(invoice)

    except (DomainException, SQLAlchemyError) as e:
        db.rollback()
        invoice_generation_failures_counter.inc()
        log_side_effect_failure(
            request_id,
            "subscription_invoice",
            str(e),
            subscription_id=subscription.id,
            delivery_id=delivery.id,
        )
        return SideEffectResult.failure(f"Invoice generation failed: {e}")


def refresh_credit_score(db: Session, account: CreditAccount, now: datetime) -> int:
    customers = CustomerRepository(db)
    customer = customers.get_for_shop(account.shop_id, account.customer_id)
    policy = SettingsRepository(db).credit_policy(account.shop_id)
    score = compute_credit_score(customers.history(customer, now), policy)
    account.credit_score = score
    record_credit_score(score)
    return score


def post_credit_transaction(
    db: Session,
    account: CreditAccount,
    transaction_type: TransactionType,
    amount_paise: int,
    now: datetime,
    request_id: str,
    description: Optional[str] = None,
    reference: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> CreditTransaction:
    """
    Apply one ledger transaction: compute, persist account + entry together,
    and on PAYMENT stamp the payment date and refresh the credit score.

    Raises:
        PolicyViolationError, ValidationError, CreditLimitExceededError,
        ConcurrentUpdateError: account state is left unchanged
    """
    accounts = CreditAccountRepository(db)
    try:
        change = apply_transaction(accounts.state(account), transaction_type, amount_paise)
    except DomainException:
        record_credit_transaction(getattr(transaction_type, "value", str(transaction_type)), applied=False)
        raise

    if change.type == TransactionType.PAYMENT:
        account.last_payment_date = now
        refresh_credit_score(db, account, now)

    entry = accounts.apply_transaction(
        account,
        change,
        now,
        description=description,
        reference=reference,
        metadata=metadata,
    )

    record_credit_transaction(change.type.value, applied=True)
    log_ledger_transaction(
        request_id,
        account.shop_id,
        account.id,
        change.type.value,
        change.amount_paise,
        change.balance_after_paise,
    )
    return entry


def settle_invoice(db: Session, invoice: Invoice, amount_paise: int) -> Invoice:
    """Apply a signed payment amount (negative = refund) to an invoice"""
    invoices = InvoiceRepository(db)
    return invoices.apply_state(invoice, apply_payment_to_invoice(invoices.state(invoice), amount_paise))


def credit_payment_effect(
    db: Session,
    shop_id: str,
    customer_id: str,
    amount_paise: int,
    now: datetime,
    request_id: str,
    reference: Optional[str] = None,
    refund: bool = False,
) -> SideEffectResult:
    """
    Feed a completed CREDIT-method payment into the customer's khata as a PAYMENT.
    A refund posts the same amount back as a CREDIT, restoring the balance.

    Runs after the payment has been committed; a ledger failure rolls back only
    the ledger entry and is returned, never raised.
    """
    account = CreditAccountRepository(db).find_for_customer(shop_id, customer_id, active_only=True)
    if account is None:
        return SideEffectResult.failure("No active credit account for customer", customer_id=customer_id)

    if refund:
        transaction_type = TransactionType.CREDIT
        description = f"Refund of payment for invoice {reference}" if reference else "Payment refunded"
    else:
        transaction_type = TransactionType.PAYMENT
        description = f"Payment for invoice {reference}" if reference else "Payment received"

    try:
        entry = post_credit_transaction(
            db,
            account,
            transaction_type,
            amount_paise,
            now,
            request_id,
            description=description,
            reference=reference,
            metadata={"refund": True} if refund else None,
        )
        db.commit()
        return SideEffectResult.success(entry)

    except (DomainException, SQLAlchemyError) as e:
        db.rollback()
        effect = "credit_refund" if refund else "credit_payment"
        log_side_effect_failure(request_id, effect, str(e), customer_id=customer_id)
        return SideEffectResult.failure(f"Credit ledger update failed: {e}")
