"""Invoice pricing, numbering and payment settlement rules"""

from datetime import datetime
from typing import Dict, Iterable, Optional, Set, Tuple, Union

from kirana_gateway.domain.exceptions import InvalidTransitionError, PolicyViolationError
from kirana_gateway.domain.models import (
    BillingPolicy,
    InvoiceLine,
    InvoiceState,
    InvoiceStatus,
    PaymentMethod,
    PaymentStatus,
)

SUBSCRIPTION_INVOICE_PREFIX = "SUB"

# Manual status changes. PAID / PARTIALLY_PAID are reached through payments.
INVOICE_TRANSITIONS: Dict[InvoiceStatus, Set[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: {InvoiceStatus.SENT, InvoiceStatus.CANCELLED},
    InvoiceStatus.SENT: {InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED},
    InvoiceStatus.PARTIALLY_PAID: {InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED},
    InvoiceStatus.OVERDUE: {InvoiceStatus.CANCELLED},
    InvoiceStatus.PAID: set(),
    InvoiceStatus.CANCELLED: set(),
}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, Set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}

OVERDUE_ELIGIBLE = (InvoiceStatus.SENT, InvoiceStatus.PARTIALLY_PAID)

_ONLINE_METHODS = {PaymentMethod.UPI, PaymentMethod.CARD, PaymentMethod.NETBANKING, PaymentMethod.QR}


def generate_invoice_number(prefix: str, now: datetime, existing_this_month: int) -> str:
    """
    Sequential per-shop, per-month invoice number.

    Example:
        ("INV", 2024-03-15, 41) → "INV-202403-0042"
    """
    return f"{prefix}-{now.year}{now.month:02d}-{existing_this_month + 1:04d}"


def month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def price_invoice(lines: Iterable[InvoiceLine], tax_rate: float) -> Tuple[int, int, int]:
    """Return (subtotal, tax, total) in paise; tax rounded to whole paise"""
    subtotal = sum(line.total_paise for line in lines)
    tax = round(subtotal * tax_rate / 100)
    return subtotal, tax, subtotal + tax


def ensure_invoice_transition(current: Union[str, InvoiceStatus], target: Union[str, InvoiceStatus]) -> None:
    current, target = InvoiceStatus(current), InvoiceStatus(target)
    if target not in INVOICE_TRANSITIONS[current]:
        raise InvalidTransitionError(f"Cannot move invoice from {current.value} to {target.value}")


def ensure_payment_transition(current: Union[str, PaymentStatus], target: Union[str, PaymentStatus]) -> None:
    current, target = PaymentStatus(current), PaymentStatus(target)
    if target not in PAYMENT_TRANSITIONS[current]:
        raise InvalidTransitionError(f"Cannot move payment from {current.value} to {target.value}")


def apply_payment_to_invoice(invoice: InvoiceState, amount_paise: int) -> InvoiceState:
    """
    Settle a signed amount against an invoice (negative = refund).

    paid += amount, balance = max(0, balance - amount). Status becomes PAID once
    nothing is owed and the total is covered, PARTIALLY_PAID while something is
    paid but a balance remains; otherwise it is unchanged.

    Raises:
        PolicyViolationError: invoice is cancelled
    """
    if invoice.status == InvoiceStatus.CANCELLED:
        raise PolicyViolationError("Cannot record payments against a cancelled invoice")

    paid = invoice.paid_paise + amount_paise
    balance = max(0, invoice.balance_paise - amount_paise)

    status = invoice.status
    if balance == 0 and paid >= invoice.total_paise:
        status = InvoiceStatus.PAID
    elif paid > 0 and balance > 0:
        status = InvoiceStatus.PARTIALLY_PAID
    elif status == InvoiceStatus.PAID and balance > 0:
        status = InvoiceStatus.SENT

    return InvoiceState(
        total_paise=invoice.total_paise,
        paid_paise=paid,
        balance_paise=balance,
        status=status,
    )


def payment_method_accepted(method: Union[str, PaymentMethod], policy: BillingPolicy) -> bool:
    method = PaymentMethod(method)
    if method in _ONLINE_METHODS:
        return policy.accept_online
    if method == PaymentMethod.CASH:
        return policy.accept_cash
    if method == PaymentMethod.CREDIT:
        return policy.accept_credit
    return False


def is_overdue(status: Union[str, InvoiceStatus], due_date: Optional[datetime], now: datetime) -> bool:
    if due_date is None:
        return False
    return InvoiceStatus(status) in OVERDUE_ELIGIBLE and due_date < now
