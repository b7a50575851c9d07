"""Unit tests for invoice numbering, pricing and settlement"""

import pytest
from datetime import datetime, timedelta
from kirana_gateway.domain.exceptions import InvalidTransitionError, PolicyViolationError
from kirana_gateway.domain.invoicing import (
    apply_payment_to_invoice,
    ensure_invoice_transition,
    ensure_payment_transition,
    generate_invoice_number,
    is_overdue,
    month_start,
    payment_method_accepted,
    price_invoice,
)
from kirana_gateway.domain.models import (
    BillingPolicy,
    InvoiceLine,
    InvoiceState,
    InvoiceStatus,
    PaymentMethod,
    PaymentStatus,
)


def _invoice(total=10_000, paid=0, status=InvoiceStatus.SENT) -> InvoiceState:
    return InvoiceState(total_paise=total, paid_paise=paid, balance_paise=total - paid, status=status)


def test_invoice_number_is_sequential_per_month():
    now = datetime(2024, 3, 15, 10, 0)
    assert generate_invoice_number("INV", now, 0) == "INV-202403-0001"
    assert generate_invoice_number("SUB", now, 41) == "SUB-202403-0042"


def test_month_start():
    assert month_start(datetime(2024, 3, 15, 10, 30, 5)) == datetime(2024, 3, 1)


def test_price_invoice_rounds_tax_to_whole_paise():
    lines = [
        InvoiceLine.priced("p1", "Milk", 2, 3_250, unit="litre"),
        InvoiceLine.priced("p2", "Bread", 1, 4_001),
    ]
    subtotal, tax, total = price_invoice(lines, tax_rate=5)

    assert subtotal == 10_501
    assert tax == 525
    assert total == 11_026


def test_priced_line_rounds_fractional_quantity():
    assert InvoiceLine.priced("p1", "Rice", 1.5, 5_999).total_paise == 8_998


def test_partial_payment_then_full_payment():
    state = apply_payment_to_invoice(_invoice(), 4_000)
    assert (state.paid_paise, state.balance_paise, state.status) == (4_000, 6_000, InvoiceStatus.PARTIALLY_PAID)

    state = apply_payment_to_invoice(state, 6_000)
    assert (state.paid_paise, state.balance_paise, state.status) == (10_000, 0, InvoiceStatus.PAID)


def test_overpayment_clamps_balance_at_zero():
    state = apply_payment_to_invoice(_invoice(), 12_000)
    assert state.balance_paise == 0
    assert state.paid_paise == 12_000
    assert state.status == InvoiceStatus.PAID


def test_refund_reopens_paid_invoice():
    paid = apply_payment_to_invoice(_invoice(), 10_000)
    state = apply_payment_to_invoice(paid, -10_000)
    assert state.paid_paise == 0
    assert state.balance_paise == 10_000
    assert state.status == InvoiceStatus.SENT


def test_partial_refund_leaves_partially_paid():
    paid = apply_payment_to_invoice(_invoice(), 10_000)
    state = apply_payment_to_invoice(paid, -3_000)
    assert state.status == InvoiceStatus.PARTIALLY_PAID
    assert state.balance_paise == 3_000


def test_overdue_invoice_can_be_paid_off():
    state = apply_payment_to_invoice(_invoice(status=InvoiceStatus.OVERDUE), 10_000)
    assert state.status == InvoiceStatus.PAID


def test_cancelled_invoice_rejects_payment():
    with pytest.raises(PolicyViolationError):
        apply_payment_to_invoice(_invoice(status=InvoiceStatus.CANCELLED), 100)


def test_invoice_transitions():
    ensure_invoice_transition(InvoiceStatus.DRAFT, InvoiceStatus.SENT)
    ensure_invoice_transition("SENT", "OVERDUE")
    ensure_invoice_transition(InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED)

    with pytest.raises(InvalidTransitionError):
        ensure_invoice_transition(InvoiceStatus.PAID, InvoiceStatus.CANCELLED)
    with pytest.raises(InvalidTransitionError):
        ensure_invoice_transition(InvoiceStatus.DRAFT, InvoiceStatus.PAID)


def test_payment_transitions():
    ensure_payment_transition(PaymentStatus.PENDING, PaymentStatus.COMPLETED)
    ensure_payment_transition(PaymentStatus.COMPLETED, PaymentStatus.REFUNDED)

    with pytest.raises(InvalidTransitionError):
        ensure_payment_transition(PaymentStatus.FAILED, PaymentStatus.COMPLETED)
    with pytest.raises(InvalidTransitionError):
        ensure_payment_transition(PaymentStatus.PENDING, PaymentStatus.REFUNDED)


def test_payment_method_acceptance_follows_policy():
    policy = BillingPolicy(accept_online=False, accept_cash=True, accept_credit=False)

    assert payment_method_accepted(PaymentMethod.CASH, policy)
    assert not payment_method_accepted(PaymentMethod.UPI, policy)
    assert not payment_method_accepted("QR", policy)
    assert not payment_method_accepted(PaymentMethod.CREDIT, policy)


def test_is_overdue():
    now = datetime(2024, 3, 11, 7, 0)
    past = now - timedelta(days=1)

    assert is_overdue(InvoiceStatus.SENT, past, now)
    assert is_overdue(InvoiceStatus.PARTIALLY_PAID, past, now)
    assert not is_overdue(InvoiceStatus.PAID, past, now)
    assert not is_overdue(InvoiceStatus.SENT, now + timedelta(days=1), now)
    assert not is_overdue(InvoiceStatus.SENT, None, now)
