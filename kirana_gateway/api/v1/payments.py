"""/v1/payments - payments against invoices and customer khata"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from kirana_gateway.api.dependencies import get_now, get_request_id, get_shop_id, get_whatsapp_client
from kirana_gateway.api.v1.schemas import (
    InvoiceSchema,
    PaymentCreate,
    PaymentListResponse,
    PaymentResponse,
    PaymentSchema,
    PaymentUpdate,
)
from kirana_gateway.api.v1.workflows import credit_payment_effect, settle_invoice
from kirana_gateway.domain.exceptions import PolicyViolationError, ValidationError
from kirana_gateway.domain.invoicing import ensure_payment_transition, payment_method_accepted
from kirana_gateway.domain.models import PaymentMethod, PaymentStatus
from kirana_gateway.infrastructure.clients.whatsapp import WhatsAppClient
from kirana_gateway.infrastructure.database.models import Payment
from kirana_gateway.infrastructure.database.repositories import (
    CustomerRepository,
    InvoiceRepository,
    PaymentRepository,
    SettingsRepository,
)
from kirana_gateway.infrastructure.database.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter()

CREATABLE_STATUSES = (PaymentStatus.PENDING, PaymentStatus.COMPLETED)


def _khata_effect(
    db: Session,
    payment: Payment,
    now: datetime,
    request_id: str,
    background_tasks: BackgroundTasks,
    whatsapp_client: WhatsAppClient,
    refund: bool = False,
) -> List[str]:
    """
    Mirror a completed (or refunded) CREDIT-method payment in the customer's khata.
    Returns warnings for the effects that failed.
    """
    if payment.method != PaymentMethod.CREDIT.value or not payment.customer_id:
        return []

    reference = payment.invoice.invoice_number if payment.invoice else payment.reference
    result = credit_payment_effect(
        db,
        payment.shop_id,
        payment.customer_id,
        payment.amount_paise,
        now,
        request_id,
        reference=reference,
        refund=refund,
    )
    if not result.ok:
        return [result.error]

    customer = payment.customer
    if customer.mobile and not refund:
        background_tasks.add_task(
            whatsapp_client.send_payment_receipt,
            customer.mobile,
            customer.name,
            payment.amount_paise,
            result.value.balance_paise,
        )
    return []


def _response(payment: Payment, warnings: Optional[List[str]] = None) -> PaymentResponse:
    return PaymentResponse(
        payment=PaymentSchema.model_validate(payment),
        invoice=InvoiceSchema.model_validate(payment.invoice) if payment.invoice else None,
        warnings=warnings or [],
    )


@router.post("/payments", response_model=PaymentResponse, status_code=201)
def create_payment(
    body: PaymentCreate,
    background_tasks: BackgroundTasks,
    request: Request,
    shop_id: str = Depends(get_shop_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
    whatsapp_client: WhatsAppClient = Depends(get_whatsapp_client),
):
    """
    Record a payment.

    Flow:
    1. Check the method is accepted by the shop
    2. Persist the payment; if COMPLETED, settle it against the invoice, commit
    3. CREDIT-method payments also post a PAYMENT to the customer's khata (best-effort)
    """
    request_id = get_request_id(request)

    if not payment_method_accepted(body.method, SettingsRepository(db).billing_policy(shop_id)):
        raise PolicyViolationError(f"Payment method {body.method.value} is not accepted by this shop")
    if body.status not in CREATABLE_STATUSES:
        raise ValidationError("Payments can only be created as PENDING or COMPLETED")

    invoice = None
    customer_id = body.customer_id
    if body.invoice_id:
        invoice = InvoiceRepository(db).get_for_shop(shop_id, body.invoice_id)
        customer_id = customer_id or invoice.customer_id
    if customer_id:
        CustomerRepository(db).get_for_shop(shop_id, customer_id)
    if body.method == PaymentMethod.CREDIT and not customer_id:
        raise ValidationError("Credit payments require a customer")

    payment = PaymentRepository(db).create(
        shop_id=shop_id,
        invoice_id=invoice.id if invoice else None,
        customer_id=customer_id,
        amount_paise=body.amount_paise,
        method=body.method.value,
        status=body.status.value,
        transaction_ref=body.transaction_ref,
        reference=body.reference,
        notes=body.notes,
        created_at=now,
    )
    if body.status == PaymentStatus.COMPLETED and invoice is not None:
        settle_invoice(db, invoice, body.amount_paise)
    db.commit()

    logger.info(
        "Payment recorded",
        extra={
            "request_id": request_id,
            "shop_id": shop_id,
            "payment_id": payment.id,
            "method": payment.method,
            "status": payment.status,
            "amount_paise": payment.amount_paise,
        },
    )

    warnings = []
    if body.status == PaymentStatus.COMPLETED:
        warnings = _khata_effect(db, payment, now, request_id, background_tasks, whatsapp_client)
    return _response(payment, warnings)


@router.get("/payments", response_model=PaymentListResponse)
def list_payments(
    invoice_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    status: Optional[PaymentStatus] = None,
    method: Optional[PaymentMethod] = None,
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    payments = PaymentRepository(db).list(
        shop_id,
        invoice_id=invoice_id,
        customer_id=customer_id,
        status=status.value if status else None,
        method=method.value if method else None,
    )
    return PaymentListResponse(payments=[PaymentSchema.model_validate(p) for p in payments])


@router.patch("/payments/{payment_id}", response_model=PaymentResponse)
def update_payment(
    payment_id: str,
    body: PaymentUpdate,
    background_tasks: BackgroundTasks,
    request: Request,
    shop_id: str = Depends(get_shop_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
    whatsapp_client: WhatsAppClient = Depends(get_whatsapp_client),
):
    """
    Update a payment. COMPLETED settles the amount against the invoice,
    REFUNDED reverses it, and for CREDIT-method payments also in the khata.
    """
    payment = PaymentRepository(db).get_for_shop(shop_id, payment_id)
    changes = body.model_dump(exclude_unset=True)

    target = changes.pop("status", None)
    completed = refunded = False
    if target is not None and target.value != payment.status:
        ensure_payment_transition(payment.status, target)
        payment.status = target.value
        completed = target == PaymentStatus.COMPLETED
        refunded = target == PaymentStatus.REFUNDED

        if payment.invoice is not None:
            if target == PaymentStatus.COMPLETED:
                settle_invoice(db, payment.invoice, payment.amount_paise)
            elif target == PaymentStatus.REFUNDED:
                settle_invoice(db, payment.invoice, -payment.amount_paise)

    for field_name, value in changes.items():
        setattr(payment, field_name, value)

    db.commit()

    warnings = []
    if completed or refunded:
        warnings = _khata_effect(
            db, payment, now, get_request_id(request), background_tasks, whatsapp_client, refund=refunded
        )
    return _response(payment, warnings)
