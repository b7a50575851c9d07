"""/v1/invoices - invoice creation, status changes and overdue sweep"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from kirana_gateway.api.dependencies import get_now, get_request_id, get_shop_id, get_whatsapp_client
from kirana_gateway.api.v1.schemas import (
    InvoiceCreate,
    InvoiceListResponse,
    InvoiceSchema,
    InvoiceUpdate,
    OverdueResponse,
)
from kirana_gateway.api.v1.workflows import create_invoice
from kirana_gateway.domain.exceptions import ValidationError
from kirana_gateway.domain.invoicing import ensure_invoice_transition
from kirana_gateway.domain.models import InvoiceLine, InvoiceStatus
from kirana_gateway.infrastructure.clients.whatsapp import WhatsAppClient
from kirana_gateway.infrastructure.database.models import Invoice
from kirana_gateway.infrastructure.database.repositories import (
    CustomerRepository,
    InvoiceRepository,
    SettingsRepository,
)
from kirana_gateway.infrastructure.database.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter()

CREATABLE_STATUSES = (InvoiceStatus.DRAFT, InvoiceStatus.SENT)


def _notify_sent(background_tasks: BackgroundTasks, whatsapp_client: WhatsAppClient, invoice: Invoice) -> None:
    customer = invoice.customer
    if customer is None or not customer.mobile:
        return
    background_tasks.add_task(
        whatsapp_client.send_invoice_notice,
        customer.mobile,
        customer.name,
        invoice.invoice_number,
        invoice.total_paise,
        invoice.due_date.strftime("%d %b %Y") if invoice.due_date else "receipt",
    )


@router.post("/invoices", response_model=InvoiceSchema, status_code=201)
def create_manual_invoice(
    body: InvoiceCreate,
    background_tasks: BackgroundTasks,
    request: Request,
    shop_id: str = Depends(get_shop_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
    whatsapp_client: WhatsAppClient = Depends(get_whatsapp_client),
):
    """
    Create an invoice priced with the shop's tax rate and numbered
    {PREFIX}-{YYYYMM}-{seq}. Lines without a total are priced as unit price x quantity.
    """
    if body.status not in CREATABLE_STATUSES:
        raise ValidationError("Invoices can only be created as DRAFT or SENT")
    if body.customer_id:
        CustomerRepository(db).get_for_shop(shop_id, body.customer_id)

    policy = SettingsRepository(db).billing_policy(shop_id)
    lines = [
        InvoiceLine.priced(line.product_id, line.name, line.quantity, line.unit_price_paise, line.unit)
        if line.total_paise is None
        else InvoiceLine(
            product_id=line.product_id,
            name=line.name,
            quantity=line.quantity,
            unit_price_paise=line.unit_price_paise,
            total_paise=line.total_paise,
            unit=line.unit,
        )
        for line in body.lines
    ]

    invoice = create_invoice(
        db,
        shop_id=shop_id,
        lines=lines,
        now=now,
        status=body.status,
        due_date=body.due_date or now + timedelta(days=policy.due_days),
        customer_id=body.customer_id,
        reference=body.reference,
        notes=body.notes,
    )
    db.commit()

    if invoice.status == InvoiceStatus.SENT.value:
        _notify_sent(background_tasks, whatsapp_client, invoice)

    logger.info(
        "Invoice created",
        extra={
            "request_id": get_request_id(request),
            "shop_id": shop_id,
            "invoice_id": invoice.id,
            "invoice_number": invoice.invoice_number,
            "total_paise": invoice.total_paise,
        },
    )
    return InvoiceSchema.model_validate(invoice)


@router.get("/invoices", response_model=InvoiceListResponse)
def list_invoices(
    status: Optional[InvoiceStatus] = None,
    customer_id: Optional[str] = None,
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    invoices = InvoiceRepository(db).list(shop_id, status.value if status else None, customer_id)
    return InvoiceListResponse(invoices=[InvoiceSchema.model_validate(i) for i in invoices])


@router.post("/invoices/mark-overdue", response_model=OverdueResponse)
def mark_overdue_invoices(
    request: Request,
    shop_id: str = Depends(get_shop_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    """Move every SENT / PARTIALLY_PAID invoice past its due date to OVERDUE"""
    invoices = InvoiceRepository(db).overdue_candidates(shop_id, now)
    for invoice in invoices:
        ensure_invoice_transition(invoice.status, InvoiceStatus.OVERDUE)
        invoice.status = InvoiceStatus.OVERDUE.value
    db.commit()

    if invoices:
        logger.info(
            "Invoices marked overdue",
            extra={"request_id": get_request_id(request), "shop_id": shop_id, "count": len(invoices)},
        )
    return OverdueResponse(marked_overdue=[i.id for i in invoices])


@router.get("/invoices/{invoice_id}", response_model=InvoiceSchema)
def get_invoice(
    invoice_id: str,
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    return InvoiceSchema.model_validate(InvoiceRepository(db).get_for_shop(shop_id, invoice_id))


@router.patch("/invoices/{invoice_id}", response_model=InvoiceSchema)
def update_invoice(
    invoice_id: str,
    body: InvoiceUpdate,
    background_tasks: BackgroundTasks,
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
    whatsapp_client: WhatsAppClient = Depends(get_whatsapp_client),
):
    """Manual status change (validated), due date and notes"""
    invoice = InvoiceRepository(db).get_for_shop(shop_id, invoice_id)
    changes = body.model_dump(exclude_unset=True)

    target = changes.pop("status", None)
    sent = False
    if target is not None and target.value != invoice.status:
        ensure_invoice_transition(invoice.status, target)
        invoice.status = target.value
        sent = target == InvoiceStatus.SENT

    for field_name, value in changes.items():
        setattr(invoice, field_name, value)

    db.commit()

    if sent:
        _notify_sent(background_tasks, whatsapp_client, invoice)
    return InvoiceSchema.model_validate(invoice)
