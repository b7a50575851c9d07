"""/v1/deliveries - delivery schedule rows and delivery completion"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from kirana_gateway.api.dependencies import get_now, get_request_id, get_shop_id, get_whatsapp_client
from kirana_gateway.api.v1.schemas import (
    DeliveryCreate,
    DeliveryListResponse,
    DeliverySchema,
    DeliveryUpdate,
    DeliveryUpdateResponse,
)
from kirana_gateway.config import settings
from kirana_gateway.api.v1.workflows import generate_subscription_invoice, materialize_next_delivery
from kirana_gateway.domain.exceptions import PolicyViolationError
from kirana_gateway.domain.models import DeliveryStatus
from kirana_gateway.domain.scheduling import ensure_delivery_transition
from kirana_gateway.infrastructure.clients.whatsapp import WhatsAppClient
from kirana_gateway.infrastructure.database.repositories import DeliveryRepository, SubscriptionRepository
from kirana_gateway.infrastructure.database.session import get_db
from kirana_gateway.infrastructure.observability.logging import log_delivery_completed
from kirana_gateway.infrastructure.observability.metrics import delivery_status_counter
from kirana_gateway.utils.date_utils import to_shop_local

router = APIRouter()


@router.get("/deliveries", response_model=DeliveryListResponse)
def list_deliveries(
    subscription_id: Optional[str] = None,
    status: Optional[DeliveryStatus] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=500),
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    deliveries = DeliveryRepository(db).list(
        shop_id,
        subscription_id=subscription_id,
        status=status.value if status else None,
        date_from=to_shop_local(date_from, settings.timezone) if date_from else None,
        date_to=to_shop_local(date_to, settings.timezone) if date_to else None,
        limit=limit,
    )
    return DeliveryListResponse(deliveries=[DeliverySchema.model_validate(d) for d in deliveries])


@router.post("/deliveries", response_model=DeliverySchema, status_code=201)
def create_delivery(
    body: DeliveryCreate,
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    """Add a one-off SCHEDULED delivery to an active subscription"""
    subscription = SubscriptionRepository(db).get_for_shop(shop_id, body.subscription_id)
    if not subscription.is_active:
        raise PolicyViolationError("Cannot schedule deliveries for a cancelled subscription")

    delivery = DeliveryRepository(db).create_scheduled(
        subscription,
        body.delivery_date,
        quantity=body.quantity,
        notes=body.notes,
    )
    db.commit()
    return DeliverySchema.model_validate(delivery)


@router.patch("/deliveries/{delivery_id}", response_model=DeliveryUpdateResponse)
def update_delivery(
    delivery_id: str,
    body: DeliveryUpdate,
    background_tasks: BackgroundTasks,
    request: Request,
    shop_id: str = Depends(get_shop_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
    whatsapp_client: WhatsAppClient = Depends(get_whatsapp_client),
):
    """
    Edit a delivery; moving it to DELIVERED completes it.

    Flow on completion:
    1. Record the completion and roll the schedule forward from now, commit
    2. Generate the auto-charge invoice (best-effort, reported in `warnings`)
    3. Send the WhatsApp delivery notice in the background
    """
    request_id = get_request_id(request)
    deliveries = DeliveryRepository(db)
    delivery = deliveries.get_for_shop(shop_id, delivery_id)
    subscription = delivery.subscription

    changes = body.model_dump(exclude_unset=True)
    target = changes.pop("status", None)
    if changes.get("quantity") is None:
        changes.pop("quantity", None)

    for field_name, value in changes.items():
        setattr(delivery, field_name, value)

    completed = False
    status_changed = target is not None and target.value != delivery.status
    if status_changed:
        ensure_delivery_transition(delivery.status, target)
        if target == DeliveryStatus.DELIVERED:
            if not subscription.is_active:
                raise PolicyViolationError("Cannot complete a delivery for a cancelled subscription")
            delivery.delivered_at = now
            completed = True
        delivery.status = target.value

    next_delivery = None
    if completed and not subscription.paused:
        next_delivery = materialize_next_delivery(
            db, subscription, reference=now, now=now, after=delivery.delivery_date
        )
        SubscriptionRepository(db).save(subscription)

    db.commit()

    if status_changed:
        delivery_status_counter.labels(status=target.value).inc()

    response = DeliveryUpdateResponse(
        delivery=DeliverySchema.model_validate(delivery),
        next_delivery=DeliverySchema.model_validate(next_delivery) if next_delivery else None,
    )
    if not completed:
        return response

    if subscription.auto_charge:
        result = generate_subscription_invoice(db, subscription, delivery, now, request_id)
        if result.ok:
            response.invoice_id = result.value.id
        else:
            response.warnings.append(result.error)

    customer = subscription.customer
    if customer.mobile:
        background_tasks.add_task(
            whatsapp_client.send_delivery_update,
            customer.mobile,
            customer.name,
            delivery.actual_quantity if delivery.actual_quantity is not None else delivery.quantity,
            subscription.unit,
        )

    log_delivery_completed(
        request_id,
        shop_id,
        delivery.id,
        subscription.id,
        next_delivery.id if next_delivery else None,
        response.invoice_id,
    )
    return response
