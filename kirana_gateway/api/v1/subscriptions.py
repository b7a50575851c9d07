"""/v1/subscriptions - recurring delivery subscriptions and their lifecycle"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from kirana_gateway.api.dependencies import get_now, get_request_id, get_shop_id
from kirana_gateway.api.v1.schemas import (
    DeliverySchema,
    PauseRequest,
    SubscriptionActionResponse,
    SubscriptionCreate,
    SubscriptionDetail,
    SubscriptionListResponse,
    SubscriptionSchema,
    SubscriptionUpdate,
)
from kirana_gateway.api.v1.workflows import materialize_next_delivery
from kirana_gateway.domain.exceptions import DuplicateError, PolicyViolationError, ValidationError
from kirana_gateway.domain.models import Frequency
from kirana_gateway.domain.scheduling import parse_delivery_days
from kirana_gateway.infrastructure.database.models import Subscription
from kirana_gateway.infrastructure.database.repositories import (
    CustomerRepository,
    DeliveryRepository,
    SettingsRepository,
    SubscriptionRepository,
)
from kirana_gateway.infrastructure.database.session import get_db
from kirana_gateway.utils.date_utils import WEEKDAY_NAMES

logger = logging.getLogger(__name__)

router = APIRouter()

SCHEDULE_FIELDS = {"frequency", "delivery_time", "delivery_days", "end_date"}
NULLABLE_FIELDS = {"delivery_days", "end_date", "notes"}


def _normalize_days(frequency: str, delivery_days: Optional[str]) -> Optional[str]:
    """Canonical "monday, thursday" mask for custom schedules; other frequencies keep input as-is"""
    if frequency != Frequency.CUSTOM.value:
        return delivery_days
    days = parse_delivery_days(delivery_days)
    return ", ".join(day for day in WEEKDAY_NAMES if day in days)


def _detail(db: Session, subscription: Subscription) -> SubscriptionDetail:
    recent = DeliveryRepository(db).recent_for_subscription(subscription.id, limit=10)
    return SubscriptionDetail(
        **SubscriptionSchema.model_validate(subscription).model_dump(),
        deliveries=[DeliverySchema.model_validate(d) for d in recent],
    )


def _ensure_active(subscription: Subscription) -> None:
    if not subscription.is_active:
        raise PolicyViolationError("Subscription is cancelled")


@router.post("/subscriptions", response_model=SubscriptionDetail, status_code=201)
def create_subscription(
    body: SubscriptionCreate,
    request: Request,
    shop_id: str = Depends(get_shop_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    """
    Create a subscription and materialise its first delivery.

    Flow:
    1. Verify the customer belongs to the shop
    2. Reject a second subscription for the same customer + product
    3. Compute next delivery from start date
    4. Persist subscription + first SCHEDULED delivery
    """
    CustomerRepository(db).get_for_shop(shop_id, body.customer_id)

    subscriptions = SubscriptionRepository(db)
    if subscriptions.find_by_triple(shop_id, body.customer_id, body.product_id):
        raise DuplicateError("Subscription already exists for this customer and product")

    if body.end_date is not None and body.end_date <= body.start_date:
        raise ValidationError("End date must be after start date")

    subscription = subscriptions.create(
        shop_id=shop_id,
        customer_id=body.customer_id,
        product_id=body.product_id,
        quantity=body.quantity,
        unit=body.unit,
        price_per_unit_paise=body.price_per_unit_paise,
        frequency=body.frequency.value,
        delivery_time=body.delivery_time,
        delivery_days=_normalize_days(body.frequency.value, body.delivery_days),
        is_active=True,
        paused=False,
        start_date=body.start_date,
        end_date=body.end_date,
        auto_charge=body.auto_charge,
        notes=body.notes,
    )

    # The first delivery is materialised even beyond the rolling horizon
    first = materialize_next_delivery(db, subscription, reference=body.start_date, now=now)
    if first is None and subscription.next_delivery is not None:
        DeliveryRepository(db).create_scheduled(subscription, subscription.next_delivery)

    subscriptions.save(subscription)
    db.commit()

    logger.info(
        "Subscription created",
        extra={
            "request_id": get_request_id(request),
            "shop_id": shop_id,
            "subscription_id": subscription.id,
            "frequency": subscription.frequency,
            "next_delivery": subscription.next_delivery.isoformat() if subscription.next_delivery else None,
        },
    )
    return _detail(db, subscription)


@router.get("/subscriptions", response_model=SubscriptionListResponse)
def list_subscriptions(
    customer_id: Optional[str] = None,
    product_id: Optional[str] = None,
    is_active: Optional[bool] = None,
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    subscriptions = SubscriptionRepository(db).list(shop_id, customer_id, product_id, is_active)
    return SubscriptionListResponse(subscriptions=[_detail(db, s) for s in subscriptions])


@router.get("/subscriptions/{subscription_id}", response_model=SubscriptionDetail)
def get_subscription(
    subscription_id: str,
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    return _detail(db, SubscriptionRepository(db).get_for_shop(shop_id, subscription_id))


@router.patch("/subscriptions/{subscription_id}", response_model=SubscriptionDetail)
def update_subscription(
    subscription_id: str,
    body: SubscriptionUpdate,
    shop_id: str = Depends(get_shop_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    """
    Partial update. Changing frequency, time, days or end date re-plans the
    schedule: future SCHEDULED deliveries are replaced by the recomputed next one.
    """
    subscriptions = SubscriptionRepository(db)
    subscription = subscriptions.get_for_shop(shop_id, subscription_id)

    changes = {
        k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None or k in NULLABLE_FIELDS
    }
    if "frequency" in changes:
        changes["frequency"] = changes["frequency"].value

    for field_name, value in changes.items():
        setattr(subscription, field_name, value)

    if changes.get("end_date") is not None and subscription.end_date <= subscription.start_date:
        raise ValidationError("End date must be after start date")

    subscription.delivery_days = _normalize_days(subscription.frequency, subscription.delivery_days)

    if SCHEDULE_FIELDS & changes.keys() and subscription.is_active and not subscription.paused:
        DeliveryRepository(db).delete_scheduled(subscription.id, since=now)
        materialize_next_delivery(db, subscription, reference=subscription.start_date, now=now)

    subscriptions.save(subscription)
    db.commit()
    return _detail(db, subscription)


@router.delete("/subscriptions/{subscription_id}", status_code=204)
def delete_subscription(
    subscription_id: str,
    request: Request,
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    """Hard delete, removing the whole delivery history with it"""
    subscriptions = SubscriptionRepository(db)
    subscriptions.delete(subscriptions.get_for_shop(shop_id, subscription_id))
    db.commit()

    logger.info(
        "Subscription deleted",
        extra={"request_id": get_request_id(request), "shop_id": shop_id, "subscription_id": subscription_id},
    )


@router.post("/subscriptions/{subscription_id}/pause", response_model=SubscriptionActionResponse)
def pause_subscription(
    subscription_id: str,
    request: Request,
    body: Optional[PauseRequest] = None,
    shop_id: str = Depends(get_shop_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    """Stop deliveries: drops upcoming SCHEDULED deliveries and clears next delivery"""
    subscriptions = SubscriptionRepository(db)
    subscription = subscriptions.get_for_shop(shop_id, subscription_id)
    _ensure_active(subscription)

    if not SettingsRepository(db).subscription_policy(shop_id).allow_pause:
        raise PolicyViolationError("Pausing subscriptions is not allowed for this shop")

    removed = DeliveryRepository(db).delete_scheduled(subscription.id, since=now)
    subscription.paused = True
    subscription.pause_reason = body.reason if body else None
    subscription.next_delivery = None

    subscriptions.save(subscription)
    db.commit()

    logger.info(
        "Subscription paused",
        extra={
            "request_id": get_request_id(request),
            "shop_id": shop_id,
            "subscription_id": subscription.id,
            "deliveries_removed": removed,
        },
    )
    return SubscriptionActionResponse(
        message="Subscription paused successfully",
        subscription=SubscriptionSchema.model_validate(subscription),
        deliveries_removed=removed,
    )


@router.post("/subscriptions/{subscription_id}/resume", response_model=SubscriptionActionResponse)
def resume_subscription(
    subscription_id: str,
    request: Request,
    shop_id: str = Depends(get_shop_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    """Restart deliveries from now"""
    subscriptions = SubscriptionRepository(db)
    subscription = subscriptions.get_for_shop(shop_id, subscription_id)
    _ensure_active(subscription)

    if not subscription.paused:
        raise PolicyViolationError("Subscription is not paused")

    subscription.paused = False
    subscription.pause_reason = None
    scheduled = materialize_next_delivery(db, subscription, reference=now, now=now)

    subscriptions.save(subscription)
    db.commit()

    logger.info(
        "Subscription resumed",
        extra={
            "request_id": get_request_id(request),
            "shop_id": shop_id,
            "subscription_id": subscription.id,
            "next_delivery": subscription.next_delivery.isoformat() if subscription.next_delivery else None,
        },
    )
    return SubscriptionActionResponse(
        message="Subscription resumed successfully",
        subscription=SubscriptionSchema.model_validate(subscription),
        scheduled_delivery=DeliverySchema.model_validate(scheduled) if scheduled else None,
    )


@router.post("/subscriptions/{subscription_id}/cancel", response_model=SubscriptionActionResponse)
def cancel_subscription(
    subscription_id: str,
    request: Request,
    shop_id: str = Depends(get_shop_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    """End the subscription; delivered/skipped/failed history is kept"""
    subscriptions = SubscriptionRepository(db)
    subscription = subscriptions.get_for_shop(shop_id, subscription_id)

    if not subscription.is_active:
        raise PolicyViolationError("Subscription is already cancelled")
    if not SettingsRepository(db).subscription_policy(shop_id).allow_cancel:
        raise PolicyViolationError("Cancelling subscriptions is not allowed for this shop")

    removed = DeliveryRepository(db).delete_scheduled(subscription.id)
    subscription.is_active = False
    subscription.paused = False
    subscription.end_date = now
    subscription.next_delivery = None

    subscriptions.save(subscription)
    db.commit()

    logger.info(
        "Subscription cancelled",
        extra={
            "request_id": get_request_id(request),
            "shop_id": shop_id,
            "subscription_id": subscription.id,
            "deliveries_removed": removed,
        },
    )
    return SubscriptionActionResponse(
        message="Subscription cancelled successfully",
        subscription=SubscriptionSchema.model_validate(subscription),
        deliveries_removed=removed,
    )
