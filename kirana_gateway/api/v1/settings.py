"""/v1/settings - per-shop subscription, credit and billing policy"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kirana_gateway.api.dependencies import get_shop_id
from kirana_gateway.api.v1.schemas import (
    BillingSettingsSchema,
    BillingSettingsUpdate,
    CreditSettingsSchema,
    CreditSettingsUpdate,
    SubscriptionSettingsSchema,
    SubscriptionSettingsUpdate,
)
from kirana_gateway.infrastructure.database.repositories import SettingsRepository
from kirana_gateway.infrastructure.database.session import get_db

router = APIRouter()


def _changes(body) -> dict:
    changes = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    if "default_frequency" in changes:
        changes["default_frequency"] = changes["default_frequency"].value
    return changes


@router.get("/settings/subscription", response_model=SubscriptionSettingsSchema)
def get_subscription_settings(shop_id: str = Depends(get_shop_id), db: Session = Depends(get_db)):
    row = SettingsRepository(db).subscription_settings(shop_id)
    db.commit()
    return SubscriptionSettingsSchema.model_validate(row)


@router.put("/settings/subscription", response_model=SubscriptionSettingsSchema)
def update_subscription_settings(
    body: SubscriptionSettingsUpdate,
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    repo = SettingsRepository(db)
    row = repo.update(repo.subscription_settings(shop_id), _changes(body))
    db.commit()
    return SubscriptionSettingsSchema.model_validate(row)


@router.get("/settings/credit", response_model=CreditSettingsSchema)
def get_credit_settings(shop_id: str = Depends(get_shop_id), db: Session = Depends(get_db)):
    row = SettingsRepository(db).credit_settings(shop_id)
    db.commit()
    return CreditSettingsSchema.model_validate(row)


@router.put("/settings/credit", response_model=CreditSettingsSchema)
def update_credit_settings(
    body: CreditSettingsUpdate,
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    repo = SettingsRepository(db)
    row = repo.update(repo.credit_settings(shop_id), _changes(body))
    db.commit()
    return CreditSettingsSchema.model_validate(row)


@router.get("/settings/billing", response_model=BillingSettingsSchema)
def get_billing_settings(shop_id: str = Depends(get_shop_id), db: Session = Depends(get_db)):
    row = SettingsRepository(db).billing_settings(shop_id)
    db.commit()
    return BillingSettingsSchema.model_validate(row)


@router.put("/settings/billing", response_model=BillingSettingsSchema)
def update_billing_settings(
    body: BillingSettingsUpdate,
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    repo = SettingsRepository(db)
    row = repo.update(repo.billing_settings(shop_id), _changes(body))
    db.commit()
    return BillingSettingsSchema.model_validate(row)
