"""/v1/customers - shop customers and the order totals credit scoring reads"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from kirana_gateway.api.dependencies import get_now, get_request_id, get_shop_id
from kirana_gateway.api.v1.schemas import (
    CustomerCreate,
    CustomerListResponse,
    CustomerSchema,
    OrderCreate,
    OrderListResponse,
    OrderRecordResponse,
    OrderSchema,
)
from kirana_gateway.api.v1.workflows import refresh_credit_score
from kirana_gateway.domain.exceptions import DuplicateError, ValidationError
from kirana_gateway.infrastructure.database.repositories import CreditAccountRepository, CustomerRepository
from kirana_gateway.infrastructure.database.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/customers", response_model=CustomerSchema, status_code=201)
def create_customer(
    body: CustomerCreate,
    request: Request,
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    """Register a customer; a mobile number identifies at most one customer per shop"""
    customers = CustomerRepository(db)
    if body.mobile and customers.find_by_mobile(shop_id, body.mobile):
        raise DuplicateError("Customer with this mobile number already exists")

    customer = customers.create(shop_id, body.name, body.mobile, body.address)
    db.commit()

    logger.info(
        "Customer created",
        extra={"request_id": get_request_id(request), "shop_id": shop_id, "customer_id": customer.id},
    )
    return CustomerSchema.model_validate(customer)


@router.get("/customers", response_model=CustomerListResponse)
def list_customers(
    mobile: Optional[str] = None,
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    customers = CustomerRepository(db).list(shop_id, mobile)
    return CustomerListResponse(customers=[CustomerSchema.model_validate(c) for c in customers])


@router.get("/customers/{customer_id}", response_model=CustomerSchema)
def get_customer(
    customer_id: str,
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    return CustomerSchema.model_validate(CustomerRepository(db).get_for_shop(shop_id, customer_id))


@router.post("/customers/{customer_id}/orders", response_model=OrderRecordResponse, status_code=201)
def record_order(
    customer_id: str,
    body: OrderCreate,
    request: Request,
    shop_id: str = Depends(get_shop_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    """
    Record a placed order.

    Flow:
    1. Append the order and add it to the customer's order count and spend
    2. Re-score the customer's khata, if they have one
    """
    customers = CustomerRepository(db)
    customer = customers.get_for_shop(shop_id, customer_id)

    placed_at = body.placed_at or now
    if placed_at > now:
        raise ValidationError("Order cannot be placed in the future")

    order = customers.record_order(customer, body.total_paise, placed_at)

    score = None
    accounts = CreditAccountRepository(db)
    account = accounts.find_for_customer(shop_id, customer.id, active_only=True)
    if account is not None:
        score = refresh_credit_score(db, account, now)
        accounts.save(account)
    db.commit()

    logger.info(
        "Order recorded",
        extra={
            "request_id": get_request_id(request),
            "shop_id": shop_id,
            "customer_id": customer.id,
            "order_id": order.id,
            "total_paise": order.total_paise,
        },
    )
    return OrderRecordResponse(
        order=OrderSchema.model_validate(order),
        customer=CustomerSchema.model_validate(customer),
        credit_score=score,
    )


@router.get("/customers/{customer_id}/orders", response_model=OrderListResponse)
def list_orders(
    customer_id: str,
    limit: int = Query(50, ge=1, le=500),
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    customers = CustomerRepository(db)
    orders = customers.list_orders(customers.get_for_shop(shop_id, customer_id), limit)
    return OrderListResponse(orders=[OrderSchema.model_validate(o) for o in orders])
