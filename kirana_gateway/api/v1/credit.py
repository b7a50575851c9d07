"""/v1/credit - customer credit (khata) accounts, ledger transactions and scoring"""

import logging
from dataclasses import asdict
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from kirana_gateway.api.dependencies import get_now, get_request_id, get_shop_id, get_whatsapp_client
from kirana_gateway.api.v1.schemas import (
    CreditAccountCreate,
    CreditAccountListResponse,
    CreditAccountSchema,
    CreditAccountUpdate,
    CreditTransactionCreate,
    CreditTransactionListResponse,
    CreditTransactionResponse,
    CreditTransactionSchema,
    RecommendationSchema,
    ScoredAccount,
    ScoringBreakdownSchema,
    ScoringRequest,
    ScoringResponse,
    ScoringSummary,
    ScoringSummaryResponse,
)
from kirana_gateway.api.v1.workflows import post_credit_transaction, refresh_credit_score
from kirana_gateway.domain.exceptions import CreditLimitExceededError, DuplicateError
from kirana_gateway.domain.ledger import rederive_available_credit
from kirana_gateway.domain.models import TransactionType
from kirana_gateway.domain.scoring import (
    compute_credit_score,
    credit_recommendations,
    risk_level,
    scoring_breakdown,
)
from kirana_gateway.infrastructure.clients.whatsapp import WhatsAppClient
from kirana_gateway.infrastructure.database.models import CreditTransaction
from kirana_gateway.infrastructure.database.repositories import (
    CreditAccountRepository,
    CustomerRepository,
    SettingsRepository,
)
from kirana_gateway.infrastructure.database.session import get_db
from kirana_gateway.infrastructure.observability.metrics import record_credit_score

logger = logging.getLogger(__name__)

router = APIRouter()

HIGH_RISK_THRESHOLD = 60


def _transaction_schema(entry: CreditTransaction) -> CreditTransactionSchema:
    return CreditTransactionSchema(
        id=entry.id,
        account_id=entry.account_id,
        type=entry.type,
        amount_paise=entry.amount_paise,
        balance_paise=entry.balance_paise,
        description=entry.description,
        reference=entry.reference,
        metadata=entry.metadata_,
        created_at=entry.created_at,
    )


@router.post("/credit/accounts", response_model=CreditAccountSchema, status_code=201)
def create_credit_account(
    body: CreditAccountCreate,
    request: Request,
    shop_id: str = Depends(get_shop_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    """
    Open a khata for a customer.

    The limit defaults to the shop's policy, the score is computed from order
    history, and an initial CREDIT entry records the setup for audit.
    """
    customers = CustomerRepository(db)
    accounts = CreditAccountRepository(db)
    customer = customers.get_for_shop(shop_id, body.customer_id)

    if accounts.find_for_customer(shop_id, customer.id):
        raise DuplicateError("Credit account already exists for this customer")

    policy = SettingsRepository(db).credit_policy(shop_id)
    credit_limit = (
        body.credit_limit_paise if body.credit_limit_paise is not None else policy.default_credit_limit_paise
    )
    score = compute_credit_score(customers.history(customer, now), policy)

    account = accounts.create(
        shop_id=shop_id,
        customer_id=customer.id,
        credit_limit_paise=credit_limit,
        credit_score=score,
        due_date=now + timedelta(days=policy.grace_period_days),
    )
    accounts.append_entry(
        account,
        type=TransactionType.CREDIT.value,
        amount_paise=credit_limit,
        balance_paise=0,
        now=now,
        description="Credit account created",
        metadata={"initial_setup": True, "credit_score": score},
    )
    db.commit()

    record_credit_score(score)
    logger.info(
        "Credit account created",
        extra={
            "request_id": get_request_id(request),
            "shop_id": shop_id,
            "account_id": account.id,
            "credit_limit_paise": credit_limit,
            "credit_score": score,
        },
    )
    return CreditAccountSchema.model_validate(account)


@router.get("/credit/accounts", response_model=CreditAccountListResponse)
def list_credit_accounts(
    customer_id: Optional[str] = None,
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    accounts = CreditAccountRepository(db).list(shop_id, customer_id)
    return CreditAccountListResponse(accounts=[CreditAccountSchema.model_validate(a) for a in accounts])


@router.patch("/credit/accounts/{account_id}", response_model=CreditAccountSchema)
def update_credit_account(
    account_id: str,
    body: CreditAccountUpdate,
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    """Change limit, active flag or due date; available credit is re-derived from the new limit"""
    accounts = CreditAccountRepository(db)
    account = accounts.get_for_shop(shop_id, account_id)
    changes = body.model_dump(exclude_unset=True)

    new_limit = changes.pop("credit_limit_paise", None)
    if new_limit is not None:
        if new_limit < account.current_balance_paise:
            raise CreditLimitExceededError("Credit limit cannot be lower than the outstanding balance")
        account.credit_limit_paise = new_limit
        account.available_credit_paise = rederive_available_credit(new_limit, account.current_balance_paise)

    for field_name, value in changes.items():
        if value is not None or field_name == "due_date":
            setattr(account, field_name, value)

    accounts.save(account)
    db.commit()
    return CreditAccountSchema.model_validate(account)


@router.post("/credit/transactions", response_model=CreditTransactionResponse, status_code=201)
def create_credit_transaction(
    body: CreditTransactionCreate,
    background_tasks: BackgroundTasks,
    request: Request,
    shop_id: str = Depends(get_shop_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
    whatsapp_client: WhatsAppClient = Depends(get_whatsapp_client),
):
    """
    Post one ledger transaction.

    Either the account and its ledger entry both change or neither does;
    inactive accounts, negative amounts and over-limit balances are rejected.
    """
    accounts = CreditAccountRepository(db)
    account = accounts.get_for_shop(shop_id, body.account_id)

    entry = post_credit_transaction(
        db,
        account,
        body.type,
        body.amount_paise,
        now,
        get_request_id(request),
        description=body.description,
        reference=body.reference,
        metadata=body.metadata,
    )
    db.commit()

    customer = account.customer
    if body.type == TransactionType.PAYMENT and customer.mobile:
        background_tasks.add_task(
            whatsapp_client.send_payment_receipt,
            customer.mobile,
            customer.name,
            entry.amount_paise,
            account.current_balance_paise,
        )

    return CreditTransactionResponse(
        transaction=_transaction_schema(entry),
        account=CreditAccountSchema.model_validate(account),
    )


@router.get("/credit/transactions", response_model=CreditTransactionListResponse)
def list_credit_transactions(
    account_id: Optional[str] = None,
    limit: int = Query(200, ge=1, le=1000),
    shop_id: str = Depends(get_shop_id),
    db: Session = Depends(get_db),
):
    entries = CreditAccountRepository(db).list_transactions(shop_id, account_id, limit)
    return CreditTransactionListResponse(transactions=[_transaction_schema(e) for e in entries])


@router.post("/credit/scoring", response_model=ScoringResponse)
def score_customer(
    body: ScoringRequest,
    shop_id: str = Depends(get_shop_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    """Score one customer with breakdown and recommendations; stored on their account if any"""
    customers = CustomerRepository(db)
    customer = customers.get_for_shop(shop_id, body.customer_id)
    history = customers.history(customer, now)
    score = compute_credit_score(history, SettingsRepository(db).credit_policy(shop_id))

    accounts = CreditAccountRepository(db)
    account = accounts.find_for_customer(shop_id, customer.id)
    if account is not None:
        account.credit_score = score
        accounts.save(account)
    db.commit()

    record_credit_score(score)
    return ScoringResponse(
        customer_id=customer.id,
        customer_name=customer.name,
        credit_score=score,
        risk_level=risk_level(score),
        breakdown=ScoringBreakdownSchema(**asdict(scoring_breakdown(history))),
        recommendations=[RecommendationSchema(**asdict(r)) for r in credit_recommendations(score, history)],
    )


@router.get("/credit/scoring", response_model=ScoringSummaryResponse)
def scoring_summary(
    refresh: bool = False,
    shop_id: str = Depends(get_shop_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
):
    """Portfolio view of the shop's accounts, optionally re-scoring each one first"""
    accounts_repo = CreditAccountRepository(db)
    accounts = accounts_repo.list(shop_id)

    if refresh:
        for account in accounts:
            refresh_credit_score(db, account, now)
            accounts_repo.save(account)
        db.commit()

    scores = [a.credit_score for a in accounts]
    summary = ScoringSummary(
        total_accounts=len(accounts),
        active_accounts=sum(1 for a in accounts if a.is_active),
        avg_credit_score=round(sum(scores) / len(scores)) if scores else 0,
        high_risk_accounts=sum(1 for s in scores if s < HIGH_RISK_THRESHOLD),
    )
    return ScoringSummaryResponse(
        summary=summary,
        accounts=[
            ScoredAccount(
                **CreditAccountSchema.model_validate(a).model_dump(),
                risk_level=risk_level(a.credit_score),
            )
            for a in accounts
        ],
    )
