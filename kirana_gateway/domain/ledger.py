"""Credit (khata) ledger - balance arithmetic for signed account transactions"""

from typing import Union

from kirana_gateway.domain.exceptions import CreditLimitExceededError, PolicyViolationError, ValidationError
from kirana_gateway.domain.models import AccountState, BalanceChange, TransactionType


def parse_transaction_type(value: Union[str, TransactionType]) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError(f"Invalid transaction type {value!r}") from None


def apply_transaction(
    account: AccountState,
    type: Union[str, TransactionType],
    amount_paise: int,
) -> BalanceChange:
    """
    Compute the balance change for one transaction without mutating the account.

    Direction is carried by `type`, never by the sign of `amount_paise`:
    - CREDIT:     balance +a, available +a
    - DEBIT:      balance -a, available -a
    - PAYMENT:    balance -a, available +a
    - ADJUSTMENT: balance := a, available := a (absolute reset)
    - INTEREST:   balance +a
    - FEE:        balance -a

    Available credit is capped at the credit limit. There is no lower bound:
    DEBIT/FEE/PAYMENT paths can leave balance or available credit negative and
    callers must handle that.

    Raises:
        PolicyViolationError: account is inactive
        ValidationError: negative amount or unknown type
        CreditLimitExceededError: resulting balance would exceed the limit
    """
    txn_type = parse_transaction_type(type)

    if not account.is_active:
        raise PolicyViolationError("Credit account is not active")
    if amount_paise < 0:
        raise ValidationError("Transaction amount must be non-negative")

    balance = account.current_balance_paise
    available = account.available_credit_paise

    if txn_type == TransactionType.CREDIT:
        balance += amount_paise
        available += amount_paise
    elif txn_type == TransactionType.DEBIT:
        balance -= amount_paise
        available -= amount_paise
    elif txn_type == TransactionType.PAYMENT:
        balance -= amount_paise
        available += amount_paise
    elif txn_type == TransactionType.ADJUSTMENT:
        balance = amount_paise
        available = amount_paise
    elif txn_type == TransactionType.INTEREST:
        balance += amount_paise
    elif txn_type == TransactionType.FEE:
        balance -= amount_paise

    if balance > account.credit_limit_paise:
        raise CreditLimitExceededError(
            f"Transaction would exceed credit limit "
            f"(balance {balance} > limit {account.credit_limit_paise})"
        )

    available = min(available, account.credit_limit_paise)

    return BalanceChange(
        type=txn_type,
        amount_paise=amount_paise,
        balance_before_paise=account.current_balance_paise,
        balance_after_paise=balance,
        available_after_paise=available,
    )


def rederive_available_credit(credit_limit_paise: int, current_balance_paise: int) -> int:
    """Available credit after a limit change: limit - balance, capped at the limit"""
    return min(credit_limit_paise, credit_limit_paise - current_balance_paise)
