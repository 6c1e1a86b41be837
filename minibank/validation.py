"""
Request Validation Module

Shape and range checks applied before any store access. Rules run in a
fixed order and the first failure is reported; failures are never
aggregated.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union

from .currency import MAX_AMOUNT, Money, parse_amount, quantize_cents
from .errors import ValidationError
from .ledger import TransactionKind


@dataclass(frozen=True)
class TransactionRequest:
    """A money movement request that passed validation"""
    kind: TransactionKind
    amount: Money
    description: str
    account_number: Optional[str] = None


def validate_transaction_request(
    amount: Any,
    description: Any,
    kind: Union[TransactionKind, str, None],
    account_number: Any = None
) -> TransactionRequest:
    """
    Validate and normalize a raw transaction request

    Args:
        amount: Raw amount (number or numeric string)
        description: Free text, must not be blank
        kind: TransactionKind or its upper-case name
        account_number: Counterparty or external account number

    Returns:
        Normalized TransactionRequest with the amount rounded half-up to cents

    Raises:
        ValidationError: Naming the first rule that failed
    """
    try:
        raw_amount = parse_amount(amount)
    except ValueError:
        raise ValidationError("Valid amount is required", field="amount")

    if raw_amount <= 0:
        raise ValidationError("Amount must be greater than zero", field="amount")

    if raw_amount > MAX_AMOUNT:
        raise ValidationError(
            f"Amount must not exceed {MAX_AMOUNT:,.2f}", field="amount"
        )

    normalized = quantize_cents(raw_amount)
    if normalized <= 0:
        raise ValidationError("Amount must be at least 0.01", field="amount")

    if not isinstance(description, str) or not description.strip():
        raise ValidationError("Description is required", field="description")

    transaction_kind = _parse_kind(kind)

    if isinstance(account_number, str):
        account_number = account_number.strip() or None
    elif account_number is not None:
        raise ValidationError("Account number must be a string", field="accountNumber")

    if transaction_kind.is_debit and not account_number:
        raise ValidationError(
            f"Account number is required for {transaction_kind.value.lower()} transactions",
            field="accountNumber"
        )

    return TransactionRequest(
        kind=transaction_kind,
        amount=Money(normalized),
        description=description.strip(),
        account_number=account_number,
    )


def _parse_kind(kind: Union[TransactionKind, str, None]) -> TransactionKind:
    if isinstance(kind, TransactionKind):
        return kind
    if isinstance(kind, str) and kind in TransactionKind.__members__:
        return TransactionKind[kind]
    raise ValidationError(
        "Invalid transaction type. Must be DEPOSIT, WITHDRAWAL, or TRANSFER",
        field="type"
    )


def validate_page_request(page: Any, page_size: Any, max_page_size: int = 100) -> None:
    """
    Check pagination arguments

    Raises:
        ValidationError: If page < 1 or page_size is outside [1, max_page_size]
    """
    if isinstance(page, bool) or not isinstance(page, int) or page < 1:
        raise ValidationError("Page must be greater than 0", field="page")
    if isinstance(page_size, bool) or not isinstance(page_size, int) \
            or not 1 <= page_size <= max_page_size:
        raise ValidationError(
            f"Limit must be between 1 and {max_page_size}", field="limit"
        )
