"""
Transaction Processing Module

Applies deposits, withdrawals and transfers for an authenticated caller.
Every request runs as one atomic unit on the store: the balance read, the
feasibility check, the balance update(s) and the ledger insert(s) either
all land or none do.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import uuid

from .currency import MAX_BALANCE, Money
from .storage import StoreInterface
from .accounts import Account, AccountRepository
from .ledger import LedgerEntry, LedgerRepository, TransactionKind
from .validation import TransactionRequest
from .errors import (
    AccountNotFound, BankingError, InsufficientFunds, SelfTransferRejected,
    StoreError, TargetAccountNotFound, ValidationError
)
from .logging_config import get_logger, log_action


@dataclass
class TransactionResult:
    """Summary of a committed transaction"""
    message: str
    kind: TransactionKind
    transaction_id: str
    amount: Money
    new_balance: Money
    entry_ids: List[str] = field(default_factory=list)
    target_account: Optional[str] = None  # counterparty display name
    target_new_balance: Optional[Money] = None

    def to_dict(self) -> Dict[str, Any]:
        """Response body; the counterparty's balance is never exposed"""
        body = {
            "message": self.message,
            "transactionId": self.transaction_id,
            "newBalance": str(self.new_balance),
        }
        if self.target_account is not None:
            body["targetAccount"] = self.target_account
        return body


class TransactionEngine:
    """
    Validates feasibility and performs balance mutations with their ledger rows
    """

    def __init__(
        self,
        store: StoreInterface,
        accounts: AccountRepository,
        ledger: LedgerRepository,
        clock: Callable[[], datetime] = None
    ):
        self.store = store
        self.accounts = accounts
        self.ledger = ledger
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = get_logger("minibank.transactions")

        self._handlers = {
            TransactionKind.DEPOSIT: self._deposit,
            TransactionKind.WITHDRAWAL: self._withdraw,
            TransactionKind.TRANSFER: self._transfer,
        }
        missing = set(TransactionKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for transaction kinds: {sorted(k.value for k in missing)}")

    def process_transaction(self, user_id: str, request: TransactionRequest) -> TransactionResult:
        """
        Process a validated request on behalf of a user

        Args:
            user_id: Authenticated caller
            request: Normalized request from validate_transaction_request

        Returns:
            TransactionResult for the committed unit

        Raises:
            AccountNotFound: Caller has no account
            InsufficientFunds: Debit exceeds the current balance
            SelfTransferRejected: Transfer to the caller's own account
            TargetAccountNotFound: Transfer counterparty does not exist
            ValidationError: A credit would push a balance past MAX_BALANCE
            StoreError: A write failed; nothing was persisted
        """
        handler = self._handlers[request.kind]

        try:
            with self.store.atomic():
                # Read inside the unit so the balance can't go stale before the write
                account = self.accounts.get_by_owner(user_id)
                result = handler(account, request, self.clock())
        except StoreError as e:
            log_action(
                self.logger, "error", f"Transaction failed and was rolled back: {e.message}",
                user_id=user_id, action=f"{request.kind.value.lower()}_failed",
                extra={"amount": str(request.amount)}
            )
            raise
        except BankingError as e:
            log_action(
                self.logger, "warning", f"Transaction rejected: {e.message}",
                user_id=user_id, action=f"{request.kind.value.lower()}_rejected",
                extra={"kind": e.kind, "amount": str(request.amount)}
            )
            raise

        log_action(
            self.logger, "info", result.message,
            user_id=user_id, action=request.kind.value.lower(),
            resource=f"transaction:{result.transaction_id}",
            extra={
                "amount": str(result.amount),
                "new_balance": str(result.new_balance),
                "entry_ids": result.entry_ids,
            }
        )
        return result

    def _deposit(self, account: Account, request: TransactionRequest,
                 now: datetime) -> TransactionResult:
        self._check_capacity(account, request.amount)

        self.accounts.apply_delta(account.id, request.amount)
        entry = self._record(account, TransactionKind.DEPOSIT, request.amount,
                             request.description, now, reference=request.account_number)
        return TransactionResult(
            message="Deposit successful",
            kind=TransactionKind.DEPOSIT,
            transaction_id=entry.id,
            amount=request.amount,
            new_balance=account.balance + request.amount,
            entry_ids=[entry.id],
        )

    def _withdraw(self, account: Account, request: TransactionRequest,
                  now: datetime) -> TransactionResult:
        self._check_funds(account, request.amount, "Insufficient funds")

        self.accounts.apply_delta(account.id, -request.amount)
        entry = self._record(account, TransactionKind.WITHDRAWAL, request.amount,
                             f"Withdrawal: {request.description}", now,
                             reference=request.account_number)
        return TransactionResult(
            message="Withdrawal successful",
            kind=TransactionKind.WITHDRAWAL,
            transaction_id=entry.id,
            amount=request.amount,
            new_balance=account.balance - request.amount,
            entry_ids=[entry.id],
        )

    def _transfer(self, source: Account, request: TransactionRequest,
                  now: datetime) -> TransactionResult:
        # Self-transfer is rejected regardless of balance, so it's checked first
        if request.account_number == source.account_number:
            raise SelfTransferRejected("Cannot transfer to the same account")

        self._check_funds(source, request.amount, "Insufficient funds for transfer")

        try:
            target = self.accounts.get_by_number(request.account_number)
        except AccountNotFound:
            raise TargetAccountNotFound(
                "Target account not found", accountNumber=request.account_number
            )
        self._check_capacity(target, request.amount)

        self.accounts.apply_delta(source.id, -request.amount)
        try:
            self.accounts.apply_delta(target.id, request.amount)
        except AccountNotFound:
            # Target vanished after it was read
            raise TargetAccountNotFound(
                "Target account not found", accountNumber=request.account_number
            )

        debit = self._record(
            source, TransactionKind.TRANSFER, request.amount,
            f"Transfer to {target.account_holder} ({target.account_number}): {request.description}",
            now, reference=target.account_number
        )
        credit = self._record(
            target, TransactionKind.DEPOSIT, request.amount,
            f"Transfer from {source.account_holder} ({source.account_number}): {request.description}",
            now, reference=source.account_number
        )
        return TransactionResult(
            message="Transfer successful",
            kind=TransactionKind.TRANSFER,
            transaction_id=debit.id,
            amount=request.amount,
            new_balance=source.balance - request.amount,
            entry_ids=[debit.id, credit.id],
            target_account=target.account_holder,
            target_new_balance=target.balance + request.amount,
        )

    def _check_funds(self, account: Account, amount: Money, message: str) -> None:
        """Feasibility check against the balance read in this unit"""
        if account.balance < amount:
            raise InsufficientFunds(
                message,
                currentBalance=str(account.balance),
                requestedAmount=str(amount),
            )

    def _check_capacity(self, account: Account, amount: Money) -> None:
        """Credit must not push the balance past MAX_BALANCE"""
        if (account.balance + amount).amount > MAX_BALANCE:
            raise ValidationError(
                "Resulting balance would exceed the maximum allowed",
                field="amount",
                maxBalance=f"{MAX_BALANCE:.2f}",
            )

    def _record(self, account: Account, kind: TransactionKind, amount: Money,
                description: str, now: datetime,
                reference: Optional[str] = None) -> LedgerEntry:
        return self.ledger.record(LedgerEntry(
            id=str(uuid.uuid4()),
            kind=kind,
            amount=amount,
            description=description,
            created_at=now,
            account_id=account.id,
            reference=reference,
        ))
