"""
Account Management Module

Accounts are addressed two ways: internally by id and publicly by their
unique account number. The balance column is only ever changed through
AccountRepository.apply_delta, which the transaction engine calls after
its feasibility check.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, Optional
from enum import Enum
import secrets
import uuid

from .currency import Money
from .errors import AccountNotFound, StoreError
from .storage import StoreInterface, Row
from .logging_config import get_logger


class AccountType(Enum):
    """Banking product types"""
    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"


@dataclass
class Account:
    """Bank account; balance is the sole authority for available funds"""
    id: str
    account_number: str
    account_type: AccountType
    balance: Money
    account_holder: str
    created_at: datetime
    user_id: str

    @classmethod
    def from_row(cls, row: Row) -> 'Account':
        return cls(
            id=row['id'],
            account_number=row['account_number'],
            account_type=AccountType(row['account_type']),
            balance=Money.from_cents(row['balance_cents']),
            account_holder=row['account_holder'],
            created_at=datetime.fromisoformat(row['created_at']),
            user_id=row['user_id'],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "accountNumber": self.account_number,
            "accountType": self.account_type.value,
            "balance": str(self.balance),
            "accountHolder": self.account_holder,
            "createdAt": self.created_at.isoformat(),
            "userId": self.user_id,
        }


class AccountRepository:
    """
    Reads accounts and applies balance deltas
    """

    _COLUMNS = "id, account_number, account_type, balance_cents, account_holder, created_at, user_id"

    def __init__(self, store: StoreInterface, account_number_length: int = 10):
        self.store = store
        self.account_number_length = account_number_length
        self.logger = get_logger("minibank.accounts")

    def find_by_owner(self, user_id: str) -> Optional[Account]:
        row = self.store.query_one(
            f"SELECT {self._COLUMNS} FROM accounts WHERE user_id = ? ORDER BY created_at LIMIT 1",
            (user_id,)
        )
        return Account.from_row(row) if row else None

    def find_by_number(self, account_number: str) -> Optional[Account]:
        row = self.store.query_one(
            f"SELECT {self._COLUMNS} FROM accounts WHERE account_number = ?",
            (account_number,)
        )
        return Account.from_row(row) if row else None

    def find_by_id(self, account_id: str) -> Optional[Account]:
        row = self.store.query_one(
            f"SELECT {self._COLUMNS} FROM accounts WHERE id = ?",
            (account_id,)
        )
        return Account.from_row(row) if row else None

    def get_by_owner(self, user_id: str) -> Account:
        """
        Get the account owned by a user

        Raises:
            AccountNotFound: If the user has no account
        """
        account = self.find_by_owner(user_id)
        if account is None:
            raise AccountNotFound("Account not found")
        return account

    def get_by_number(self, account_number: str) -> Account:
        """
        Get an account by its public account number

        Raises:
            AccountNotFound: If no account carries that number
        """
        account = self.find_by_number(account_number)
        if account is None:
            raise AccountNotFound("Account not found", accountNumber=account_number)
        return account

    def get_profile(self, user_id: str) -> Dict[str, Any]:
        """Account joined with its owner's name and e-mail"""
        account = self.get_by_owner(user_id)
        user = self.store.query_one(
            "SELECT name, email FROM users WHERE id = ?", (user_id,)
        )
        profile = account.to_dict()
        if user:
            profile.update(name=user['name'], email=user['email'])
        return profile

    def apply_delta(self, account_id: str, delta: Money) -> None:
        """
        Add a signed amount to an account balance

        The caller must already have checked that the result is not
        negative; this method does not re-check.

        Raises:
            AccountNotFound: If no row was updated
            StoreError: If the store rejects the write
        """
        updated = self.store.execute(
            "UPDATE accounts SET balance_cents = balance_cents + ? WHERE id = ?",
            (delta.cents, account_id)
        )
        if updated == 0:
            raise AccountNotFound("Account not found", accountId=account_id)

    def create_account(
        self,
        user_id: str,
        account_holder: str,
        account_type: AccountType = AccountType.CHECKING,
        account_number: Optional[str] = None
    ) -> Account:
        """
        Create an account with a zero balance

        Args:
            user_id: Owning user
            account_holder: Display name
            account_type: CHECKING or SAVINGS
            account_number: Specific number (generated if not provided)

        Returns:
            Created Account
        """
        account = Account(
            id=str(uuid.uuid4()),
            account_number=account_number or self._generate_account_number(),
            account_type=account_type,
            balance=Money.zero(),
            account_holder=account_holder,
            created_at=datetime.now(timezone.utc),
            user_id=user_id,
        )
        self.store.execute(
            f"INSERT INTO accounts ({self._COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                account.id, account.account_number, account.account_type.value,
                account.balance.cents, account.account_holder,
                account.created_at.isoformat(timespec="microseconds"), account.user_id,
            )
        )
        self.logger.info(
            f"Account created: {account.account_number}",
            extra={"user_id": user_id, "action": "create_account",
                   "resource": f"account:{account.id}"}
        )
        return account

    def _generate_account_number(self, attempts: int = 20) -> str:
        """Random numeric account number not yet in use"""
        length = self.account_number_length
        for _ in range(attempts):
            # Leading digit is never zero so the number keeps its length
            candidate = str(secrets.randbelow(9) + 1) + "".join(
                str(secrets.randbelow(10)) for _ in range(length - 1)
            )
            if self.find_by_number(candidate) is None:
                return candidate
        raise StoreError("Could not allocate a unique account number")
