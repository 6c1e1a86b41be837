"""
Transaction Ledger Module

Append-only record of every balance-affecting event. Rows are inserted
once and never updated or deleted.
"""

from datetime import datetime
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum

from .currency import Money
from .storage import StoreInterface, Row


class TransactionKind(Enum):
    """Kinds of money movement"""
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    TRANSFER = "TRANSFER"

    @property
    def is_debit(self) -> bool:
        """Whether a ledger row of this kind takes money out of its account"""
        return self in (TransactionKind.WITHDRAWAL, TransactionKind.TRANSFER)


@dataclass(frozen=True)
class LedgerEntry:
    """One immutable ledger row"""
    id: str
    kind: TransactionKind
    amount: Money
    description: str
    created_at: datetime
    account_id: str
    reference: Optional[str] = None

    @property
    def signed_amount(self) -> Money:
        return -self.amount if self.kind.is_debit else self.amount

    @classmethod
    def from_row(cls, row: Row) -> 'LedgerEntry':
        return cls(
            id=row['id'],
            kind=TransactionKind(row['type']),
            amount=Money.from_cents(row['amount_cents']),
            description=row['description'],
            created_at=datetime.fromisoformat(row['created_at']),
            account_id=row['account_id'],
            reference=row.get('reference'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind.value,
            "amount": str(self.amount),
            "description": self.description,
            "reference": self.reference,
            "createdAt": self.created_at.isoformat(),
            "accountId": self.account_id,
        }


class LedgerRepository:
    """Inserts and reads ledger rows"""

    _COLUMNS = "id, type, amount_cents, description, reference, created_at, account_id"

    def __init__(self, store: StoreInterface):
        self.store = store

    def record(self, entry: LedgerEntry) -> LedgerEntry:
        """Append a ledger row"""
        self.store.execute(
            f"INSERT INTO transactions ({self._COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                entry.id, entry.kind.value, entry.amount.cents, entry.description,
                entry.reference, entry.created_at.isoformat(timespec="microseconds"),
                entry.account_id,
            )
        )
        return entry

    def get(self, entry_id: str) -> Optional[LedgerEntry]:
        row = self.store.query_one(
            f"SELECT {self._COLUMNS} FROM transactions WHERE id = ?", (entry_id,)
        )
        return LedgerEntry.from_row(row) if row else None

    def count_for_account(self, account_id: str) -> int:
        row = self.store.query_one(
            "SELECT COUNT(*) AS total FROM transactions WHERE account_id = ?",
            (account_id,)
        )
        return row['total'] if row else 0

    def list_for_account(self, account_id: str, limit: int, offset: int = 0) -> List[LedgerEntry]:
        """Most recent first; rows written in the same instant keep insertion order reversed"""
        rows = self.store.query_many(
            f"""
            SELECT {self._COLUMNS} FROM transactions
            WHERE account_id = ?
            ORDER BY created_at DESC, seq DESC
            LIMIT ? OFFSET ?
            """,
            (account_id, limit, offset)
        )
        return [LedgerEntry.from_row(row) for row in rows]

    def net_change(self, account_id: str) -> Money:
        """Sum of signed amounts, i.e. how far the balance moved since opening"""
        row = self.store.query_one(
            """
            SELECT COALESCE(SUM(CASE WHEN type = 'DEPOSIT' THEN amount_cents
                                     ELSE -amount_cents END), 0) AS net
            FROM transactions WHERE account_id = ?
            """,
            (account_id,)
        )
        return Money.from_cents(row['net'] if row else 0)
