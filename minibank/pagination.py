"""
Transaction History Module

Paginated, newest-first view of an account's ledger.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .ledger import LedgerEntry, LedgerRepository
from .validation import validate_page_request


@dataclass(frozen=True)
class Pagination:
    current_page: int
    page_size: int
    total_items: int

    @property
    def total_pages(self) -> int:
        # ceil without floats
        return -(-self.total_items // self.page_size)

    @property
    def has_next_page(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def has_previous_page(self) -> bool:
        return self.current_page > 1

    @property
    def offset(self) -> int:
        return (self.current_page - 1) * self.page_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentPage": self.current_page,
            "pageSize": self.page_size,
            "totalItems": self.total_items,
            "totalPages": self.total_pages,
            "hasNextPage": self.has_next_page,
            "hasPreviousPage": self.has_previous_page,
        }


@dataclass(frozen=True)
class Page:
    items: List[LedgerEntry]
    pagination: Pagination

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": [item.to_dict() for item in self.items],
            "pagination": self.pagination.to_dict(),
        }


class TransactionHistory:
    """Count + windowed select over the ledger"""

    def __init__(self, ledger: LedgerRepository, max_page_size: int = 100,
                 default_page_size: int = 10):
        self.ledger = ledger
        self.max_page_size = max_page_size
        self.default_page_size = default_page_size

    def list_transactions(self, account_id: str, page: int = 1,
                          page_size: Optional[int] = None) -> Page:
        """
        Get one page of an account's transactions, most recent first

        A page past the last one yields no items but consistent metadata.

        Raises:
            ValidationError: If page < 1 or page_size is out of range
        """
        if page_size is None:
            page_size = self.default_page_size
        validate_page_request(page, page_size, self.max_page_size)

        # Count and window read the same snapshot
        with self.ledger.store.atomic():
            total = self.ledger.count_for_account(account_id)
            pagination = Pagination(current_page=page, page_size=page_size, total_items=total)
            items = self.ledger.list_for_account(account_id, page_size, pagination.offset)

        return Page(items=items, pagination=pagination)
