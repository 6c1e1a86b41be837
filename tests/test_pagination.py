"""
Tests for paginated transaction history
"""

import pytest
from datetime import datetime, timezone, timedelta

from minibank.accounts import AccountRepository
from minibank.errors import ValidationError
from minibank.ledger import LedgerRepository
from minibank.migrations import MigrationManager
from minibank.pagination import Pagination, TransactionHistory
from minibank.storage import SQLiteStore
from minibank.transactions import TransactionEngine
from minibank.validation import validate_transaction_request


class TickingClock:
    """Each call is one second after the previous one"""

    def __init__(self, start=None):
        self.current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.current += timedelta(seconds=1)
        return self.current


class TestPagination:
    """Test page metadata arithmetic"""

    def test_metadata(self):
        pagination = Pagination(current_page=2, page_size=10, total_items=25)
        assert pagination.offset == 10
        assert pagination.to_dict() == {
            "currentPage": 2,
            "pageSize": 10,
            "totalItems": 25,
            "totalPages": 3,
            "hasNextPage": True,
            "hasPreviousPage": True,
        }

    def test_exact_multiple_and_empty(self):
        assert Pagination(1, 10, 30).total_pages == 3
        empty = Pagination(1, 10, 0)
        assert empty.total_pages == 0
        assert not empty.has_next_page
        assert not empty.has_previous_page


class HistoryTestCase:

    def make_engine(self, clock):
        return TransactionEngine(self.store, self.accounts, self.ledger, clock=clock)

    def setup_method(self):
        self.store = SQLiteStore()
        MigrationManager(self.store).migrate()
        self.accounts = AccountRepository(self.store)
        self.ledger = LedgerRepository(self.store)
        self.history = TransactionHistory(self.ledger)

        self.store.execute(
            "INSERT INTO users (id, name, email, password_hash, created_at) VALUES (?, ?, ?, ?, ?)",
            ("john", "John Doe", "john@example.com", "salt$hash", "2024-01-01T00:00:00+00:00")
        )
        self.account = self.accounts.create_account("john", "John Doe", account_number="1001")

    def teardown_method(self):
        self.store.close()

    def deposit(self, engine, count):
        for number in range(1, count + 1):
            engine.process_transaction(
                "john", validate_transaction_request(number, f"Deposit {number}", "DEPOSIT")
            )


class TestTransactionHistory(HistoryTestCase):

    def setup_method(self):
        super().setup_method()
        self.deposit(self.make_engine(TickingClock()), 25)

    def test_second_page_newest_first(self):
        page = self.history.list_transactions(self.account.id, page=2, page_size=10)

        assert [entry.description for entry in page.items] == [
            f"Deposit {number}" for number in range(15, 5, -1)
        ]
        assert page.pagination.total_items == 25
        assert page.pagination.total_pages == 3
        assert page.pagination.has_next_page
        assert page.pagination.has_previous_page

    def test_first_and_last_page(self):
        first = self.history.list_transactions(self.account.id, page=1, page_size=10)
        assert first.items[0].description == "Deposit 25"
        assert not first.pagination.has_previous_page

        last = self.history.list_transactions(self.account.id, page=3, page_size=10)
        assert [entry.description for entry in last.items] == [
            f"Deposit {number}" for number in range(5, 0, -1)
        ]
        assert not last.pagination.has_next_page

    def test_page_beyond_range_is_empty(self):
        page = self.history.list_transactions(self.account.id, page=4, page_size=10)

        assert page.items == []
        assert page.pagination.current_page == 4
        assert page.pagination.total_pages == 3
        assert not page.pagination.has_next_page
        assert page.pagination.has_previous_page

    def test_repeated_reads_are_identical(self):
        first = self.history.list_transactions(self.account.id, page=2, page_size=7)
        second = self.history.list_transactions(self.account.id, page=2, page_size=7)
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_envelope(self):
        body = self.history.list_transactions(self.account.id, page=1, page_size=2).to_dict()
        assert set(body) == {"data", "pagination"}
        assert body["data"][0]["type"] == "DEPOSIT"
        assert body["data"][0]["amount"] == "25.00"
        assert body["data"][0]["accountId"] == self.account.id

    def test_other_accounts_are_not_listed(self):
        page = self.history.list_transactions("someone-else", page=1, page_size=10)
        assert page.items == []
        assert page.pagination.total_items == 0

    def test_default_page_size(self):
        assert self.history.list_transactions(self.account.id).pagination.page_size == 10

        history = TransactionHistory(self.ledger, default_page_size=4)
        page = history.list_transactions(self.account.id)
        assert page.pagination.page_size == 4
        assert page.pagination.total_pages == 7
        assert [entry.description for entry in page.items] == [
            f"Deposit {number}" for number in range(25, 21, -1)
        ]

    @pytest.mark.parametrize("page, page_size", [(0, 10), (1, 0), (1, 101)])
    def test_invalid_arguments(self, page, page_size):
        with pytest.raises(ValidationError):
            self.history.list_transactions(self.account.id, page=page, page_size=page_size)


class TestTieBreaking(HistoryTestCase):

    def test_identical_timestamps_fall_back_to_insertion_order(self):
        frozen = datetime(2024, 6, 1, tzinfo=timezone.utc)
        self.deposit(self.make_engine(lambda: frozen), 5)

        page = self.history.list_transactions(self.account.id, page=1, page_size=5)
        assert [entry.description for entry in page.items] == [
            "Deposit 5", "Deposit 4", "Deposit 3", "Deposit 2", "Deposit 1"
        ]
