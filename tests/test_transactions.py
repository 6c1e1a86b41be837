"""
Test suite for the transaction engine

Covers deposits, withdrawals and transfers, the feasibility checks, and
the all-or-nothing behaviour of every unit of work, including under
injected store failures and concurrent requests.
"""

import pytest
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from pathlib import Path

from minibank.accounts import AccountRepository
from minibank.currency import MAX_BALANCE, Money
from minibank.errors import (
    AccountNotFound, InsufficientFunds, SelfTransferRejected, StoreError,
    TargetAccountNotFound, ValidationError
)
from minibank.ledger import LedgerRepository, TransactionKind
from minibank.migrations import MigrationManager
from minibank.storage import SQLiteStore
from minibank.transactions import TransactionEngine
from minibank.validation import validate_transaction_request


def insert_user(store, user_id, name):
    store.execute(
        "INSERT INTO users (id, name, email, password_hash, created_at) VALUES (?, ?, ?, ?, ?)",
        (user_id, name, f"{user_id}@example.com", "salt$hash", "2024-01-01T00:00:00+00:00")
    )


def request(kind, amount, description="Test", account_number=None):
    return validate_transaction_request(amount, description, kind, account_number)


class FailingStore(SQLiteStore):
    """SQLite store that fails any write matching a predicate"""

    def __init__(self):
        super().__init__()
        self.fail_when = None

    def execute(self, sql, params=()):
        if self.fail_when and self.fail_when(sql, params):
            raise StoreError("Simulated write failure")
        return super().execute(sql, params)


class EngineTestCase:
    """Two customers, John (1001) and Jane (1002)"""

    store_class = SQLiteStore

    def setup_method(self):
        self.store = self.store_class()
        MigrationManager(self.store).migrate()
        self.accounts = AccountRepository(self.store)
        self.ledger = LedgerRepository(self.store)
        self.engine = TransactionEngine(self.store, self.accounts, self.ledger)

        insert_user(self.store, "john", "John Doe")
        insert_user(self.store, "jane", "Jane Smith")
        self.john = self.accounts.create_account("john", "John Doe", account_number="1001")
        self.jane = self.accounts.create_account("jane", "Jane Smith", account_number="1002")

    def teardown_method(self):
        self.store.close()

    def balance(self, account):
        return self.accounts.find_by_id(account.id).balance

    def set_balance(self, account, amount):
        self.store.execute("UPDATE accounts SET balance_cents = ? WHERE id = ?",
                           (Money(amount).cents, account.id))

    def entry_count(self, account=None):
        if account is None:
            return self.store.query_one("SELECT COUNT(*) AS n FROM transactions")["n"]
        return self.ledger.count_for_account(account.id)


class TestDeposit(EngineTestCase):

    def test_deposit(self):
        result = self.engine.process_transaction("john", request("DEPOSIT", 50))

        assert result.message == "Deposit successful"
        assert result.kind == TransactionKind.DEPOSIT
        assert result.new_balance == Money(Decimal("50.00"))
        assert self.balance(self.john) == Money(Decimal("50.00"))

        entry = self.ledger.get(result.transaction_id)
        assert entry.kind == TransactionKind.DEPOSIT
        assert entry.amount == Money(Decimal("50.00"))
        assert entry.description == "Test"
        assert entry.account_id == self.john.id
        assert result.entry_ids == [result.transaction_id]

    def test_large_deposit(self):
        self.engine.process_transaction("john", request("DEPOSIT", "999999999999.99"))
        assert self.balance(self.john) == Money(Decimal("999999999999.99"))

    def test_deposit_up_to_max_balance(self):
        self.set_balance(self.john, MAX_BALANCE - Decimal("0.01"))

        result = self.engine.process_transaction("john", request("DEPOSIT", "0.01"))
        assert result.new_balance == Money(MAX_BALANCE)
        assert self.balance(self.john) == Money(MAX_BALANCE)

    def test_deposit_past_max_balance_rejected(self):
        self.set_balance(self.john, MAX_BALANCE - Decimal("0.01"))

        with pytest.raises(ValidationError) as exc_info:
            self.engine.process_transaction("john", request("DEPOSIT", "0.02"))
        assert exc_info.value.field == "amount"
        assert self.balance(self.john) == Money(MAX_BALANCE - Decimal("0.01"))
        assert self.entry_count() == 0

        row = self.store.query_one("SELECT typeof(balance_cents) AS t FROM accounts WHERE id = ?",
                                   (self.john.id,))
        assert row["t"] == "integer"

    def test_repeated_small_deposits_are_exact(self):
        for _ in range(100):
            self.engine.process_transaction("john", request("DEPOSIT", 0.1))
        assert self.balance(self.john) == Money(Decimal("10.00"))

    def test_unknown_caller(self):
        with pytest.raises(AccountNotFound):
            self.engine.process_transaction("ghost", request("DEPOSIT", 10))
        assert self.entry_count() == 0


class TestWithdrawal(EngineTestCase):

    def setup_method(self):
        super().setup_method()
        self.engine.process_transaction("john", request("DEPOSIT", 100))

    def test_withdrawal(self):
        result = self.engine.process_transaction(
            "john", request("WITHDRAWAL", 40.25, "ATM", account_number="EXT-555")
        )

        assert result.message == "Withdrawal successful"
        assert result.new_balance == Money(Decimal("59.75"))
        assert self.balance(self.john) == Money(Decimal("59.75"))

        entry = self.ledger.get(result.transaction_id)
        assert entry.kind == TransactionKind.WITHDRAWAL
        assert entry.description == "Withdrawal: ATM"
        assert entry.reference == "EXT-555"

    def test_withdraw_entire_balance(self):
        result = self.engine.process_transaction("john", request("WITHDRAWAL", 100, account_number="X"))
        assert result.new_balance.is_zero()

    def test_insufficient_funds(self):
        with pytest.raises(InsufficientFunds) as exc_info:
            self.engine.process_transaction("john", request("WITHDRAWAL", 100.01, account_number="X"))

        assert exc_info.value.details == {"currentBalance": "100.00", "requestedAmount": "100.01"}
        assert self.balance(self.john) == Money(Decimal("100.00"))
        assert self.entry_count(self.john) == 1

    def test_deposit_then_overdraw_example(self):
        result = self.engine.process_transaction("john", request("DEPOSIT", 50.00))
        assert result.new_balance == Money(Decimal("150.00"))

        with pytest.raises(InsufficientFunds):
            self.engine.process_transaction("john", request("WITHDRAWAL", 200.00, account_number="X"))

        assert self.balance(self.john) == Money(Decimal("150.00"))
        assert self.entry_count(self.john) == 2


class TestTransfer(EngineTestCase):

    def setup_method(self):
        super().setup_method()
        self.engine.process_transaction("john", request("DEPOSIT", 500))
        self.engine.process_transaction("jane", request("DEPOSIT", 20))

    def test_transfer(self):
        result = self.engine.process_transaction(
            "john", request("TRANSFER", 120.50, "Rent", account_number="1002")
        )

        assert result.message == "Transfer successful"
        assert result.target_account == "Jane Smith"
        assert result.new_balance == Money(Decimal("379.50"))
        assert result.target_new_balance == Money(Decimal("140.50"))
        assert self.balance(self.john) == Money(Decimal("379.50"))
        assert self.balance(self.jane) == Money(Decimal("140.50"))

        debit, credit = (self.ledger.get(entry_id) for entry_id in result.entry_ids)
        assert debit.id == result.transaction_id
        assert debit.kind == TransactionKind.TRANSFER
        assert debit.account_id == self.john.id
        assert debit.description == "Transfer to Jane Smith (1002): Rent"
        assert credit.kind == TransactionKind.DEPOSIT
        assert credit.account_id == self.jane.id
        assert credit.description == "Transfer from John Doe (1001): Rent"

    def test_transfer_conserves_money(self):
        before = self.balance(self.john) + self.balance(self.jane)
        entries_before = self.entry_count()

        result = self.engine.process_transaction("john", request("TRANSFER", 77.77, account_number="1002"))

        assert self.balance(self.john) + self.balance(self.jane) == before
        assert self.entry_count() == entries_before + 2
        debit, credit = (self.ledger.get(entry_id) for entry_id in result.entry_ids)
        assert debit.amount == credit.amount == Money(Decimal("77.77"))
        assert debit.created_at == credit.created_at

    def test_to_dict_hides_counterparty_balance(self):
        result = self.engine.process_transaction("john", request("TRANSFER", 1, account_number="1002"))
        body = result.to_dict()
        assert body == {
            "message": "Transfer successful",
            "transactionId": result.transaction_id,
            "newBalance": "499.00",
            "targetAccount": "Jane Smith",
        }

    def test_insufficient_funds(self):
        with pytest.raises(InsufficientFunds) as exc_info:
            self.engine.process_transaction("jane", request("TRANSFER", 20.01, account_number="1001"))

        assert exc_info.value.message == "Insufficient funds for transfer"
        assert self.balance(self.jane) == Money(Decimal("20.00"))
        assert self.balance(self.john) == Money(Decimal("500.00"))
        assert self.entry_count() == 2

    @pytest.mark.parametrize("amount", [1, 500, 10000])
    def test_self_transfer_always_rejected(self, amount):
        with pytest.raises(SelfTransferRejected):
            self.engine.process_transaction("john", request("TRANSFER", amount, account_number="1001"))

        assert self.balance(self.john) == Money(Decimal("500.00"))
        assert self.entry_count() == 2

    def test_target_not_found(self):
        with pytest.raises(TargetAccountNotFound) as exc_info:
            self.engine.process_transaction("john", request("TRANSFER", 10, account_number="4040"))

        assert exc_info.value.status_code == 404
        assert self.balance(self.john) == Money(Decimal("500.00"))
        assert self.entry_count() == 2

    def test_credit_past_target_max_balance_rejected(self):
        self.set_balance(self.jane, MAX_BALANCE)

        with pytest.raises(ValidationError):
            self.engine.process_transaction("john", request("TRANSFER", 1, account_number="1002"))

        assert self.balance(self.john) == Money(Decimal("500.00"))
        assert self.balance(self.jane) == Money(MAX_BALANCE)
        assert self.entry_count() == 2

    def test_target_removed_between_read_and_credit(self):
        accounts = self.accounts
        original_get_by_number = accounts.get_by_number

        def get_then_delete(account_number):
            target = original_get_by_number(account_number)
            self.store.execute("DELETE FROM transactions WHERE account_id = ?", (target.id,))
            self.store.execute("DELETE FROM accounts WHERE id = ?", (target.id,))
            return target

        accounts.get_by_number = get_then_delete

        with pytest.raises(TargetAccountNotFound):
            self.engine.process_transaction("john", request("TRANSFER", 10, account_number="1002"))

        # The whole unit rolled back, including the removal
        assert self.balance(self.john) == Money(Decimal("500.00"))
        assert self.balance(self.jane) == Money(Decimal("20.00"))
        assert self.entry_count() == 2

    def test_ledger_reconciles_with_balances(self):
        self.engine.process_transaction("john", request("TRANSFER", 100, account_number="1002"))
        self.engine.process_transaction("jane", request("WITHDRAWAL", 30.5, account_number="X"))
        self.engine.process_transaction("jane", request("TRANSFER", 9.99, account_number="1001"))

        for account in (self.john, self.jane):
            assert self.ledger.net_change(account.id) == self.balance(account)


class TestAtomicityUnderFailure(EngineTestCase):

    store_class = FailingStore

    def setup_method(self):
        super().setup_method()
        self.engine.process_transaction("john", request("DEPOSIT", 300))

    def test_failed_credit_rolls_back_debit(self):
        # The credit is the only UPDATE with a positive delta during a transfer
        self.store.fail_when = lambda sql, params: "UPDATE accounts" in sql and params[0] > 0

        with pytest.raises(StoreError):
            self.engine.process_transaction("john", request("TRANSFER", 100, account_number="1002"))

        self.store.fail_when = None
        assert self.balance(self.john) == Money(Decimal("300.00"))
        assert self.balance(self.jane) == Money.zero()
        assert self.entry_count() == 1

    def test_failed_second_ledger_insert_rolls_back_everything(self):
        jane_id = self.jane.id
        self.store.fail_when = lambda sql, params: "INSERT INTO transactions" in sql and params[-1] == jane_id

        with pytest.raises(StoreError):
            self.engine.process_transaction("john", request("TRANSFER", 100, account_number="1002"))

        self.store.fail_when = None
        assert self.balance(self.john) == Money(Decimal("300.00"))
        assert self.balance(self.jane) == Money.zero()
        assert self.entry_count() == 1

    def test_failed_ledger_insert_rolls_back_withdrawal(self):
        self.store.fail_when = lambda sql, params: "INSERT INTO transactions" in sql

        with pytest.raises(StoreError):
            self.engine.process_transaction("john", request("WITHDRAWAL", 50, account_number="X"))

        self.store.fail_when = None
        assert self.balance(self.john) == Money(Decimal("300.00"))
        assert self.entry_count() == 1

    def test_engine_usable_after_failure(self):
        self.store.fail_when = lambda sql, params: True
        with pytest.raises(StoreError):
            self.engine.process_transaction("john", request("DEPOSIT", 1))

        self.store.fail_when = None
        result = self.engine.process_transaction("john", request("DEPOSIT", 1))
        assert result.new_balance == Money(Decimal("301.00"))


class TestConcurrency(EngineTestCase):

    def test_parallel_withdrawals_never_overdraw(self):
        self.engine.process_transaction("john", request("DEPOSIT", 100))

        def withdraw(_):
            try:
                self.engine.process_transaction("john", request("WITHDRAWAL", 30, account_number="X"))
                return True
            except InsufficientFunds:
                return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(withdraw, range(10)))

        assert outcomes.count(True) == 3
        assert self.balance(self.john) == Money(Decimal("10.00"))
        assert self.ledger.net_change(self.john.id) == Money(Decimal("10.00"))

    def test_parallel_opposing_transfers_conserve_money(self):
        self.engine.process_transaction("john", request("DEPOSIT", 50))
        self.engine.process_transaction("jane", request("DEPOSIT", 50))

        def shuffle(index):
            caller, target = ("john", "1002") if index % 2 else ("jane", "1001")
            try:
                self.engine.process_transaction(caller, request("TRANSFER", 7, account_number=target))
            except InsufficientFunds:
                pass

        with ThreadPoolExecutor(max_workers=6) as pool:
            list(pool.map(shuffle, range(40)))

        total = self.balance(self.john) + self.balance(self.jane)
        assert total == Money(Decimal("100.00"))
        assert not self.balance(self.john).is_negative()
        assert not self.balance(self.jane).is_negative()


class TestConcurrencyAcrossConnections:
    """Separate connections to one database file serialize their units"""

    def test_two_connections_never_overdraw(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = Path(temp_dir) / "bank.db"
            first = SQLiteStore(db_path)
            MigrationManager(first).migrate()
            insert_user(first, "john", "John Doe")
            AccountRepository(first).create_account("john", "John Doe", account_number="1001")
            second = SQLiteStore(db_path)

            engines = [
                TransactionEngine(store, AccountRepository(store), LedgerRepository(store))
                for store in (first, second)
            ]
            engines[0].process_transaction("john", request("DEPOSIT", 100))

            successes = []
            lock = threading.Lock()

            def withdraw(index):
                engine = engines[index % 2]
                try:
                    engine.process_transaction("john", request("WITHDRAWAL", 25, account_number="X"))
                except InsufficientFunds:
                    return
                with lock:
                    successes.append(index)

            try:
                with ThreadPoolExecutor(max_workers=6) as pool:
                    list(pool.map(withdraw, range(12)))

                assert len(successes) == 4
                account = AccountRepository(second).get_by_owner("john")
                assert account.balance.is_zero()
            finally:
                first.close()
                second.close()
