"""
Database Migration System

Simple versioned migration system for the relational schema. Applied
versions are recorded in schema_migrations so running it twice is a no-op.
"""

from typing import List, Optional
from datetime import datetime, timezone

from .storage import StoreInterface
from .logging_config import get_logger


logger = get_logger("minibank.migrations")


class Migration:
    """Represents a single database migration"""

    def __init__(self, version: int, name: str, statements: List[str]):
        self.version = version
        self.name = name
        self.statements = statements

    def __str__(self) -> str:
        return f"Migration v{self.version:03d}: {self.name}"

    def __repr__(self) -> str:
        return f"Migration(version={self.version}, name='{self.name}')"


class MigrationManager:
    """Manages database migrations"""

    def __init__(self, store: StoreInterface):
        self.store = store
        self.migrations: List[Migration] = []
        self._migration_table = "schema_migrations"
        self._init_migrations()
        self._ensure_migration_table()

    def _init_migrations(self) -> None:
        """Initialize built-in migrations"""

        # v001: users
        self.add_migration(1, "Create users table", [
            """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE,
                password_hash TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
            """,
        ])

        # v002: accounts, balance in integer cents
        self.add_migration(2, "Create accounts table", [
            """
            CREATE TABLE IF NOT EXISTS accounts (
                id TEXT PRIMARY KEY,
                account_number TEXT NOT NULL UNIQUE,
                account_type TEXT NOT NULL CHECK (account_type IN ('CHECKING', 'SAVINGS')),
                balance_cents INTEGER NOT NULL DEFAULT 0
                    CHECK (typeof(balance_cents) = 'integer' AND balance_cents >= 0),
                account_holder TEXT NOT NULL,
                created_at TEXT NOT NULL,
                user_id TEXT NOT NULL REFERENCES users (id)
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_accounts_user_id ON accounts (user_id)",
        ])

        # v003: append-only ledger; seq gives a stable insertion order
        self.add_migration(3, "Create transactions table", [
            """
            CREATE TABLE IF NOT EXISTS transactions (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                type TEXT NOT NULL CHECK (type IN ('DEPOSIT', 'WITHDRAWAL', 'TRANSFER')),
                amount_cents INTEGER NOT NULL CHECK (amount_cents > 0),
                description TEXT NOT NULL,
                reference TEXT,
                created_at TEXT NOT NULL,
                account_id TEXT NOT NULL REFERENCES accounts (id)
            )
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_transactions_account_created
            ON transactions (account_id, created_at, seq)
            """,
        ])

    def _ensure_migration_table(self) -> None:
        """Ensure the migration tracking table exists"""
        self.store.execute(f"""
            CREATE TABLE IF NOT EXISTS {self._migration_table} (
                version INTEGER PRIMARY KEY,
                name TEXT NOT NULL,
                applied_at TEXT NOT NULL
            )
        """)

    def add_migration(self, version: int, name: str, statements: List[str]) -> None:
        """Add a migration to the manager"""
        self.migrations.append(Migration(version, name, statements))
        self.migrations.sort(key=lambda m: m.version)

    def get_current_version(self) -> int:
        """Highest applied migration version, 0 for a fresh database"""
        row = self.store.query_one(
            f"SELECT MAX(version) AS version FROM {self._migration_table}"
        )
        return row["version"] if row and row["version"] is not None else 0

    def get_pending_migrations(self) -> List[Migration]:
        current = self.get_current_version()
        return [m for m in self.migrations if m.version > current]

    def migrate(self, target_version: Optional[int] = None) -> int:
        """
        Apply pending migrations in version order

        Args:
            target_version: Stop after this version (all pending if None)

        Returns:
            Number of migrations applied
        """
        applied = 0
        for migration in self.get_pending_migrations():
            if target_version is not None and migration.version > target_version:
                break

            with self.store.atomic():
                for statement in migration.statements:
                    self.store.execute(statement)
                self.store.execute(
                    f"INSERT INTO {self._migration_table} (version, name, applied_at) VALUES (?, ?, ?)",
                    (migration.version, migration.name, datetime.now(timezone.utc).isoformat())
                )
            logger.info(f"Applied {migration}")
            applied += 1

        return applied
