"""
Authentication dependencies and the banking system container
"""

from datetime import datetime, timezone, timedelta
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt

from ..storage import StoreInterface, SQLiteStore
from ..migrations import MigrationManager
from ..accounts import AccountRepository
from ..ledger import LedgerRepository
from ..transactions import TransactionEngine
from ..pagination import TransactionHistory
from ..users import User, UserManager
from ..errors import AuthenticationError, AuthorizationError
from ..config import MiniBankConfig, get_config


security = HTTPBearer(auto_error=False)


class BankingSystem:
    """All banking components wired to one store"""

    def __init__(self, store: Optional[StoreInterface] = None,
                 config: Optional[MiniBankConfig] = None):
        self.config = config or get_config()
        self.store = store or SQLiteStore(self.config.database_path)

        MigrationManager(self.store).migrate()

        self.accounts = AccountRepository(self.store, self.config.account_number_length)
        self.ledger = LedgerRepository(self.store)
        self.engine = TransactionEngine(self.store, self.accounts, self.ledger)
        self.history = TransactionHistory(
            self.ledger, self.config.max_page_size, self.config.default_page_size
        )
        self.users = UserManager(self.store, self.accounts, self.config.password_min_length)

    def issue_token(self, user: User) -> str:
        """Signed bearer token for a user"""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.id,
            "email": user.email,
            "iat": now,
            "exp": now + timedelta(hours=self.config.jwt_expiry_hours),
        }
        return jwt.encode(payload, self.config.jwt_secret, algorithm=self.config.jwt_algorithm)

    def decode_token(self, token: str) -> str:
        """
        Validate a bearer token and return the user id

        Raises:
            AuthorizationError: Token expired, tampered with, or without subject
        """
        try:
            payload = jwt.decode(token, self.config.jwt_secret,
                                 algorithms=[self.config.jwt_algorithm])
        except jwt.InvalidTokenError:
            raise AuthorizationError("Invalid or expired token.")

        user_id = payload.get("sub")
        if not user_id:
            raise AuthorizationError("Invalid or expired token.")
        return user_id

    def close(self) -> None:
        self.store.close()


_banking_system: Optional[BankingSystem] = None


def get_banking_system() -> BankingSystem:
    """Dependency returning the process-wide banking system"""
    global _banking_system
    if _banking_system is None:
        _banking_system = BankingSystem()
    return _banking_system


def set_banking_system(system: Optional[BankingSystem]) -> None:
    global _banking_system
    _banking_system = system


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: BankingSystem = Depends(get_banking_system)
) -> str:
    """Dependency that validates the bearer token and returns the caller's user id"""
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Access denied. No token provided.")
    return system.decode_token(credentials.credentials)
