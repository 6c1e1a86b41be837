"""
User Management Module

Signup creates a user together with its single account; login checks the
password against a salted scrypt hash.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
import hashlib
import hmac
import re
import secrets
import uuid

from .accounts import Account, AccountRepository, AccountType
from .errors import AuthenticationError, ValidationError
from .storage import StoreInterface, Row
from .logging_config import get_logger


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class User:
    id: str
    name: str
    email: str
    password_hash: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: Row) -> 'User':
        return cls(
            id=row['id'],
            name=row['name'],
            email=row['email'],
            password_hash=row['password_hash'],
            created_at=datetime.fromisoformat(row['created_at']),
        )

    def to_dict(self, account: Optional[Account] = None) -> Dict[str, Any]:
        """Public view; never includes the password hash"""
        result = {"id": self.id, "name": self.name, "email": self.email}
        if account:
            result.update(
                accountId=account.id,
                accountNumber=account.account_number,
                accountType=account.account_type.value,
                balance=str(account.balance),
            )
        return result


class UserManager:
    """Creates and authenticates users"""

    def __init__(self, store: StoreInterface, accounts: AccountRepository,
                 password_min_length: int = 6):
        self.store = store
        self.accounts = accounts
        self.password_min_length = password_min_length
        self.logger = get_logger("minibank.users")

    def signup(
        self,
        name: str,
        email: str,
        password: str,
        account_type: Optional[str] = None
    ) -> Tuple[User, Account]:
        """
        Register a user and open their account

        Args:
            name: Display name, also used as account holder
            email: Unique login e-mail
            password: Plain-text password (hashed before storage)
            account_type: CHECKING (default) or SAVINGS

        Returns:
            (User, Account) tuple

        Raises:
            ValidationError: Missing fields, short password, bad account type
                or an e-mail that is already registered
        """
        name = (name or "").strip()
        email = (email or "").strip().lower()
        if not name or not email or not password:
            raise ValidationError("Name, email, and password are required")
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Email address is invalid", field="email")
        if len(password) < self.password_min_length:
            raise ValidationError(
                f"Password must be at least {self.password_min_length} characters",
                field="password"
            )
        try:
            product = AccountType(account_type or AccountType.CHECKING.value)
        except ValueError:
            raise ValidationError("Account type must be CHECKING or SAVINGS", field="accountType")

        with self.store.atomic():
            if self.find_by_email(email):
                raise ValidationError("User with this email already exists", field="email")

            user = User(
                id=str(uuid.uuid4()),
                name=name,
                email=email,
                password_hash=self._hash_password(password),
                created_at=datetime.now(timezone.utc),
            )
            self.store.execute(
                "INSERT INTO users (id, name, email, password_hash, created_at) VALUES (?, ?, ?, ?, ?)",
                (user.id, user.name, user.email, user.password_hash,
                 user.created_at.isoformat(timespec="microseconds"))
            )
            account = self.accounts.create_account(user.id, name, product)

        self.logger.info("User signed up", extra={
            "user_id": user.id, "action": "signup", "resource": f"user:{user.id}"
        })
        return user, account

    def login(self, email: str, password: str) -> User:
        """
        Authenticate by e-mail and password

        Raises:
            ValidationError: If either field is missing
            AuthenticationError: Unknown e-mail or wrong password
        """
        if not email or not password:
            raise ValidationError("Email and password are required")

        user = self.find_by_email(email.strip().lower())
        if user is None or not self._verify_password(password, user.password_hash):
            self.logger.warning("Failed login attempt", extra={"action": "login_failed"})
            raise AuthenticationError("Invalid email or password")

        self.logger.info("User logged in", extra={"user_id": user.id, "action": "login"})
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        row = self.store.query_one(
            "SELECT id, name, email, password_hash, created_at FROM users WHERE id = ?",
            (user_id,)
        )
        return User.from_row(row) if row else None

    def find_by_email(self, email: str) -> Optional[User]:
        row = self.store.query_one(
            "SELECT id, name, email, password_hash, created_at FROM users WHERE email = ?",
            (email,)
        )
        return User.from_row(row) if row else None

    def _hash_password(self, password: str, salt: Optional[str] = None) -> str:
        """Salted scrypt hash stored as salt$hash"""
        salt = salt or secrets.token_hex(16)
        digest = hashlib.scrypt(password.encode(), salt=salt.encode(), n=16384, r=8, p=1).hex()
        return f"{salt}${digest}"

    def _verify_password(self, password: str, stored: str) -> bool:
        salt, _, _ = stored.partition("$")
        if not salt:
            return False
        return hmac.compare_digest(self._hash_password(password, salt), stored)
