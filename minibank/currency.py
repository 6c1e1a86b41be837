"""
Fixed-Point Currency Module

Money is held as a Decimal quantized to cents and persisted as integer
cents. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from typing import Union

# Set global decimal context for financial precision
getcontext().prec = 28

CENT = Decimal("0.01")

# Largest single movement, and largest balance an account may hold.
# Both stay well inside a signed 64-bit count of cents.
MAX_AMOUNT = Decimal("999999999999.99")
MAX_BALANCE = Decimal("9999999999999999.99")

AmountLike = Union[Decimal, int, float, str]


def parse_amount(value: AmountLike) -> Decimal:
    """
    Convert a raw amount to Decimal without rounding
    
    Args:
        value: int, float, Decimal or numeric string
        
    Returns:
        Finite Decimal value
        
    Raises:
        ValueError: If value is not a finite number
    """
    if value is None or isinstance(value, bool):
        raise ValueError("Amount must be a number")
    
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        # str() of a float is its shortest repr, so 0.1 stays 0.1
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"Cannot convert '{value}' to Decimal")
    else:
        raise ValueError("Amount must be a number")
    
    if not result.is_finite():
        raise ValueError("Amount must be a finite number")
    return result


def quantize_cents(value: Decimal) -> Decimal:
    """
    Round half-up to two decimal places

    Raises:
        ValueError: If the value has too many digits to hold at cent precision
    """
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"Amount {value} is out of range")


@dataclass(frozen=True, order=True)
class Money:
    """
    Immutable amount with exactly two decimal places.
    All balances and ledger amounts MUST use this class.
    """
    amount: Decimal
    
    def __post_init__(self):
        object.__setattr__(self, 'amount', quantize_cents(parse_amount(self.amount)))
    
    @classmethod
    def zero(cls) -> 'Money':
        return cls(Decimal("0"))
    
    @classmethod
    def from_cents(cls, cents: int) -> 'Money':
        """Build from an integer number of cents"""
        return cls(Decimal(int(cents)) * CENT)
    
    @property
    def cents(self) -> int:
        """Integer cent equivalent, used for storage"""
        return int(self.amount / CENT)
    
    def __add__(self, other: 'Money') -> 'Money':
        return Money(self.amount + other.amount)
    
    def __sub__(self, other: 'Money') -> 'Money':
        return Money(self.amount - other.amount)
    
    def __neg__(self) -> 'Money':
        return Money(-self.amount)
    
    def is_zero(self) -> bool:
        return self.amount == Decimal('0')
    
    def is_positive(self) -> bool:
        return self.amount > Decimal('0')
    
    def is_negative(self) -> bool:
        return self.amount < Decimal('0')
    
    def to_string(self) -> str:
        """Format for display, e.g. 1,234.50"""
        return f"{self.amount:,.2f}"
    
    def __str__(self) -> str:
        return f"{self.amount:.2f}"
