"""
Pydantic schemas for API requests

Transaction fields accept any JSON value; minibank.validation owns the
shape and range rules.
"""

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class SignupRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    account_type: Optional[str] = Field(None, alias="accountType")

    model_config = ConfigDict(populate_by_name=True)


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class CreateTransactionRequest(BaseModel):
    amount: Any = None
    description: Any = None
    type: Any = None
    account_number: Any = Field(None, alias="accountNumber")

    model_config = ConfigDict(populate_by_name=True)
