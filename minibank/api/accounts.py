"""
Account and transaction endpoints for the authenticated caller
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from .auth import BankingSystem, get_banking_system, get_current_user
from .schemas import CreateTransactionRequest
from ..validation import validate_transaction_request


router = APIRouter()


@router.get("/account")
def get_account(
    user_id: str = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Caller's account with owner name and e-mail"""
    return system.accounts.get_profile(user_id)


@router.post("/transactions", status_code=status.HTTP_201_CREATED)
def create_transaction(
    request: CreateTransactionRequest,
    user_id: str = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Deposit, withdraw or transfer"""
    normalized = validate_transaction_request(
        amount=request.amount,
        description=request.description,
        kind=request.type,
        account_number=request.account_number
    )
    result = system.engine.process_transaction(user_id, normalized)
    return result.to_dict()


@router.get("/transactions")
def list_transactions(
    page: int = Query(1),
    limit: Optional[int] = Query(None),
    user_id: str = Depends(get_current_user),
    system: BankingSystem = Depends(get_banking_system)
):
    """Caller's transaction history, newest first; limit defaults to the configured page size"""
    account = system.accounts.get_by_owner(user_id)
    return system.history.list_transactions(account.id, page, limit).to_dict()
