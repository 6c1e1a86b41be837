"""
Signup and login endpoints
"""

from fastapi import APIRouter, Depends, status

from .auth import BankingSystem, get_banking_system
from .schemas import SignupRequest, LoginRequest


router = APIRouter()


@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(
    request: SignupRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Create a user and their account"""
    user, account = system.users.signup(
        name=request.name,
        email=request.email,
        password=request.password,
        account_type=request.account_type
    )
    return {
        "message": "User created successfully",
        "token": system.issue_token(user),
        "user": user.to_dict(account),
    }


@router.post("/login")
def login(
    request: LoginRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Exchange e-mail and password for a bearer token"""
    user = system.users.login(request.email, request.password)
    account = system.accounts.find_by_owner(user.id)
    return {
        "message": "Login successful",
        "token": system.issue_token(user),
        "user": user.to_dict(account),
    }
