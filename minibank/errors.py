"""
Error Taxonomy

Every failure the banking core reports derives from BankingError and
carries a machine-readable kind, the HTTP status it maps to, a human
readable message and optional structured details.
"""

from typing import Any, Dict


class BankingError(Exception):
    """Base class for all banking errors"""
    
    kind = "banking_error"
    status_code = 500
    
    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details
    
    def to_dict(self) -> Dict[str, Any]:
        """Render as an error body"""
        body: Dict[str, Any] = {"error": self.message, "kind": self.kind}
        body.update(self.details)
        return body


class ValidationError(BankingError):
    """Request failed a shape or range rule"""
    
    kind = "validation_error"
    status_code = 400
    
    def __init__(self, message: str, field: str = None, **details: Any):
        if field:
            details["field"] = field
        super().__init__(message, **details)
        self.field = field


class AuthenticationError(BankingError):
    kind = "authentication_failed"
    status_code = 401


class AuthorizationError(BankingError):
    kind = "invalid_token"
    status_code = 403


class AccountNotFound(BankingError):
    kind = "account_not_found"
    status_code = 404


class TargetAccountNotFound(BankingError):
    kind = "target_account_not_found"
    status_code = 404


class InsufficientFunds(BankingError):
    """Debit larger than the current balance"""
    
    kind = "insufficient_funds"
    status_code = 400


class SelfTransferRejected(BankingError):
    kind = "self_transfer_rejected"
    status_code = 400


class StoreError(BankingError):
    """The underlying store failed; the enclosing unit of work was rolled back"""
    
    kind = "store_error"
    status_code = 500
