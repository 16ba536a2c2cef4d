"""
Custom exceptions for the application
"""

class BaseAppException(Exception):
    """Base application exception"""
    def __init__(self, message: str, details: str = None):
        self.message = message
        self.details = details
        super().__init__(self.message)


class NotFoundError(BaseAppException):
    """Raised when a resource is not found"""
    pass


class ValidationError(BaseAppException):
    """Raised when validation fails"""
    def __init__(self, message: str, details: str = None, error_code: str = None):
        super().__init__(message, details)
        self.error_code = error_code


class InvalidPeriodType(ValidationError):
    """Raised for a budget period type outside weekly/monthly/yearly/custom"""
    def __init__(self, period_type, details: str = None):
        self.period_type = period_type
        super().__init__(f"Invalid period type: {period_type!r}", details, "invalid_period_type")


class InvalidDateRange(ValidationError):
    """Raised when a start date falls after its end date"""
    def __init__(self, message: str, details: str = None):
        super().__init__(message, details, "invalid_date_range")


class InvalidTransactionType(ValidationError):
    """Raised for a transaction type outside income/expense/transfer"""
    def __init__(self, transaction_type, details: str = None):
        self.transaction_type = transaction_type
        super().__init__(f"Invalid transaction type: {transaction_type!r}", details, "invalid_transaction_type")


class BusinessLogicError(BaseAppException):
    """Raised when business logic constraints are violated"""
    pass


class InvalidStateTransition(BusinessLogicError):
    """Raised when an operation is not allowed from the budget's current status"""
    def __init__(self, current_status, action: str, details: str = None):
        self.current_status = getattr(current_status, "value", current_status)
        self.action = action
        super().__init__(
            f"Cannot {action} a budget in '{self.current_status}' status",
            details,
        )


class BudgetPeriodConflictError(BusinessLogicError):
    """Raised when the user already has a budget for the exact same window"""
    pass


class DatabaseError(BaseAppException):
    """Raised when database operations fail"""
    pass


class DataIntegrityError(DatabaseError):
    """Raised when a monetary value is missing or malformed"""
    pass
