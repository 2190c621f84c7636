from typing import Optional


class BudgetError(Exception):
    """Base class for every error raised by the budgeting services."""


class ValidationError(BudgetError, ValueError):
    pass


class NotFoundError(BudgetError, LookupError):
    pass


class ConflictError(BudgetError):
    pass


class ForbiddenError(BudgetError, PermissionError):
    def __init__(self, message: str, *, month: Optional[str] = None) -> None:
        super().__init__(message)
        self.month = month


class ReadOnlyMonthError(ForbiddenError):
    def __init__(self, month: str) -> None:
        super().__init__(
            f"Month {month} is read-only. Unlock it to make changes.", month=month
        )


class InternalError(BudgetError):
    pass
