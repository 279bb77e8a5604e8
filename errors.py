class FinanceError(ValueError):
    pass


class NotFound(FinanceError):
    """Absent or owned by another user; callers cannot tell which."""


class InvalidRange(FinanceError):
    pass


class ReferentialConflict(FinanceError):
    pass


class ValidationError(FinanceError):
    pass


class StoreUnavailable(RuntimeError):
    pass
