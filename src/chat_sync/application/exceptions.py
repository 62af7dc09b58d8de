from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class ConflictError(AppError):
    pass


class UniqueViolationError(ConflictError):
    """A row for the same natural key already exists."""


class ValidationError(AppError):
    pass


class BackendError(AppError):
    """Backend call failed. ``retryable`` marks transient failures."""

    def __init__(
        self,
        detail: str = "",
        *,
        code: str | None = None,
        status: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(detail)
        self.code = code
        self.status = status
        self.retryable = retryable


class ConversationResolutionError(AppError):
    pass
