"""Core infrastructure: settings, logging, exceptions, request budgeting."""

from .config import settings
from .exceptions import (
    AppException,
    BadRequestError,
    BudgetExceededError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ProviderUnavailableError,
    ScanInProgressError,
    ScanRunError,
    StoreUnavailableError,
    ValidationError,
)


__all__ = [
    "AppException",
    "BadRequestError",
    "BudgetExceededError",
    "ConflictError",
    "ExternalServiceError",
    "NotFoundError",
    "ProviderUnavailableError",
    "ScanInProgressError",
    "ScanRunError",
    "StoreUnavailableError",
    "ValidationError",
    "settings",
]
