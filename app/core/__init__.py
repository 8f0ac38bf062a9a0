"""
Core module initialization.
Exports configuration, logging utilities and the error taxonomy.
"""

from app.core.config import get_settings, setup_logging, Settings, EnvironmentMode
from app.core.exceptions import (
    AppError,
    MissingCredential,
    InvalidCredential,
    SubjectNotFound,
    Forbidden,
    NotFound,
    InvalidInput,
    InvalidStatus,
    InvalidPeriod,
    InvalidFormat,
    InvalidTransition,
    PersistenceError,
)

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "AppError",
    "MissingCredential",
    "InvalidCredential",
    "SubjectNotFound",
    "Forbidden",
    "NotFound",
    "InvalidInput",
    "InvalidStatus",
    "InvalidPeriod",
    "InvalidFormat",
    "InvalidTransition",
    "PersistenceError",
]
