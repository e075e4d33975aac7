"""
cancelflow.errors
=================
Error taxonomy shared by the engine and the persistence layer.

  • ValidationError       – field-level, recoverable, keeps the user on the step
  • ConfigurationError    – dangling / undefined navigation target
  • PersistenceError      – storage or network failure, retryable
  • SchemaConstraintError – storage lacks the (user_id, subscription_id) unique key
"""
from __future__ import annotations

from typing import Dict, Optional


class FlowError(Exception):
    """Base class for everything cancelflow raises on purpose."""


class ValidationError(FlowError):
    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        super().__init__(", ".join(f"{k}: {v}" for k, v in self.errors.items()))


class ConfigurationError(FlowError):
    pass


class PersistenceError(FlowError):
    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code
        super().__init__(message if code is None else f"{message} (code={code})")

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {"message": self.message, "code": self.code}


class NotFoundError(PersistenceError):
    pass


class SchemaConstraintError(PersistenceError):
    # Postgres: "there is no unique or exclusion constraint matching the ON CONFLICT specification"
    CODE = "42P10"


__all__ = [
    "FlowError",
    "ValidationError",
    "ConfigurationError",
    "PersistenceError",
    "NotFoundError",
    "SchemaConstraintError",
]
