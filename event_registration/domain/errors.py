"""Errors raised by the registration core.

Every error derives from ``RegistrationError`` so the API layer can map the
whole family to HTTP responses in one place.
"""

from __future__ import annotations

import pydantic
from pydantic import BaseModel


class FieldError(BaseModel):
    field: str
    message: str


class RegistrationError(Exception):
    """Base class for registration-core errors."""


class ValidationError(RegistrationError):
    """A field constraint or document invariant does not hold; nothing is persisted."""

    def __init__(self, errors: list[FieldError]) -> None:
        self.errors = errors
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in errors))

    @classmethod
    def single(cls, field: str, message: str) -> ValidationError:
        return cls([FieldError(field=field, message=message)])

    @classmethod
    def from_pydantic(cls, exc: pydantic.ValidationError) -> ValidationError:
        errors = [
            FieldError(
                field=".".join(str(part) for part in err["loc"]) or "__root__",
                message=err["msg"],
            )
            for err in exc.errors()
        ]
        return cls(errors)


class NotFoundError(RegistrationError):
    """The event, or the RSVP an operation requires, does not exist."""


class PolicyViolation(RegistrationError):
    """The request is well-formed but the event's rules forbid it."""


class StorageError(RegistrationError):
    """The event store could not complete the write."""


class ConcurrencyConflict(StorageError):
    """The document changed since it was loaded."""
