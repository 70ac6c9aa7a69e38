"""
auth/errors.py -- Typed failures raised by the identity and tenant workflows.

Every failure the core can produce is one of the IdentityError subclasses
below. Each carries a machine-readable `code`, a human `message`, and the
`status_code` the transport adapter should answer with, so api/main.py needs a
single exception handler and no per-route translation.

    ValidationFailed -> 400    field-level reasons in `errors`
    AuthFailed       -> 401    generic, enumeration-safe message
    Forbidden        -> 403    `reason` says which rule refused the caller
    NotFound         -> 404    `entity` names what was missing
    Conflict         -> 409    duplicate code / email / super-admin
    Fatal            -> 500    storage failure or broken invariant

storage_errors() maps sqlalchemy.exc.IntegrityError to Conflict and any other
SQLAlchemyError to Fatal, chaining the original.

Layer rule: no imports from api/ or tenants/. tenants/ imports from here.
"""

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError


class IdentityError(Exception):
    """Base class for every failure surfaced by the core."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_detail(self) -> dict:
        """Return the {"code", "message", "detail"?} payload for the error envelope."""
        return {"code": self.code, "message": self.message}


class ValidationFailed(IdentityError):
    status_code = 400
    code = "validation_error"

    def __init__(self, errors: dict[str, str], message: str = "Request validation failed.") -> None:
        super().__init__(message)
        self.errors = dict(errors)

    def to_detail(self) -> dict:
        detail = "; ".join(f"{field}: {reason}" for field, reason in self.errors.items())
        return {"code": self.code, "message": self.message, "detail": detail}


class AuthFailed(IdentityError):
    """Credentials or token rejected. The message never says which part was wrong."""

    status_code = 401
    code = "auth_failed"


class Forbidden(IdentityError):
    status_code = 403
    code = "forbidden"

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message, code=reason)
        self.reason = reason


class NotFound(IdentityError):
    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, message: str | None = None) -> None:
        super().__init__(message or f"{entity.capitalize()} not found.")
        self.entity = entity


class Conflict(IdentityError):
    status_code = 409
    code = "conflict"


class Fatal(IdentityError):
    """Unexpected storage failure or violated invariant. Always chained to its cause."""

    status_code = 500
    code = "internal_error"


@contextmanager
def storage_errors(conflict_message: str = "Record already exists."):
    """Translate SQLAlchemy failures into the taxonomy above.

    Usable as a decorator or a `with` block. Place it OUTSIDE
    Database.transaction() so the rollback has already happened by the time
    the translated error propagates. IdentityError subclasses pass through.
    """
    try:
        yield
    except IntegrityError as exc:
        raise Conflict(conflict_message) from exc
    except SQLAlchemyError as exc:
        raise Fatal("Storage operation failed.") from exc
