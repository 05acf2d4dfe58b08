# Overview: Exception taxonomy shared by the store accessor, services, routes and CLI.

"""
Error taxonomy

- ValidationError:   caller-supplied data violates a precondition. Nothing was written.
                     Safe to retry once the input is fixed.
- NotFoundError:     a referenced product or unit does not exist.
- PersistenceError:  the store call itself failed. Wraps the driver error with the
                     operation name and the identifiers involved; the original error
                     is kept as __cause__.
- BarcodeError:      the barcode generator could not allocate or register a code.
- AcquisitionError:  raised inside an acquisition step to force a rollback.

Drift found by the integrity checker is never an exception; it is reported as data.
"""

from __future__ import annotations


class ValidationError(ValueError):
    """400-level input problem."""


class InvalidTransitionError(ValidationError):
    """Requested unit status change is not permitted by the state machine."""

    def __init__(self, unit_id: int, from_status: str, to_status: str, reason: str | None = None):
        self.unit_id = unit_id
        self.from_status = from_status
        self.to_status = to_status
        message = f"Unit {unit_id}: transition {from_status} -> {to_status} is not allowed"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class NotFoundError(LookupError):
    """404-level missing record."""


class PersistenceError(RuntimeError):
    """
    A store operation failed.

    Always raised with `raise PersistenceError(...) from exc` so callers can
    reach the driver error through __cause__.
    """

    def __init__(self, operation: str, identifiers: dict | None = None, detail: str | None = None):
        self.operation = operation
        self.identifiers = dict(identifiers or {})
        self.detail = detail
        ids = ", ".join(f"{k}={v!r}" for k, v in self.identifiers.items())
        message = f"{operation} failed"
        if ids:
            message = f"{message} ({ids})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DuplicateSerialError(PersistenceError):
    """Unique (product_id, serial_number) constraint rejected an insert or move."""


class BarcodeError(RuntimeError):
    """Barcode allocation or registration failed."""


class AcquisitionError(RuntimeError):
    """An acquisition step could not complete as requested."""
