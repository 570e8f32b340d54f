"""
exceptions.py
=============
Error types raised by the tracker core.

Every error carries a human-readable ``message`` (shown verbatim to the
user) and an optional ``details`` dict for logging and API responses.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for all vaccination tracker errors."""

    default_message: str = "An unexpected error occurred in the vaccination tracker."

    def __init__(self, message: str | None = None, details: dict | None = None) -> None:
        self.message: str = message or self.default_message
        self.details: dict = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class BootstrapError(TrackerError):
    """The initial data snapshot could not be produced."""

    default_message = "An unexpected error occurred while fetching data."


class BootstrapInProgressError(TrackerError):
    """A bootstrap call is already in flight and cannot be re-issued yet."""

    default_message = "Data is already being loaded. Please wait for it to finish."


class EntityNotFoundError(TrackerError):
    """A referenced patient or vaccine does not exist."""

    default_message = "The requested record was not found."


class PatientNotFoundError(EntityNotFoundError):
    def __init__(self, patient_id: str) -> None:
        super().__init__(message="Patient not found", details={"patient_id": patient_id})


class VaccineNotFoundError(EntityNotFoundError):
    def __init__(self, vaccine_id: str) -> None:
        super().__init__(
            message=f"Vaccine '{vaccine_id}' is not in the catalog.",
            details={"vaccine_id": vaccine_id},
        )


class DuplicateEntityError(TrackerError):
    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(
            message=f"A {kind} with id '{entity_id}' already exists.",
            details={"kind": kind, "id": entity_id},
        )


class OutOfStockError(TrackerError):
    """Administering a dose of a vaccine whose stock is already zero."""

    def __init__(self, vaccine_id: str, vaccine_name: str) -> None:
        super().__init__(
            message=f"{vaccine_name} is out of stock.",
            details={"vaccine_id": vaccine_id, "vaccine_name": vaccine_name},
        )


class InvalidCatalogError(TrackerError, ValueError):
    """The vaccine catalog handed to the status engine is malformed."""

    default_message = "The vaccine catalog is malformed."
