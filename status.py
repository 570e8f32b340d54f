"""
status.py
=========
Status derivation: maps a patient's vaccination history and the vaccine
catalog to a :class:`VaccinationStatus`.

Rules:
    * An empty history is ``Not Vaccinated``.
    * Records whose vaccine is no longer in the catalog are ignored for
      dose counting. They still make the history non-empty.
    * **Latest course rule**: the course that decides the status is the
      vaccine of the most recent resolvable dose. The patient is
      ``Fully Vaccinated`` once the doses of *that* vaccine reach its
      ``doses_required``; doses of other products do not count toward it.
    * Anything else is ``Partially Vaccinated``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from exceptions import InvalidCatalogError
from models import VaccinationRecord, VaccinationStatus, Vaccine


@dataclass(frozen=True)
class CourseProgress:
    """Progress through the course that decides a patient's status."""

    status: VaccinationStatus
    vaccine_id: str | None = None
    vaccine_name: str | None = None
    doses_received: int = 0
    doses_required: int | None = None

    @property
    def doses_remaining(self) -> int:
        if self.doses_required is None:
            return 0
        return max(self.doses_required - self.doses_received, 0)


def index_catalog(catalog: Iterable[Vaccine]) -> dict[str, Vaccine]:
    """Index a catalog by vaccine id, rejecting malformed entries."""
    index: dict[str, Vaccine] = {}
    for vaccine in catalog:
        if vaccine.doses_required < 1:
            raise InvalidCatalogError(
                message=f"Vaccine '{vaccine.id}' requires {vaccine.doses_required} doses; at least 1 is needed.",
                details={"vaccine_id": vaccine.id, "doses_required": vaccine.doses_required},
            )
        if vaccine.in_stock < 0:
            raise InvalidCatalogError(
                message=f"Vaccine '{vaccine.id}' has negative stock.",
                details={"vaccine_id": vaccine.id, "in_stock": vaccine.in_stock},
            )
        if vaccine.id in index:
            raise InvalidCatalogError(
                message=f"Vaccine id '{vaccine.id}' appears more than once in the catalog.",
                details={"vaccine_id": vaccine.id},
            )
        index[vaccine.id] = vaccine
    return index


def evaluate_course(
    history: Sequence[VaccinationRecord],
    catalog: Iterable[Vaccine],
) -> CourseProgress:
    """Work out which course decides the status and how far along it is."""
    index = index_catalog(catalog)

    if not history:
        return CourseProgress(status=VaccinationStatus.NOT_VACCINATED)

    latest: Vaccine | None = None
    for record in reversed(history):
        latest = index.get(record.vaccine_id)
        if latest is not None:
            break

    if latest is None:
        # only doses of vaccines that have left the catalog
        return CourseProgress(status=VaccinationStatus.PARTIALLY_VACCINATED)

    received = sum(1 for record in history if record.vaccine_id == latest.id)
    if received >= latest.doses_required:
        status = VaccinationStatus.FULLY_VACCINATED
    else:
        status = VaccinationStatus.PARTIALLY_VACCINATED

    return CourseProgress(
        status=status,
        vaccine_id=latest.id,
        vaccine_name=latest.name,
        doses_received=received,
        doses_required=latest.doses_required,
    )


def derive_status(
    history: Sequence[VaccinationRecord],
    catalog: Iterable[Vaccine],
) -> VaccinationStatus:
    return evaluate_course(history, catalog).status
