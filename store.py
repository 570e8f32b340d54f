"""
store.py
========
In-memory state for one running session: the patient registry, the
vaccine catalog and the dashboard statistics derived from them.

All mutation intents go through :class:`VaccinationStore`. Patient
statuses are re-derived on every history change and statistics are
maintained incrementally; :meth:`VaccinationStore.is_consistent` checks
them against a from-scratch recomputation.
"""

from __future__ import annotations

import datetime as dt
from typing import List, Optional

import structlog

import dashboard_stats
from exceptions import DuplicateEntityError, OutOfStockError, VaccineNotFoundError
from models import DashboardStats, MockData, Patient, VaccinationRecord, Vaccine
from status import derive_status, index_catalog

logger = structlog.get_logger(__name__)


class VaccinationStore:
    """Registry + catalog + statistics, owned by a single event loop."""

    def __init__(self) -> None:
        self._patients: List[Patient] = []
        self._vaccines: List[Vaccine] = []
        self._stats: Optional[DashboardStats] = None

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def patients(self) -> List[Patient]:
        return list(self._patients)

    @property
    def vaccines(self) -> List[Vaccine]:
        return list(self._vaccines)

    @property
    def statistics(self) -> Optional[DashboardStats]:
        """Current statistics, or None until a snapshot has been loaded."""
        return self._stats

    @property
    def loaded(self) -> bool:
        return self._stats is not None

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        return next((p for p in self._patients if p.id == patient_id), None)

    def get_vaccine(self, vaccine_id: str) -> Optional[Vaccine]:
        return next((v for v in self._vaccines if v.id == vaccine_id), None)

    def snapshot(self) -> MockData:
        """A deep copy of the current state."""
        return MockData(
            patients=[p.model_copy(deep=True) for p in self._patients],
            vaccines=[v.model_copy(deep=True) for v in self._vaccines],
            dashboard_stats=(self._stats or DashboardStats()).model_copy(deep=True),
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def load(self, snapshot: MockData) -> None:
        """Replace all state with ``snapshot``.

        Statuses and statistics are re-derived rather than trusted; any
        disagreement with the values in the snapshot is logged.
        """
        vaccines = list(snapshot.vaccines)
        index_catalog(vaccines)

        patients = []
        stale = 0
        for patient in snapshot.patients:
            status = derive_status(patient.vaccination_history, vaccines)
            if status != patient.status:
                stale += 1
                patient = patient.model_copy(update={"status": status})
            patients.append(patient)

        stats = dashboard_stats.compute_statistics(patients, vaccines)
        if stale:
            logger.warning("snapshot patient statuses re-derived", patients=stale)
        if not dashboard_stats.statistics_match(stats, snapshot.dashboard_stats):
            logger.warning(
                "snapshot statistics disagree with its data, recomputed",
                supplied=snapshot.dashboard_stats.model_dump(by_alias=True),
                derived=stats.model_dump(by_alias=True),
            )

        self._patients = patients
        self._vaccines = vaccines
        self._stats = stats
        logger.info("store loaded", patients=len(patients), vaccines=len(vaccines))

    def add_patient(self, patient: Patient) -> Patient:
        if self.get_patient(patient.id) is not None:
            raise DuplicateEntityError("patient", patient.id)

        patient = patient.model_copy(
            update={"status": derive_status(patient.vaccination_history, self._vaccines)}
        )
        self._patients = [patient, *self._patients]
        if self._stats is not None:
            self._stats = dashboard_stats.add_patient(self._stats, patient)

        logger.info("patient added", patient_id=patient.id)
        return patient

    def add_vaccine(self, vaccine: Vaccine) -> Vaccine:
        if self.get_vaccine(vaccine.id) is not None:
            raise DuplicateEntityError("vaccine", vaccine.id)

        index_catalog([vaccine])
        self._vaccines = [vaccine, *self._vaccines]
        if self._stats is not None:
            self._stats = dashboard_stats.add_vaccine(self._stats, vaccine)
        self._rederive_referencing(vaccine.id)

        logger.info("vaccine added", vaccine_id=vaccine.id, name=vaccine.name)
        return vaccine

    def administer_vaccine(
        self,
        patient_id: str,
        record: VaccinationRecord,
        next_dose_date: Optional[dt.date] = None,
    ) -> Optional[Patient]:
        """Record a dose for a patient.

        Returns the updated patient, or None (with nothing changed) when the
        patient does not exist. Stock never goes below zero: administering
        an out-of-stock vaccine raises and changes nothing.
        """
        before = self.get_patient(patient_id)
        if before is None:
            logger.info("administer ignored, unknown patient", patient_id=patient_id)
            return None

        vaccine = self.get_vaccine(record.vaccine_id)
        if vaccine is None:
            raise VaccineNotFoundError(record.vaccine_id)
        if vaccine.in_stock <= 0:
            raise OutOfStockError(vaccine.id, vaccine.name)

        history = [*before.vaccination_history, record]
        after = before.model_copy(update={
            "vaccination_history": history,
            "status": derive_status(history, self._vaccines),
            "next_dose_date": next_dose_date,
        })

        self._patients = [after if p.id == patient_id else p for p in self._patients]
        self._vaccines = [
            v.model_copy(update={"in_stock": v.in_stock - 1}) if v.id == vaccine.id else v
            for v in self._vaccines
        ]
        if self._stats is not None:
            self._stats = dashboard_stats.record_dose(self._stats, before, after, record)

        logger.info(
            "dose administered",
            patient_id=patient_id,
            vaccine_id=vaccine.id,
            status=after.status.value,
            in_stock=vaccine.in_stock - 1,
        )
        return after

    def _rederive_referencing(self, vaccine_id: str) -> None:
        # old records may point at a vaccine that is only now in the catalog
        patients = []
        for patient in self._patients:
            if any(r.vaccine_id == vaccine_id for r in patient.vaccination_history):
                status = derive_status(patient.vaccination_history, self._vaccines)
                if status != patient.status:
                    updated = patient.model_copy(update={"status": status})
                    if self._stats is not None:
                        self._stats = dashboard_stats.update_status(self._stats, patient, updated)
                    patient = updated
            patients.append(patient)
        self._patients = patients

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def recompute_statistics(self) -> DashboardStats:
        return dashboard_stats.compute_statistics(self._patients, self._vaccines)

    def is_consistent(self) -> bool:
        """Whether statuses and statistics match a from-scratch derivation."""
        for patient in self._patients:
            if patient.status != derive_status(patient.vaccination_history, self._vaccines):
                return False
        if self._stats is None:
            return True
        return dashboard_stats.statistics_match(self._stats, self.recompute_statistics())
