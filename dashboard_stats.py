"""
dashboard_stats.py
==================
Dashboard statistics: incremental maintenance and from-scratch
recomputation.

The incremental functions never mutate their input; each returns a new
:class:`DashboardStats`. :func:`compute_statistics` derives the same
numbers from the registry and catalog alone, and
:func:`statistics_match` compares the two ignoring entry order.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from models import (
    DashboardStats,
    DosesByManufacturer,
    Patient,
    VaccinationRecord,
    VaccinationStatus,
    VaccinationsByAgeGroup,
    Vaccine,
)
from vaccine_data import AGE_GROUPS, age_group_for

FULLY = VaccinationStatus.FULLY_VACCINATED
NOT_VACCINATED = VaccinationStatus.NOT_VACCINATED


def _bump_doses(
    entries: Sequence[DosesByManufacturer], name: str, by: int
) -> list[DosesByManufacturer]:
    updated = []
    found = False
    for entry in entries:
        if entry.name == name:
            entry = entry.model_copy(update={"doses": entry.doses + by})
            found = True
        updated.append(entry)
    if not found:
        updated.append(DosesByManufacturer(name=name, doses=by))
    return updated


def _bump_age_group(
    groups: Sequence[VaccinationsByAgeGroup], age: int, vaccinated: int = 0, total: int = 0
) -> list[VaccinationsByAgeGroup]:
    label = age_group_for(age)
    updated = []
    found = False
    for group in groups:
        if group.age_group == label:
            group = group.model_copy(
                update={"vaccinated": group.vaccinated + vaccinated, "total": group.total + total}
            )
            found = True
        updated.append(group)
    if not found:
        updated.append(VaccinationsByAgeGroup(age_group=label, vaccinated=vaccinated, total=total))
    return updated


def _fully_delta(before: Patient, after: Patient) -> int:
    if before.status != FULLY and after.status == FULLY:
        return 1
    if before.status == FULLY and after.status != FULLY:
        # the latest course is no longer complete
        return -1
    return 0


def add_patient(stats: DashboardStats, patient: Patient) -> DashboardStats:
    """Account for a newly registered patient.

    A new patient normally arrives with an empty history; any history it
    does carry is counted too so the totals stay re-derivable.
    """
    doses = stats.doses_by_manufacturer
    for record in patient.vaccination_history:
        doses = _bump_doses(doses, record.vaccine_name, 1)

    has_doses = patient.status != NOT_VACCINATED
    return stats.model_copy(update={
        "total_patients": stats.total_patients + 1,
        "total_doses_administered": stats.total_doses_administered + len(patient.vaccination_history),
        "fully_vaccinated_count": stats.fully_vaccinated_count + (1 if patient.status == FULLY else 0),
        "doses_by_manufacturer": doses,
        "vaccinations_by_age_group": _bump_age_group(
            stats.vaccinations_by_age_group, patient.age, vaccinated=int(has_doses), total=1
        ),
    })


def add_vaccine(stats: DashboardStats, vaccine: Vaccine) -> DashboardStats:
    """Give a new vaccine a zero entry in the breakdown, once per name."""
    if any(entry.name == vaccine.name for entry in stats.doses_by_manufacturer):
        return stats
    return stats.model_copy(update={
        "doses_by_manufacturer": [
            *stats.doses_by_manufacturer,
            DosesByManufacturer(name=vaccine.name, doses=0),
        ],
    })


def record_dose(
    stats: DashboardStats,
    before: Patient,
    after: Patient,
    record: VaccinationRecord,
) -> DashboardStats:
    """Account for one administered dose.

    ``before`` and ``after`` are the patient as it was and as it is with
    ``record`` appended and its status re-derived.
    """
    fully = stats.fully_vaccinated_count + _fully_delta(before, after)

    groups = stats.vaccinations_by_age_group
    if before.status == NOT_VACCINATED and after.status != NOT_VACCINATED:
        groups = _bump_age_group(groups, after.age, vaccinated=1)

    return stats.model_copy(update={
        "total_doses_administered": stats.total_doses_administered + 1,
        "fully_vaccinated_count": fully,
        "doses_by_manufacturer": _bump_doses(stats.doses_by_manufacturer, record.vaccine_name, 1),
        "vaccinations_by_age_group": groups,
    })


def update_status(stats: DashboardStats, before: Patient, after: Patient) -> DashboardStats:
    """Account for a status change that did not come with a new dose.

    This happens when a vaccine referenced by old records is added back to
    the catalog.
    """
    delta = _fully_delta(before, after)
    if not delta:
        return stats
    return stats.model_copy(update={"fully_vaccinated_count": stats.fully_vaccinated_count + delta})


def compute_statistics(patients: Iterable[Patient], vaccines: Iterable[Vaccine]) -> DashboardStats:
    """Derive dashboard statistics from the registry and catalog alone.

    ``patients`` must carry statuses consistent with their histories.
    """
    doses: dict[str, int] = {}
    for vaccine in vaccines:
        doses.setdefault(vaccine.name, 0)

    groups = {label: {"vaccinated": 0, "total": 0} for label, _, _ in AGE_GROUPS}
    total_patients = 0
    total_doses = 0
    fully = 0

    for patient in patients:
        total_patients += 1
        total_doses += len(patient.vaccination_history)
        if patient.status == FULLY:
            fully += 1
        for record in patient.vaccination_history:
            doses[record.vaccine_name] = doses.get(record.vaccine_name, 0) + 1

        group = groups[age_group_for(patient.age)]
        group["total"] += 1
        if patient.status != NOT_VACCINATED:
            group["vaccinated"] += 1

    return DashboardStats(
        total_patients=total_patients,
        total_doses_administered=total_doses,
        fully_vaccinated_count=fully,
        doses_by_manufacturer=[DosesByManufacturer(name=name, doses=n) for name, n in doses.items()],
        vaccinations_by_age_group=[
            VaccinationsByAgeGroup(age_group=label, **counts) for label, counts in groups.items()
        ],
    )


def _normalize(stats: DashboardStats) -> tuple:
    return (
        stats.total_patients,
        stats.total_doses_administered,
        stats.fully_vaccinated_count,
        sorted((entry.name, entry.doses) for entry in stats.doses_by_manufacturer),
        # empty buckets are equivalent to missing ones
        sorted(
            (group.age_group, group.vaccinated, group.total)
            for group in stats.vaccinations_by_age_group
            if group.total or group.vaccinated
        ),
    )


def statistics_match(a: DashboardStats, b: DashboardStats) -> bool:
    """Compare two snapshots, ignoring entry order."""
    return _normalize(a) == _normalize(b)
