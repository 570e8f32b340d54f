import datetime as dt

import pytest

from dashboard_stats import compute_statistics
from models import MockData, Patient, VaccinationRecord, Vaccine
from store import VaccinationStore


def make_vaccine(vaccine_id, name, doses_required=2, in_stock=10, category="mRNA"):
    return Vaccine(
        id=vaccine_id,
        name=name,
        manufacturer=f"{name} Manufacturing",
        category=category,
        doses_required=doses_required,
        efficacy=90,
        in_stock=in_stock,
    )


def make_record(vaccine, day=1):
    return VaccinationRecord(
        vaccine_id=vaccine.id,
        vaccine_name=vaccine.name,
        date=dt.date(2024, 1, 1) + dt.timedelta(days=day),
    )


def make_patient(patient_id="p1", age=34, history=None, **fields):
    return Patient(
        id=patient_id,
        name=fields.pop("name", "Ada Lovelace"),
        age=age,
        gender=fields.pop("gender", "Female"),
        email=fields.pop("email", f"{patient_id}@example.com"),
        phone=fields.pop("phone", "555-0100"),
        vaccination_history=history or [],
        **fields,
    )


@pytest.fixture
def pfizer():
    return make_vaccine("v1", "Pfizer-BioNTech", doses_required=2, in_stock=10)


@pytest.fixture
def moderna():
    return make_vaccine("v2", "Moderna", doses_required=2, in_stock=10)


@pytest.fixture
def janssen():
    return make_vaccine("v3", "Johnson & Johnson", doses_required=1, in_stock=5, category="Viral Vector")


@pytest.fixture
def store(pfizer):
    """A store loaded with one vaccine and one unvaccinated patient."""
    patients = [make_patient("p1")]
    vaccines = [pfizer]
    s = VaccinationStore()
    s.load(MockData(
        patients=patients,
        vaccines=vaccines,
        dashboard_stats=compute_statistics(patients, vaccines),
    ))
    return s
