import datetime as dt
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    # Wire format is camelCase; attributes stay snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VaccinationStatus(str, Enum):
    NOT_VACCINATED = "Not Vaccinated"
    PARTIALLY_VACCINATED = "Partially Vaccinated"
    FULLY_VACCINATED = "Fully Vaccinated"


VaccineCategory = Literal["mRNA", "Viral Vector", "Inactivated Virus"]
Gender = Literal["Male", "Female", "Other"]


class Vaccine(CamelModel):
    id: str
    name: str
    manufacturer: str
    category: VaccineCategory = Field(alias="type")
    doses_required: int = Field(ge=1)
    efficacy: float = Field(ge=0, le=100)
    in_stock: int = Field(ge=0)


class VaccinationRecord(CamelModel):
    model_config = ConfigDict(frozen=True)

    vaccine_id: str
    vaccine_name: str
    date: dt.date


class Patient(CamelModel):
    id: str
    name: str
    age: int = Field(ge=0)
    gender: Gender
    email: str
    phone: str
    status: VaccinationStatus = VaccinationStatus.NOT_VACCINATED
    vaccination_history: List[VaccinationRecord] = Field(default_factory=list)
    next_dose_date: Optional[dt.date] = None


class DosesByManufacturer(CamelModel):
    name: str
    doses: int = Field(ge=0)


class VaccinationsByAgeGroup(CamelModel):
    age_group: str
    vaccinated: int = Field(ge=0)
    total: int = Field(ge=0)


class DashboardStats(CamelModel):
    total_patients: int = 0
    total_doses_administered: int = 0
    fully_vaccinated_count: int = 0
    doses_by_manufacturer: List[DosesByManufacturer] = Field(default_factory=list)
    vaccinations_by_age_group: List[VaccinationsByAgeGroup] = Field(default_factory=list)


class MockData(CamelModel):
    """A complete snapshot: registry, catalog and statistics."""

    patients: List[Patient]
    vaccines: List[Vaccine]
    dashboard_stats: DashboardStats


# --- Request bodies ---

class PatientCreate(CamelModel):
    id: Optional[str] = None
    name: str = Field(min_length=1)
    age: int = Field(ge=0, le=130)
    gender: Gender
    email: str
    phone: str


class VaccineCreate(CamelModel):
    id: Optional[str] = None
    name: str = Field(min_length=1)
    manufacturer: str
    category: VaccineCategory = Field(alias="type")
    doses_required: int = Field(ge=1)
    efficacy: float = Field(ge=0, le=100)
    in_stock: int = Field(ge=0)


class AdministerRequest(CamelModel):
    vaccine_id: str
    date: Optional[dt.date] = None
    next_dose_date: Optional[dt.date] = None
