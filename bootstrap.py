"""
bootstrap.py
============
Produces the initial snapshot of patients, vaccines and statistics.

Data sources are pluggable: :class:`GenerativeDataSource` asks the
OpenAI API to fabricate a mock dataset, :class:`SampleDataSource` builds
a fixed offline one. :class:`BootstrapRunner` issues the call once per
request and tracks the loading / ready / error state the dashboard
shows.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import random
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

import structlog
from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from dashboard_stats import compute_statistics
from exceptions import BootstrapError, BootstrapInProgressError
from models import MockData, Patient, VaccinationRecord, Vaccine
from status import derive_status
from store import VaccinationStore
from vaccine_data import AGE_GROUPS, VACCINE_PRODUCTS

logger = structlog.get_logger(__name__)

INVALID_STRUCTURE_MESSAGE = "Failed to fetch valid data structure from the service."
MISSING_KEY_MESSAGE = (
    "OPENAI_API_KEY is not set. Add it to the environment or a .env file "
    "to generate mock data."
)


class DataSource(ABC):
    """Anything that can produce an initial snapshot."""

    name: str = "data source"

    @abstractmethod
    async def fetch(self) -> MockData:
        """Return a complete snapshot.

        Raises:
            BootstrapError: With a message fit to show the user.
        """


# ---------------------------------------------------------------------------
# Generative source
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = (
    "You generate realistic mock data for a vaccination tracking dashboard. "
    "Reply with a single JSON object and nothing else."
)


def build_prompt(patient_count: int) -> str:
    products = ", ".join(VACCINE_PRODUCTS)
    age_groups = ", ".join(label for label, _, _ in AGE_GROUPS)
    return f"""Generate a JSON object with three keys: "patients", "vaccines" and "dashboardStats".

"vaccines": 5 or 6 vaccines drawn from: {products}. Each vaccine has
  "id" (string, unique), "name", "manufacturer",
  "type" (one of "mRNA", "Viral Vector", "Inactivated Virus"),
  "dosesRequired" (integer >= 1), "efficacy" (number 0-100), "inStock" (integer >= 0).

"patients": {patient_count} patients. Each patient has
  "id" (string, unique), "name", "age" (integer), "gender" ("Male", "Female" or "Other"),
  "email", "phone",
  "status" ("Not Vaccinated", "Partially Vaccinated" or "Fully Vaccinated"),
  "vaccinationHistory" (list of {{"vaccineId", "vaccineName", "date"}} where vaccineId
  refers to one of the vaccines above and date is YYYY-MM-DD, oldest first),
  and optionally "nextDoseDate" (YYYY-MM-DD) for partially vaccinated patients.
  A patient is fully vaccinated when the doses of their most recent vaccine reach its dosesRequired.

"dashboardStats": "totalPatients", "totalDosesAdministered", "fullyVaccinatedCount",
  "dosesByManufacturer" (list of {{"name", "doses"}}, one per vaccine name),
  "vaccinationsByAgeGroup" (list of {{"ageGroup", "vaccinated", "total"}} using the
  age groups {age_groups}). The statistics must agree with the patients and vaccines."""


class GenerativeDataSource(DataSource):
    """Fabricates a dataset with a single chat completion request."""

    name = "OpenAI"

    def __init__(
        self,
        api_key: str | None,
        model: str = "gpt-4o-mini",
        patient_count: int = 15,
        client: Any = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.patient_count = patient_count
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            if not self.api_key:
                raise BootstrapError(MISSING_KEY_MESSAGE)
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def fetch(self) -> MockData:
        client = self._get_client()
        logger.info("requesting mock data", model=self.model, patients=self.patient_count)

        try:
            resp = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(self.patient_count)},
                ],
                response_format={"type": "json_object"},
                temperature=0.7,
            )
        except OpenAIError as exc:
            raise BootstrapError(
                message=str(exc) or BootstrapError.default_message,
                details={"source": self.name, "error_type": exc.__class__.__name__},
            ) from exc

        content = None
        if resp.choices:
            content = resp.choices[0].message.content
        if not content:
            raise BootstrapError(INVALID_STRUCTURE_MESSAGE, details={"source": self.name})

        try:
            return MockData.model_validate_json(content)
        except ValidationError as exc:
            logger.warning("generated data failed validation", errors=exc.error_count())
            raise BootstrapError(
                message=INVALID_STRUCTURE_MESSAGE,
                details={"source": self.name, "errors": exc.error_count()},
            ) from exc


# ---------------------------------------------------------------------------
# Offline source
# ---------------------------------------------------------------------------

FIRST_NAMES = ["Amara", "Ben", "Chloe", "Dev", "Elena", "Farid", "Grace", "Hiro", "Ines", "Jonas",
               "Kemi", "Luca", "Maya", "Noah", "Olga", "Priya", "Quinn", "Rosa", "Sam", "Tariq"]
LAST_NAMES = ["Okafor", "Smith", "Dubois", "Patel", "Rossi", "Haddad", "Kim", "Tanaka", "Garcia",
              "Novak", "Adeyemi", "Bianchi", "Cohen", "Murphy", "Ivanova", "Shah"]
GENDERS = ["Male", "Female", "Other"]


class SampleDataSource(DataSource):
    """A fixed, seeded dataset for running without an API key."""

    name = "sample"

    def __init__(self, patient_count: int = 15, seed: int = 7, today: dt.date | None = None) -> None:
        self.patient_count = patient_count
        self.seed = seed
        self.today = today or dt.date.today()

    def build(self) -> MockData:
        rng = random.Random(self.seed)

        vaccines = [
            Vaccine(
                id=f"v{i}",
                name=name,
                manufacturer=info["manufacturer"],
                category=info["type"],
                doses_required=info["dosesRequired"],
                efficacy=info["efficacy"],
                in_stock=rng.randint(20, 500),
            )
            for i, (name, info) in enumerate(VACCINE_PRODUCTS.items(), start=1)
        ]

        patients = []
        for i in range(1, self.patient_count + 1):
            first, last = rng.choice(FIRST_NAMES), rng.choice(LAST_NAMES)
            vaccine = rng.choice(vaccines)
            doses = rng.randint(0, vaccine.doses_required)
            start = self.today - dt.timedelta(days=rng.randint(60, 400))
            history = [
                VaccinationRecord(
                    vaccine_id=vaccine.id,
                    vaccine_name=vaccine.name,
                    date=start + dt.timedelta(days=28 * n),
                )
                for n in range(doses)
            ]
            status = derive_status(history, vaccines)
            next_dose = None
            if 0 < doses < vaccine.doses_required:
                next_dose = self.today + dt.timedelta(days=rng.randint(3, 28))

            patients.append(Patient(
                id=f"p{i}",
                name=f"{first} {last}",
                age=rng.randint(1, 90),
                gender=rng.choice(GENDERS),
                email=f"{first}.{last}{i}@example.com".lower(),
                phone=f"555-{rng.randint(100, 999)}-{rng.randint(1000, 9999)}",
                status=status,
                vaccination_history=history,
                next_dose_date=next_dose,
            ))

        return MockData(
            patients=patients,
            vaccines=vaccines,
            dashboard_stats=compute_statistics(patients, vaccines),
        )

    async def fetch(self) -> MockData:
        return self.build()


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

class BootstrapState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class BootstrapRunner:
    """Issues the bootstrap call and loads the store with the result.

    There is no timeout and no automatic retry: a failure leaves the
    runner in the ``error`` state until :meth:`run` is called again.
    """

    def __init__(self, source: DataSource, store: VaccinationStore) -> None:
        self.source = source
        self.store = store
        self.state: BootstrapState = BootstrapState.IDLE
        self.error: str | None = None
        self.attempts: int = 0

    @property
    def in_flight(self) -> bool:
        return self.state == BootstrapState.LOADING

    def status(self) -> dict:
        return {
            "state": self.state.value,
            "error": self.error,
            "attempts": self.attempts,
            "source": self.source.name,
        }

    async def run(self) -> BootstrapState:
        if self.in_flight:
            raise BootstrapInProgressError()

        self.state = BootstrapState.LOADING
        self.error = None
        self.attempts += 1
        logger.info("bootstrap started", source=self.source.name, attempt=self.attempts)

        try:
            snapshot = await self.source.fetch()
            self.store.load(snapshot)
        except asyncio.CancelledError:
            self.state = BootstrapState.IDLE
            logger.info("bootstrap cancelled", source=self.source.name)
            raise
        except BootstrapError as exc:
            self.state = BootstrapState.ERROR
            self.error = exc.message
            logger.error("bootstrap failed", error=exc.message, **exc.details)
        except Exception as exc:
            # any failure becomes an error panel, never a crash
            self.state = BootstrapState.ERROR
            self.error = str(exc) or BootstrapError.default_message
            logger.exception("bootstrap failed unexpectedly")
        else:
            self.state = BootstrapState.READY
            logger.info("bootstrap finished", source=self.source.name)

        return self.state


def build_data_source(settings) -> DataSource:
    if settings.DATA_SOURCE == "sample":
        return SampleDataSource(patient_count=settings.PATIENT_COUNT)
    return GenerativeDataSource(
        api_key=settings.OPENAI_API_KEY,
        model=settings.OPENAI_MODEL,
        patient_count=settings.PATIENT_COUNT,
    )
