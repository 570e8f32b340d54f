# main.py
import asyncio
import datetime as dt
import io
import os
from contextlib import asynccontextmanager, suppress
from typing import List, Optional, get_args
from urllib.parse import urlencode

import pandas as pd
from fastapi import Depends, FastAPI, Form, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, RedirectResponse, StreamingResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from bootstrap import BootstrapRunner, BootstrapState, DataSource, build_data_source
from config import Settings
from exceptions import (
    BootstrapInProgressError,
    DuplicateEntityError,
    EntityNotFoundError,
    OutOfStockError,
    PatientNotFoundError,
)
from models import (
    AdministerRequest,
    DashboardStats,
    Gender,
    Patient,
    PatientCreate,
    VaccinationRecord,
    Vaccine,
    VaccineCreate,
)
from status import evaluate_course
from store import VaccinationStore
from utils import anonymize_data, new_id
from vaccine_data import VACCINE_CATEGORIES

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")
templates = Jinja2Templates(directory=TEMPLATES_DIR)

VIEWS = ("dashboard", "patients", "vaccines")
NOT_LOADED_MESSAGE = "Data is not loaded yet."


def get_store(request: Request) -> VaccinationStore:
    return request.app.state.store


def get_runner(request: Request) -> BootstrapRunner:
    return request.app.state.runner


def require_ready(runner: BootstrapRunner = Depends(get_runner)) -> None:
    # a later load replaces all state, so writes wait for the first one
    if runner.state != BootstrapState.READY:
        raise HTTPException(status_code=503, detail=NOT_LOADED_MESSAGE)


def new_patient(data: PatientCreate) -> Patient:
    return Patient(
        id=data.id or new_id("p"),
        name=data.name,
        age=data.age,
        gender=data.gender,
        email=data.email,
        phone=data.phone,
    )


def new_vaccine(data: VaccineCreate) -> Vaccine:
    return Vaccine(
        id=data.id or new_id("v"),
        name=data.name,
        manufacturer=data.manufacturer,
        category=data.category,
        doses_required=data.doses_required,
        efficacy=data.efficacy,
        in_stock=data.in_stock,
    )


def administer(store: VaccinationStore, patient_id: str, data: AdministerRequest) -> Patient:
    """Records one dose; the store decides which of patient or vaccine is missing first."""
    vaccine = store.get_vaccine(data.vaccine_id)
    record = VaccinationRecord(
        vaccine_id=data.vaccine_id,
        vaccine_name=vaccine.name if vaccine else data.vaccine_id,
        date=data.date or dt.date.today(),
    )
    patient = store.administer_vaccine(patient_id, record, data.next_dose_date)
    if patient is None:
        raise PatientNotFoundError(patient_id)
    return patient


def page_redirect(view: str, error: Optional[str] = None) -> RedirectResponse:
    query = {"view": view}
    if error:
        query["error"] = error
    return RedirectResponse(url=f"/?{urlencode(query)}", status_code=303)


def validation_message(exc: ValidationError) -> str:
    return "; ".join(f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors())


def create_app(settings: Optional[Settings] = None, data_source: Optional[DataSource] = None) -> FastAPI:
    settings = settings or Settings()
    store = VaccinationStore()
    runner = BootstrapRunner(data_source or build_data_source(settings), store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.BOOTSTRAP_ON_STARTUP:
            # kick off the one-shot data load; the UI shows a loading state meanwhile
            app.state.bootstrap_task = asyncio.create_task(runner.run())
        yield
        task = app.state.bootstrap_task
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    app = FastAPI(title="Vaccination Tracker", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.runner = runner
    app.state.bootstrap_task = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)
    register_form_routes(app)
    return app


def register_routes(app: FastAPI) -> None:

    # --- Frontend ---
    @app.get("/", response_class=HTMLResponse)
    async def serve_frontend(
        request: Request,
        view: str = "dashboard",
        error: Optional[str] = None,
        store: VaccinationStore = Depends(get_store),
        runner: BootstrapRunner = Depends(get_runner),
    ):
        """Serves the dashboard page: loading, error with retry, or the selected view."""
        if view not in VIEWS:
            view = "dashboard"
        return templates.TemplateResponse(request, "dashboard.html", {
            "view": view,
            "views": VIEWS,
            "bootstrap": runner.status(),
            "form_error": error,
            "stats": store.statistics,
            "patients": store.patients,
            "vaccines": store.vaccines,
            "genders": get_args(Gender),
            "categories": VACCINE_CATEGORIES,
        })

    @app.post("/retry")
    async def retry_from_page(runner: BootstrapRunner = Depends(get_runner)):
        try:
            await runner.run()
        except BootstrapInProgressError:
            pass  # the page will keep showing the loading state
        return RedirectResponse(url="/", status_code=303)

    # --- Bootstrap ---
    @app.get("/api/bootstrap")
    async def bootstrap_status(runner: BootstrapRunner = Depends(get_runner)):
        return runner.status()

    @app.post("/api/bootstrap")
    async def run_bootstrap(runner: BootstrapRunner = Depends(get_runner)):
        try:
            await runner.run()
        except BootstrapInProgressError as exc:
            raise HTTPException(status_code=409, detail=exc.message)
        return runner.status()

    # --- Patients ---
    @app.get("/api/patients", response_model=List[Patient])
    async def list_patients(store: VaccinationStore = Depends(get_store)):
        return store.patients

    @app.post("/api/patients", response_model=Patient, status_code=201,
              dependencies=[Depends(require_ready)])
    async def add_patient(data: PatientCreate, store: VaccinationStore = Depends(get_store)):
        try:
            return store.add_patient(new_patient(data))
        except DuplicateEntityError as exc:
            raise HTTPException(status_code=409, detail=exc.message)

    # Export patients to CSV
    @app.get("/api/patients/export")
    async def export_patients(
        anonymize: bool = Query(False),
        store: VaccinationStore = Depends(get_store),
    ):
        rows = []
        for patient in store.patients:
            history = patient.vaccination_history
            row = {
                "id": patient.id,
                "name": patient.name,
                "age": patient.age,
                "gender": patient.gender,
                "email": patient.email,
                "phone": patient.phone,
                "status": patient.status.value,
                "doses": len(history),
                "last_vaccine": history[-1].vaccine_name if history else None,
                "last_dose_date": history[-1].date.isoformat() if history else None,
                "next_dose_date": patient.next_dose_date.isoformat() if patient.next_dose_date else None,
            }
            rows.append(anonymize_data(row) if anonymize else row)
        if not rows:
            raise HTTPException(status_code=404, detail="No patients to export.")
        df = pd.DataFrame(rows)
        stream = io.StringIO()
        df.to_csv(stream, index=False)
        stream.seek(0)
        return StreamingResponse(stream, media_type="text/csv", headers={
            "Content-Disposition": "attachment; filename=patients.csv"
        })

    @app.get("/api/patients/{patient_id}")
    async def get_patient(patient_id: str, store: VaccinationStore = Depends(get_store)):
        patient = store.get_patient(patient_id)
        if patient is None:
            raise HTTPException(status_code=404, detail="Patient not found")
        course = evaluate_course(patient.vaccination_history, store.vaccines)
        return {
            "patient": patient.model_dump(mode="json", by_alias=True),
            "course": {
                "vaccineId": course.vaccine_id,
                "vaccineName": course.vaccine_name,
                "dosesReceived": course.doses_received,
                "dosesRequired": course.doses_required,
                "dosesRemaining": course.doses_remaining,
            },
        }

    @app.post("/api/patients/{patient_id}/vaccinations", response_model=Patient,
              dependencies=[Depends(require_ready)])
    async def administer_vaccine(
        patient_id: str,
        data: AdministerRequest,
        store: VaccinationStore = Depends(get_store),
    ):
        try:
            return administer(store, patient_id, data)
        except EntityNotFoundError as exc:
            raise HTTPException(status_code=404, detail=exc.message)
        except OutOfStockError as exc:
            raise HTTPException(status_code=409, detail=exc.message)

    # --- Vaccines ---
    @app.get("/api/vaccines", response_model=List[Vaccine])
    async def list_vaccines(store: VaccinationStore = Depends(get_store)):
        return store.vaccines

    @app.post("/api/vaccines", response_model=Vaccine, status_code=201,
              dependencies=[Depends(require_ready)])
    async def add_vaccine(data: VaccineCreate, store: VaccinationStore = Depends(get_store)):
        try:
            return store.add_vaccine(new_vaccine(data))
        except DuplicateEntityError as exc:
            raise HTTPException(status_code=409, detail=exc.message)

    # --- Dashboard Data API ---
    @app.get("/api/dashboard-stats", response_model=DashboardStats)
    async def dashboard_stats(store: VaccinationStore = Depends(get_store)):
        stats = store.statistics
        if stats is None:
            raise HTTPException(status_code=503, detail="Statistics are not available yet.")
        return stats


def register_form_routes(app: FastAPI) -> None:
    """HTML form posts from the dashboard page; each redirects back to its view."""

    @app.post("/patients/new", dependencies=[Depends(require_ready)])
    async def submit_patient(
        name: str = Form(...),
        age: int = Form(...),
        gender: str = Form(...),
        email: str = Form(...),
        phone: str = Form(...),
        store: VaccinationStore = Depends(get_store),
    ):
        try:
            data = PatientCreate(name=name, age=age, gender=gender, email=email, phone=phone)
            store.add_patient(new_patient(data))
        except ValidationError as exc:
            return page_redirect("patients", validation_message(exc))
        except DuplicateEntityError as exc:
            return page_redirect("patients", exc.message)
        return page_redirect("patients")

    @app.post("/patients/administer", dependencies=[Depends(require_ready)])
    async def submit_dose(
        patient_id: str = Form(...),
        vaccine_id: str = Form(...),
        date: Optional[str] = Form(None),
        next_dose_date: Optional[str] = Form(None),
        store: VaccinationStore = Depends(get_store),
    ):
        try:
            data = AdministerRequest(
                vaccine_id=vaccine_id,
                date=date or None,
                next_dose_date=next_dose_date or None,
            )
            administer(store, patient_id, data)
        except ValidationError as exc:
            return page_redirect("patients", validation_message(exc))
        except (EntityNotFoundError, OutOfStockError) as exc:
            return page_redirect("patients", exc.message)
        return page_redirect("patients")

    @app.post("/vaccines/new", dependencies=[Depends(require_ready)])
    async def submit_vaccine(
        name: str = Form(...),
        manufacturer: str = Form(...),
        category: str = Form(...),
        doses_required: int = Form(...),
        efficacy: float = Form(...),
        in_stock: int = Form(...),
        store: VaccinationStore = Depends(get_store),
    ):
        try:
            data = VaccineCreate(
                name=name,
                manufacturer=manufacturer,
                category=category,
                doses_required=doses_required,
                efficacy=efficacy,
                in_stock=in_stock,
            )
            store.add_vaccine(new_vaccine(data))
        except ValidationError as exc:
            return page_redirect("vaccines", validation_message(exc))
        except DuplicateEntityError as exc:
            return page_redirect("vaccines", exc.message)
        return page_redirect("vaccines")


app = create_app()
