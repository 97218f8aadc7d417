"""Application factory: wires services, middleware and routers into a FastAPI app."""

import logging

from fastapi import FastAPI

from api.actions import create_actions_router
from api.config import AppConfig
from api.data import create_data_router
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from auth.security_middleware import AuthMiddleware
from auth.session import SessionReader
from clients.postgres_client import PostgresClient
from core.audit import AuditLogger
from core.services.appointment_service import AppointmentService
from core.services.imaging_order_service import ImagingOrderService
from core.services.invoice_service import InvoiceService
from core.services.lab_order_service import LabOrderService
from core.services.medical_note_service import MedicalNoteService
from core.services.patient_service import PatientService
from core.services.prescription_service import PrescriptionService

logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("hvac").setLevel(logging.WARNING)


def build_services(postgres: PostgresClient, config: AppConfig) -> dict:
    """Construct the service layer over one connection pool."""
    audit = AuditLogger(postgres)
    return {
        "audit": audit,
        "patient": PatientService(postgres, audit),
        "appointment": AppointmentService(postgres, audit, config.clinic_timezone),
        "invoice": InvoiceService(postgres, audit),
        "medical_note": MedicalNoteService(postgres, audit),
        "prescription": PrescriptionService(postgres, audit),
        "lab_order": LabOrderService(postgres, audit),
        "imaging_order": ImagingOrderService(postgres, audit),
    }


def create_app(services: dict, session_reader: SessionReader, config: AppConfig | None = None) -> FastAPI:
    config = config or AppConfig()

    app = FastAPI(title="Clinic EMR API")
    # Starlette runs the last-added middleware first
    app.add_middleware(
        AuthMiddleware,
        session_reader=session_reader,
        cookie_name=config.session_cookie_name,
    )
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(create_data_router(services, config), prefix="/api")
    app.include_router(create_actions_router(services), prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


def create_production_app(config: AppConfig | None = None) -> FastAPI:
    """Build the app against the database URL stored in Vault."""
    from clients.vault_client import get_database_url

    config = config or AppConfig()
    configure_logging()

    postgres = PostgresClient(get_database_url(), maxconn=config.db_max_connections)
    app = create_app(build_services(postgres, config), SessionReader(postgres), config)

    @app.on_event("shutdown")
    def close_pool():
        PostgresClient.close_all_pools()

    logger.info("Clinic API ready (timezone %s)", config.clinic_timezone)
    return app
