import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fee_engine.api.v1.emi_templates.router import router as emi_templates_router
from fee_engine.api.v1.fee_components.router import router as fee_components_router
from fee_engine.api.v1.fee_structures.router import router as fee_structures_router
from fee_engine.api.v1.installments.router import router as installments_router
from fee_engine.api.v1.payments.router import router as payments_router
from fee_engine.api.v1.scholarships.router import router as scholarships_router
from fee_engine.core.config import settings
from fee_engine.core.exceptions import ServiceError
from fee_engine.core.log_config import configure_logging

logger = logging.getLogger(__name__)


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Render a ServiceError that escaped a router without being translated."""
    if exc.status_code >= 500:
        logger.error("Unhandled service error on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


def create_app() -> FastAPI:
    configure_logging(settings.log_level)
    app = FastAPI(title="Fee Engine")

    # CORS: allow the dashboard frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ServiceError, service_error_handler)

    # Routers
    app.include_router(fee_components_router)
    app.include_router(scholarships_router)
    app.include_router(fee_structures_router)
    app.include_router(emi_templates_router)
    app.include_router(installments_router)
    app.include_router(payments_router)

    return app


app = create_app()
