from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from fleetdesk.api.routes.companies import router as companies_router
from fleetdesk.api.routes.invitations import dispatcher_router, driver_router
from fleetdesk.logging_config import configure_logging
from fleetdesk.services.invitation_errors import NotAuthenticated
from fleetdesk.tracing import configure_tracing
import fleetdesk.models  # ensure models load for Alembic

# ------------------------------------------------------------------
# Configure Observability
# ------------------------------------------------------------------
configure_logging()
configure_tracing()

app = FastAPI(title="FleetDesk")

app.include_router(companies_router)
app.include_router(dispatcher_router)
app.include_router(driver_router)


@app.exception_handler(NotAuthenticated)
async def not_authenticated_handler(request: Request, exc: NotAuthenticated):
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": str(exc)},
    )

# ------------------------------------------------------------------
# Observability
# ------------------------------------------------------------------
FastAPIInstrumentor.instrument_app(app)
Instrumentator().instrument(app).expose(app)

# ------------------------------------------------------------------
# Health Check
# ------------------------------------------------------------------
@app.get("/health")
def health_check():
    return {"status": "ok"}
