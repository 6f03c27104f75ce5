"""
PharmaDesk - Pharmacy Operations API
Patients, prescription fulfilment tracking and live patient messaging.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.errors import AuthError, InvalidStatusError, NotFoundError, PharmaDeskError, format_error
from .core import errors
from .models.base import Base, engine
from .models import conversation, patient, prescription, user  # noqa: F401  (register tables)
from .api import auth, patients, prescriptions, conversations, live
from .core.access_log_middleware import AccessLogMiddleware

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Create all database tables
# NOTE: In production, use Alembic migrations instead of create_all()
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="PharmaDesk Pharmacy Operations API",
    description=(
        "Pharmacist dashboard backend: patient records, prescription "
        "fulfilment status tracking and real-time patient messaging."
    ),
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(AccessLogMiddleware)

AUTH_STATUS_CODES = {
    errors.AUTH_TOO_MANY_REQUESTS: 429,
    errors.AUTH_NETWORK_FAILED: 503,
    errors.AUTH_INVALID_EMAIL: 400,
    errors.AUTH_USER_DISABLED: 403,
    errors.UNAVAILABLE: 503,
}


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    logger.warning("Login error: %s", exc.code)
    return JSONResponse(
        status_code=AUTH_STATUS_CODES.get(exc.code, 401),
        content={"detail": exc.user_message, "code": exc.code},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    logger.info("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=404, content={"detail": exc.user_message, "code": exc.code})


@app.exception_handler(InvalidStatusError)
async def invalid_status_handler(request: Request, exc: InvalidStatusError):
    return JSONResponse(status_code=400, content={"detail": exc.user_message, "code": exc.code})


@app.exception_handler(PharmaDeskError)
async def domain_error_handler(request: Request, exc: PharmaDeskError):
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"detail": exc.user_message, "code": exc.code})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Global error caught on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Something went wrong. We're sorry, but there was an error loading the application.",
            "error": format_error(None),
            "recovery": "reload",
        },
    )


app.include_router(auth.router, prefix="/api/v1")
app.include_router(patients.router, prefix="/api/v1")
app.include_router(prescriptions.router, prefix="/api/v1")
app.include_router(conversations.router, prefix="/api/v1")
app.include_router(live.router)


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "PharmaDesk API", "version": settings.VERSION}
