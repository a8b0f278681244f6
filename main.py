from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app_logging import setup_logging
from config import get_settings
from db_models import FinalResponse, IdentifyRequest
from db_setup import init_db
from errors import InvariantViolationError, ServiceUnavailableError
from identity_service import IdentityService

logger = structlog.get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level)
    init_db()
    logger.info("Contact store ready", database_path=settings.database_path, service=settings.service_name)
    yield


app = FastAPI(
    title="Bitespeed Contact Reconciliation API",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "error", "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0]["msg"] if errors else "Invalid request"
    if errors and errors[0].get("loc"):
        message = f"{errors[0]['loc'][-1]}: {message}"
    return JSONResponse(status_code=400, content={"status": "error", "message": message})


@app.exception_handler(InvariantViolationError)
async def invariant_error_handler(request: Request, exc: InvariantViolationError):
    logger.error("Contact group invariant violated", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"status": "error", "message": "Internal server error"})


@app.exception_handler(ServiceUnavailableError)
async def unavailable_error_handler(request: Request, exc: ServiceUnavailableError):
    return JSONResponse(
        status_code=503,
        content={"status": "error", "message": "Contact store is busy, please retry"},
    )


@app.get("/")
async def root():
    return {"message": "Bitespeed API is up"}


@app.get("/api")
async def api_info():
    return {
        "status": "success",
        "message": "Bitespeed Identity Reconciliation Service",
        "version": VERSION,
        "endpoints": {
            "identify": "POST /identify",
            "health": "GET /health",
        },
    }


@app.get("/health")
async def health():
    return {
        "status": "success",
        "message": "Service is healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# Plain def: FastAPI runs it in the threadpool, off the event loop, while
# sqlite blocks on the write lock.
@app.post("/identify", response_model=FinalResponse)
def identify(request: IdentifyRequest):

    email = request.email
    phone = request.phoneNumber

    if not email and not phone:
        raise HTTPException(status_code=400, detail="Either email or phoneNumber must be provided")

    return IdentityService().identify(email, phone)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
