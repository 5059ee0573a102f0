from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
import logging

# Load environment variables from .env file FIRST
load_dotenv()

from config import get_settings

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from database import create_db_and_tables
import models  # Import models to register them with SQLModel
from errors import InternalError, ValidationError
from routers import auth, users, patients, appointments, prescriptions, payments, dashboard, admin
from services.file_store import LocalFileStore
from services.identity_provider import build_identity_provider
from services.session_store import build_session_store
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    yield


app = FastAPI(
    title="AyurClinic API",
    description="API for Ayurvedic clinic management",
    version="0.1.0",
    lifespan=lifespan
)

# Shared backends, swappable in tests
app.state.session_store = build_session_store(settings)
app.state.identity_provider = build_identity_provider(settings)
app.state.file_store = LocalFileStore(settings.UPLOAD_DIR, max_bytes=settings.MAX_UPLOAD_BYTES)

# Set up rate limiter
app.state.limiter = auth.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Cookies are only sent cross-origin to an explicit origin list
origins = [
    "http://localhost:5173",
    "http://localhost:8000",
    settings.FRONTEND_URL,
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "X-Requested-With", "Accept", "Origin"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request data", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    content = {"detail": exc.detail}
    if exc.errors:
        content["errors"] = jsonable_encoder(exc.errors)
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content={"detail": error.detail})


# Include routers
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(patients.router)
app.include_router(appointments.router)
app.include_router(prescriptions.router)
app.include_router(payments.router)
app.include_router(dashboard.router)
app.include_router(admin.router)


@app.get("/")
def read_root():
    return {"message": "Welcome to AyurClinic API"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}
