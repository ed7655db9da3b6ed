"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from agility.config import get_settings
from agility.database import close_db, init_db
from agility.routers import (
    approvals,
    auth,
    cron,
    expired,
    hour_changes,
    notifications,
    phases,
    projects,
    weekly,
)

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info("Agility API started (%s)", settings.app_env)
    yield
    await close_db()


app = FastAPI(
    title="Agility Resource Planning",
    description="Phase allocations, weekly planning, phase status and expired-hours handling",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=422, content={"error": message})


app.include_router(auth.router)
app.include_router(projects.router)
app.include_router(phases.router)
app.include_router(approvals.router)
app.include_router(weekly.router)
app.include_router(expired.router)
app.include_router(hour_changes.router)
app.include_router(notifications.router)
app.include_router(cron.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
