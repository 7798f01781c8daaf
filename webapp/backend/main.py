"""FastAPI application for the department rota and coverage engine."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from database import engine, Base
from routers import schedule, leaves, overrides, oncall, coverage, export
from rota.errors import ConstraintViolation, CycleConfigError, InvalidTransition, NotFoundError
from settings import LOG_LEVEL

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Rota Schedule & Coverage Engine",
    description="Schedule resolution, on-call rotation and coverage requests",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins in development
    allow_credentials=False,  # Must be False when allow_origins is "*"
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status, content={"detail": str(exc), "error": type(exc).__name__})


@app.exception_handler(NotFoundError)
def not_found_handler(request: Request, exc: NotFoundError):
    return _error(404, exc)


@app.exception_handler(ConstraintViolation)
def constraint_handler(request: Request, exc: ConstraintViolation):
    logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return _error(409, exc)


@app.exception_handler(InvalidTransition)
def transition_handler(request: Request, exc: InvalidTransition):
    return _error(409, exc)


@app.exception_handler(CycleConfigError)
def cycle_config_handler(request: Request, exc: CycleConfigError):
    logger.warning(f"{request.method} {request.url.path}: cycle configuration error: {exc}")
    return _error(422, exc)


app.include_router(schedule.router, prefix="/api/schedule", tags=["schedule"])
app.include_router(leaves.router, prefix="/api/leaves", tags=["leaves"])
app.include_router(overrides.router, prefix="/api/rota", tags=["rota"])
app.include_router(oncall.router, prefix="/api/oncall", tags=["oncall"])
app.include_router(coverage.router, prefix="/api/coverage", tags=["coverage"])
app.include_router(export.router, prefix="/api/export", tags=["export"])


@app.get("/")
def root():
    return {"message": "Rota Schedule & Coverage Engine API", "docs": "/docs"}
