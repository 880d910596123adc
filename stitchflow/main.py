from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from stitchflow.api.v1.router import api_router
from stitchflow.config import settings
from stitchflow.core.exceptions import WorkflowError
from stitchflow.database import async_session_factory, init_db


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create tables that do not exist yet (migrations are run with alembic)
    """
    logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)
    await init_db()

    yield

    logger.info("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Orders", "description": "Orders, payments and order timelines"},
    {"name": "Order Items", "description": "Form approval, section inventory checks, reruns and packet workflow"},
    {"name": "Packets", "description": "Material packets assembled for picking"},
    {"name": "Procurement Demands", "description": "Material shortages raised by inventory checks"},
    {"name": "Inventory", "description": "Inventory ledger, stock movements and BOM lines"},
    {"name": "Production", "description": "Per-section production tasks"},
    {"name": "Dyeing", "description": "Dyeing stage, including rejections back to inventory check"},
    {"name": "QA", "description": "QA videos ahead of client approval"},
    {"name": "Sales Approval", "description": "Client approval, alterations, resets and payment approval"},
]


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Section-level fulfillment workflow for custom garment orders.",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.exception_handler(WorkflowError)
async def workflow_exception_handler(request: Request, exc: WorkflowError):
    """Business rule rejections: 400 invalid state, 404 not found, 422 validation."""
    logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.message,
            "type": type(exc).__name__,
            "details": jsonable_encoder(exc.details),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "error": str(exc) if settings.DEBUG else "Internal server error",
            "type": type(exc).__name__,
            "path": str(request.url.path),
            "method": request.method,
        },
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        }
    }

    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status
