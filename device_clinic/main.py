"""
Device Clinic - FastAPI Application
"""
import logging
import time
import uuid
from datetime import datetime

from fastapi import FastAPI, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import API_HOST, API_PORT, DEBUG, UPLOAD_DIR
from .db import get_db, check_connection, init_db
from .errors import IngestionError
from .logging_config import configure_logging
from .routes import parser, reports
from .services.format_detector import EXTENSION_FORMATS

configure_logging()
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

app = FastAPI(
    title="Device Clinic",
    description="Import of cardiac device interrogation files (Biotronik XML, Abbott LOG, Boston Scientific BNK)",
    version=VERSION,
)


# ==================== Middleware ====================

@app.middleware("http")
async def tag_requests(request: Request, call_next):
    """Give each request a short id, echo it as X-Request-ID and log the outcome."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
    request.state.request_id = request_id
    started = time.perf_counter()

    logger.info(f"➡️ [{request_id}] {request.method} {request.url.path}")
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"❌ [{request_id}] unhandled {type(e).__name__}: {e}", exc_info=True)
        raise

    elapsed = (time.perf_counter() - started) * 1000
    logger.info(f"⬅️ [{request_id}] {response.status_code} in {elapsed:.1f}ms")
    response.headers["X-Request-ID"] = request_id
    return response


# ==================== Error Handling ====================

@app.exception_handler(IngestionError)
async def ingestion_error_handler(request: Request, exc: IngestionError):
    """Every ingestion failure answers with {"error": "<message>"}"""
    request_id = getattr(request.state, "request_id", "-")
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"⚠️ [{request_id}] {type(exc).__name__} ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# ==================== Startup & Health ====================

@app.on_event("startup")
def prepare_storage():
    """Refuse to start without a database; create tables and the upload directory."""
    if not check_connection():
        raise RuntimeError("Cannot connect to database")
    init_db()
    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    logger.info(f"🚀 Device Clinic {VERSION} ready, uploads stored in {UPLOAD_DIR}")


@app.get("/")
def root():
    return {
        "service": "Device Clinic",
        "version": VERSION,
        "formats": sorted(EXTENSION_FORMATS),
    }


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Database connectivity check"""
    try:
        db.execute(text("SELECT 1"))
        database = "healthy"
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: {e}")
        database = f"unhealthy: {e}"

    return {
        "status": "healthy" if database == "healthy" else "degraded",
        "database": database,
        "timestamp": datetime.now().isoformat(),
    }


app.include_router(parser.router)
app.include_router(reports.router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("device_clinic.main:app", host=API_HOST, port=API_PORT, reload=DEBUG)
