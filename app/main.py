# app/main.py
"""
FastAPI application for the Gmail bulk campaign service.

Routes:
- /auth          Google sign-in and Gmail connection
- /api/users     Profile and campaign history
- /api/emails    Drafts and starter templates
- /api/campaigns Campaign creation, batch processing and continuation
"""
import logging
import re
from datetime import datetime
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import FRONTEND_URL, ENVIRONMENT, IS_SERVERLESS, LOG_LEVEL, JWT_SECRET_KEY
from app.core.exceptions import CampaignError
from app.core.logging_config import setup_logging
from app.db.session import init_db, test_db_connection
from app.api.v1.router import api_router, auth_router

setup_logging("bulkmail", LOG_LEVEL)

log = logging.getLogger("bulkmail")
log.info("=" * 80)
log.info(f"🚀 Application starting ({ENVIRONMENT}{', serverless' if IS_SERVERLESS else ''})")
log.info("=" * 80)

# Initialize database
try:
    init_db()
    if test_db_connection():
        log.info("✅ Database initialized")
except Exception as e:
    log.error(f"❌ Database error: {e}")

# FastAPI app
app = FastAPI(
    title="Bulk Email Platform",
    description="Personalized Gmail campaigns from Google Sheets",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# ────────────────────────────────────────────
# CORS Configuration
# ────────────────────────────────────────────
ALLOWED_ORIGINS = [
    FRONTEND_URL,
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

LOCAL_ORIGIN_RE = re.compile(r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_origin_regex=LOCAL_ORIGIN_RE.pattern,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=86400,
)

# Include routes
app.include_router(auth_router, prefix="/auth")
app.include_router(api_router, prefix="/api")


# ────────────────────────────────────────────
# Public routes
# ────────────────────────────────────────────

@app.get("/", tags=["System"])
def index():
    return {
        "message": "Bulk Email Platform API",
        "status": "running",
        "environment": ENVIRONMENT,
    }


@app.get("/health", tags=["System"])
def health():
    """Health check endpoint"""
    db_ok = test_db_connection()
    return {
        "status": "ok" if db_ok else "degraded",
        "database_ok": db_ok,
        "jwt_enabled": bool(JWT_SECRET_KEY),
        "timestamp": datetime.utcnow().isoformat(),
    }


# ────────────────────────────────────────────
# Exception Handlers
# ────────────────────────────────────────────

@app.exception_handler(CampaignError)
async def campaign_error_handler(request: Request, exc: CampaignError):
    """Render domain errors as {error, details, action?}"""
    if exc.status_code >= 500:
        log.error(f"❌ {request.method} {request.url.path}: {exc.__class__.__name__}: {exc.message}")
    else:
        log.warning(f"⚠️ {request.method} {request.url.path}: {exc.__class__.__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Anything else is a 500 with the error text"""
    log.exception(f"❌ {request.method} {request.url.path} failed")
    return JSONResponse(
        status_code=500,
        content={"error": "Operation failed", "details": str(exc)}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
