from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
import logging

from waitlist.core.config import settings
from waitlist.api.v1.api import api_router
from waitlist.core.database import connect_with_retry
from waitlist.core.exceptions import StorageUnavailableError
from waitlist.services.waitlist_service import build_waitlist_service

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Configure audit logger (JSON lines)
audit_logger = logging.getLogger("audit")
if not audit_logger.handlers:
    handler = logging.StreamHandler()
    # Keep raw JSON line without extra prefixes
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)
audit_logger.setLevel(logging.INFO)
# Do not propagate to root to avoid duplication
audit_logger.propagate = False

api_description = """
## Humoni Waitlist API

Join the waitlist, check your position and climb the list by referring friends.

- `POST /api/v1/waitlist?ref=CODE` - join (optionally with a referral code)
- `GET /api/v1/waitlist/position?email=` - current position, points and milestones
- `POST /api/v1/waitlist/share` - credit a social share (rate limited per email)
- `POST /api/v1/contact` - send a message to the Humoni team
- `/api/v1/admin/waitlist/*` - dashboard statistics, export and maintenance (requires `X-Admin-Token`)
"""

app = FastAPI(
    title="Humoni Waitlist API",
    description=api_description,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# GZip compression for large JSON responses
app.add_middleware(GZipMiddleware, minimum_size=500)

# Set up CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({
            "detail": {
                "error": "VALIDATION_ERROR",
                "message": "Please check your input and try again",
                "details": exc.errors(),
            }
        }),
    )


# Include API router
app.include_router(api_router, prefix="/api/v1")


@app.on_event("startup")
def start_waitlist_service():
    try:
        connect_with_retry()
    except StorageUnavailableError as e:
        # Do not block startup; requests surface 503 until the database is back
        logger.error(f"Database connection failed after all retries: {e.details}")
    app.state.waitlist_service = build_waitlist_service()


@app.on_event("shutdown")
def stop_waitlist_service():
    service = getattr(app.state, "waitlist_service", None)
    if service is not None:
        service.close()


@app.get("/")
async def root():
    return {"message": "Humoni Waitlist API is running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
