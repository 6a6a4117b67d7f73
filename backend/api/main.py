"""
FastAPI application entry point.

Run with: uvicorn api.main:app --reload
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from backend/.env (optional) before other imports that read env
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(env_path)

from api.routes import places, reviews, search
from api.routes.common import bad_request
from db import init_db
from services import offline_cache
from settings import settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create app
app = FastAPI(
    title="Toilet Finder API",
    description="Nearest public toilets from OpenStreetMap plus user-submitted places",
    version="0.1.0",
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure properly for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(places.router, prefix="/api/places", tags=["places"])
app.include_router(reviews.router, prefix="/api/reviews", tags=["reviews"])
app.include_router(search.router, prefix="/api/search", tags=["search"])


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed query parameters get the same 400 shape as malformed bodies."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(p) for p in first.get("loc", ()) if p not in ("query", "body"))
    message = f"Invalid {location}" if location else "Invalid request"
    return bad_request(message)


@app.on_event("startup")
def startup_event():
    """Initialize database tables and rotate the offline cache to this version."""
    init_db()
    if settings.OFFLINE_CACHE_ENABLED:
        offline_cache.prepare_offline_cache()


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Toilet Finder API"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
