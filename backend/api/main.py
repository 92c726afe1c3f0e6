"""
FastAPI application entry point.

Run with: uvicorn api.main:app --reload
"""
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from backend/.env (optional) before other imports that read env
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(env_path)

from api.routes import neighborhood, scans
from db import init_db
from services.metadata_extractor import register_heif_opener

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# Register HEIF/HEIC opener at startup (for iPhone photos)
heif_available = register_heif_opener()


# Create app
app = FastAPI(
    title="Trip Scanner API",
    description="API for detecting trips and place stops in a photo library",
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
app.include_router(scans.router, prefix="/scans", tags=["scans"])
app.include_router(neighborhood.router, prefix="/neighborhood", tags=["neighborhood"])


@app.on_event("startup")
def startup_event():
    """Initialize database tables on startup."""
    init_db()


@app.on_event("shutdown")
def shutdown_event():
    """Stop any scan still running."""
    if scans._runner is not None:
        scans._runner.shutdown(wait=False)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Trip Scanner API", "heif": heif_available}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
