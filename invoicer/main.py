"""Main FastAPI application entry point"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from invoicer.api.errors import register_exception_handlers
from invoicer.api.health import router as health_router
from invoicer.api.projects import router as projects_router
from invoicer.config import settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = FastAPI(
    title="Invoicer Projects API",
    description="Client invoice projects with images kept consistent across database and object storage",
    version="1.0.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

register_exception_handlers(app)

# Include routers
app.include_router(health_router)
app.include_router(projects_router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Invoicer Projects API",
        "version": "1.0.0",
        "status": "running",
    }
