"""Health check and metrics endpoints"""

from fastapi import APIRouter, Depends, Response, status
from datetime import datetime
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from botocore.exceptions import BotoCoreError, ClientError

from invoicer.api.dependencies import get_blob_store
from invoicer.database import get_session_factory
from invoicer.services.blob_store import BlobStore

router = APIRouter(tags=["Health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def basic_health_check():
    """
    Basic health check endpoint

    Returns simple health status and timestamp
    """
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat() + "Z"
    }


@router.get("/api/v1/health", status_code=status.HTTP_200_OK)
async def detailed_health_check(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """
    Detailed health check with service dependency status

    Checks connectivity to:
    - Database
    - S3, including that bucket versioning is enabled (purges rely on it)

    Returns overall status and individual service statuses
    """
    services = {}
    overall_status = "healthy"

    # Check database connectivity
    try:
        async with session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar_one()
        services["database"] = "connected"
    except Exception as e:
        services["database"] = f"disconnected: {str(e)}"
        overall_status = "degraded"

    # Check S3 connectivity and versioning
    try:
        response = blob_store.s3_client.get_bucket_versioning(Bucket=blob_store.bucket)
        if response.get("Status") == "Enabled":
            services["s3"] = "connected"
        else:
            services["s3"] = f"versioning_not_enabled: {blob_store.bucket}"
            overall_status = "degraded"
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        if error_code in ("404", "NoSuchBucket"):
            services["s3"] = f"bucket_not_found: {blob_store.bucket}"
        else:
            services["s3"] = f"disconnected: {error_code}"
        overall_status = "degraded"
    except BotoCoreError as e:
        services["s3"] = f"disconnected: {str(e)}"
        overall_status = "degraded"

    return {
        "status": overall_status,
        "version": "1.0.0",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "services": services
    }


@router.get("/metrics")
async def metrics():
    """Prometheus metrics"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
