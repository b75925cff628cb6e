import logging

from fastapi import APIRouter, Request
from sqlalchemy import text

from pointcore.schemas.health import HealthCheckResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
def health_check(request: Request) -> HealthCheckResponse:
    """Health check endpoint."""

    engine = request.app.container.engine()
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check database query failed: {str(e)}")
        return HealthCheckResponse(status="degraded", database="unavailable", error=str(e))

    return HealthCheckResponse()
