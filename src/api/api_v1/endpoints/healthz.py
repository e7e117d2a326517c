from fastapi import APIRouter, status
from pydantic import BaseModel

from api.api_v1.deps import ServiceDep

router = APIRouter()


class HealthCheckResponse(BaseModel):
    status: str
    campaign_count: int
    refresh_error: dict | None = None


@router.get("/", response_model=HealthCheckResponse, status_code=status.HTTP_200_OK)
async def health_check(service: ServiceDep):
    return HealthCheckResponse(
        status="ok" if service.status_board.refresh.error is None else "degraded",
        campaign_count=service.store.count,
        refresh_error=service.status_board.refresh.error,
    )
