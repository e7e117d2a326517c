from fastapi import APIRouter

from api.api_v1.endpoints import campaigns, healthz

api_router = APIRouter()

# Group routes by adding tags parameter
api_router.include_router(campaigns.router, prefix="/campaigns", tags=["Campaigns"])
api_router.include_router(healthz.router, prefix="/healthz", tags=["Others"])
api_router.redirect_slashes = False
