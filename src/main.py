import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.api_v1.api import api_router
from api.api_v1.deps import status_code_for
from core.config import settings
from core.exceptions import CrowdfundError, SyncFailed
from log import setup_logging_to_console, setup_logging_to_file
from services.crowdfunding_service import CrowdfundingService

logger = logging.getLogger(__name__)


def create_app(service: Optional[CrowdfundingService] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if service is None:
            setup_logging_to_console()
            setup_logging_to_file(app=settings.PROJECT_NAME)
            app.state.crowdfunding_service = CrowdfundingService.from_settings(settings)
            await app.state.crowdfunding_service.start()
            try:
                await app.state.crowdfunding_service.refresh_all()
            except SyncFailed as e:
                # surfaced through /campaigns/status until a refresh succeeds
                logger.error("Initial refresh failed: %s", e.to_dict())
        else:
            app.state.crowdfunding_service = service

        yield

        await app.state.crowdfunding_service.stop()
        logger.info("Crowdfunding service stopped")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )

    @app.exception_handler(CrowdfundError)
    async def crowdfund_error_handler(request: Request, exc: CrowdfundError):
        error = exc.to_dict()
        return JSONResponse(status_code=status_code_for(error), content={"error": error})

    app.include_router(api_router, prefix=settings.API_V1_STR)
    return app


app = create_app()
