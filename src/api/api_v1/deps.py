from typing import Annotated

from fastapi import Depends, Request, status

from core import exceptions
from services.crowdfunding_service import CrowdfundingService

ERROR_STATUS_CODES = {
    exceptions.InvalidAmount.code: status.HTTP_422_UNPROCESSABLE_ENTITY,
    exceptions.PreconditionNotMet.code: status.HTTP_409_CONFLICT,
    exceptions.AlreadyInFlight.code: status.HTTP_409_CONFLICT,
    exceptions.NotFound.code: status.HTTP_404_NOT_FOUND,
    exceptions.NodeUnavailable.code: status.HTTP_503_SERVICE_UNAVAILABLE,
    exceptions.ConfirmationTimeout.code: status.HTTP_504_GATEWAY_TIMEOUT,
    exceptions.CallReverted.code: status.HTTP_502_BAD_GATEWAY,
    exceptions.Rejected.code: status.HTTP_502_BAD_GATEWAY,
    exceptions.SyncFailed.code: status.HTTP_502_BAD_GATEWAY,
    exceptions.MalformedRecord.code: status.HTTP_502_BAD_GATEWAY,
}


def status_code_for(error: dict) -> int:
    return ERROR_STATUS_CODES.get(
        error.get("code"), status.HTTP_500_INTERNAL_SERVER_ERROR
    )


def get_crowdfunding_service(request: Request) -> CrowdfundingService:
    return request.app.state.crowdfunding_service


ServiceDep = Annotated[CrowdfundingService, Depends(get_crowdfunding_service)]
