from fastapi import status
from fastapi.responses import JSONResponse

from queue_manager.domain.results import OperationResult

ERROR_STATUS = {
    "InvalidQueue": status.HTTP_404_NOT_FOUND,
    "JobNotFound": status.HTTP_404_NOT_FOUND,
    "InvalidJobId": status.HTTP_400_BAD_REQUEST,
    "InvalidLimit": status.HTTP_400_BAD_REQUEST,
    "InvalidJobAction": status.HTTP_400_BAD_REQUEST,
    "InvalidRequest": status.HTTP_400_BAD_REQUEST,
    "BackendUnavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
}

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def status_for(result: OperationResult) -> int:
    if result.success:
        return status.HTTP_200_OK
    return ERROR_STATUS.get(result.error, status.HTTP_422_UNPROCESSABLE_ENTITY)


def envelope(result: OperationResult, no_cache: bool = False) -> JSONResponse:
    return JSONResponse(
        content=result.to_envelope(),
        status_code=status_for(result),
        headers=NO_CACHE_HEADERS if no_cache else None,
    )
