from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ipgeo.auth import get_current_user
from ipgeo.auth import router as auth_router
from ipgeo.clients.base import BaseGeolocationClient
from ipgeo.clients.ipinfo_client import IpInfoClient
from ipgeo.config import Settings, get_settings
from ipgeo.database import get_session, init_db
from ipgeo.errors import AuthenticationError
from ipgeo.exception_handlers import (
    authentication_exception_handler,
    pydantic_validation_exception_handler,
    request_validation_exception_handler,
    unhandled_exception_handler,
    validation_error_response,
)
from ipgeo.history_store import HistoryStore
from ipgeo.logger import logger
from ipgeo.lookup_service import LookupService
from ipgeo.models.db_models import User
from ipgeo.models.request_models import GeolocationRequest, HistoryDeleteRequest
from ipgeo.models.response_models import (
    ErrorResponse,
    GeolocationResponse,
    HealthResponse,
    HistoryDeleteResponse,
    HistoryListResponse,
    HistoryRecordOut,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    init_db()
    logger.info("Started IP Geolocation History Service")
    yield


app = FastAPI(
    title="IP Geolocation History Service",
    version="0.1.0",
    description="Look up IP geolocation data and keep a per-user search history.",
    lifespan=lifespan,
)

app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
app.add_exception_handler(ValidationError, pydantic_validation_exception_handler)
app.add_exception_handler(AuthenticationError, authentication_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(auth_router)


def get_geolocation_client(settings: Annotated[Settings, Depends(get_settings)]) -> BaseGeolocationClient:
    """Dependency to provide the configured geolocation provider client."""
    return IpInfoClient(
        base_url=settings.ipinfo_base_url,
        timeout_seconds=settings.lookup_timeout_seconds,
        token=settings.ipinfo_token,
    )


def get_history_store(session: Annotated[Session, Depends(get_session)]) -> HistoryStore:
    return HistoryStore(session)


def get_lookup_service(
    client: Annotated[BaseGeolocationClient, Depends(get_geolocation_client)],
    store: Annotated[HistoryStore, Depends(get_history_store)],
) -> LookupService:
    return LookupService(client, store)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(message=message).model_dump(exclude_none=True))


@app.get(
    "/health",
    tags=["health"],
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
)
async def health() -> HealthResponse:
    """Basic health check endpoint."""
    return HealthResponse(status="ok")


@app.get(
    "/geolocation",
    response_model=GeolocationResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
    tags=["geolocation"],
    summary="Look up geolocation information for an IP address, or for the caller.",
)
async def geolocation(
    request: Request,
    query: Annotated[GeolocationRequest, Depends()],
    user: Annotated[User, Depends(get_current_user)],
    service: Annotated[LookupService, Depends(get_lookup_service)],
):
    """Look up geolocation information for either a specific IP or the caller's IP.

    - If `query.ip` is provided, that IP is looked up and the result is added to
      the caller's search history.
    - Otherwise the provider resolves the address the request reaches it from,
      and nothing is recorded.
    """
    logger.info(
        "Performing geolocation lookup "
        f"path={request.url.path} method={request.method} ip={query.ip or 'self'} user_id={user.id}"
    )
    try:
        outcome = await service.perform_lookup(query.ip, user)
    except Exception as exc:
        logger.exception(f"Geolocation lookup crashed path={request.url.path} ip={query.ip} error={exc}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Error: {exc}")

    if not outcome.success:
        return _error(status.HTTP_400_BAD_REQUEST, outcome.message)

    return GeolocationResponse(data=outcome.data)


@app.get(
    "/history",
    response_model=HistoryListResponse,
    responses={status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse}},
    tags=["history"],
    summary="List the caller's search history, newest first.",
)
def list_history(
    user: Annotated[User, Depends(get_current_user)],
    store: Annotated[HistoryStore, Depends(get_history_store)],
):
    try:
        records = store.list_by_owner(user.id)
    except Exception as exc:
        logger.exception(f"Failed to fetch search history user_id={user.id}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Error fetching history: {exc}")

    return HistoryListResponse(data=[HistoryRecordOut.model_validate(record) for record in records])


@app.delete(
    "/history",
    response_model=HistoryDeleteResponse,
    responses={
        422: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
    tags=["history"],
    summary="Delete several of the caller's history records at once.",
)
def delete_history(
    body: HistoryDeleteRequest,
    user: Annotated[User, Depends(get_current_user)],
    store: Annotated[HistoryStore, Depends(get_history_store)],
):
    """Delete the given records.

    Every id must reference an existing record, otherwise the request is rejected
    with 422. Ids owned by other users pass validation but are not deleted, so
    `deleted_count` may be smaller than the number of ids sent.
    """
    try:
        missing = store.missing_ids(body.ids)
        if missing:
            return validation_error_response(
                {
                    f"ids.{index}": [f"The selected ids.{index} is invalid."]
                    for index, history_id in enumerate(body.ids)
                    if history_id in missing
                }
            )

        deleted = store.delete_by_owner_and_ids(user.id, body.ids)
    except Exception as exc:
        logger.exception(f"Failed to delete search history user_id={user.id} ids={body.ids}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Error deleting history: {exc}")

    logger.info(f"Deleted search history user_id={user.id} requested={len(body.ids)} deleted={deleted}")
    return HistoryDeleteResponse(deleted_count=deleted)
