from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from ipgeo.clients.base import BaseGeolocationClient
from ipgeo.errors import IpProviderError
from ipgeo.history_store import HistoryStore
from ipgeo.logger import logger
from ipgeo.models.db_models import SearchHistory, User

LOOKUP_FAILED_MESSAGE = "Failed to fetch geolocation data"


@dataclass
class LookupOutcome:
    success: bool
    data: dict[str, Any] = field(default_factory=dict)
    message: str | None = None
    record: SearchHistory | None = None


def normalize_ip(ip: str | None) -> str:
    """Collapse None and blank input to "" (self lookup); strip anything else."""
    return (ip or "").strip()


class LookupService:
    """Runs a provider lookup and records explicit lookups in the requester's history.

    Recording is best-effort: a storage failure is logged and the lookup result is
    still returned to the caller.
    """

    def __init__(self, client: BaseGeolocationClient, store: HistoryStore) -> None:
        self._client = client
        self._store = store

    async def perform_lookup(self, ip: str | None, requester: User | None = None) -> LookupOutcome:
        target = normalize_ip(ip)

        try:
            data = await self._client.lookup(target or None)
        except IpProviderError as exc:
            logger.warning(f"Geolocation provider lookup failed ip={target or 'self'} error={exc}")
            return LookupOutcome(success=False, message=LOOKUP_FAILED_MESSAGE)

        record = None
        if target and requester is not None:
            record = await self._record(requester, target, data)

        return LookupOutcome(success=True, data=data, record=record)

    async def _record(self, requester: User, ip: str, data: dict[str, Any]) -> SearchHistory | None:
        try:
            return await run_in_threadpool(self._store.insert, requester.id, ip, data)
        except SQLAlchemyError:
            logger.exception(f"Failed to record search history user_id={requester.id} ip={ip}")
            return None
