from collections.abc import Iterable
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ipgeo.models.db_models import SearchHistory


class HistoryStore:
    """Search history persistence, always scoped to a single owner for reads and deletes."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def insert(self, owner_id: int, ip_address: str, geo_data: dict[str, Any]) -> SearchHistory:
        record = SearchHistory(user_id=owner_id, ip_address=ip_address, geo_data=geo_data)
        self._session.add(record)
        try:
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        self._session.refresh(record)
        return record

    def list_by_owner(self, owner_id: int) -> list[SearchHistory]:
        """Return the owner's records, newest first."""
        stmt = (
            select(SearchHistory)
            .where(SearchHistory.user_id == owner_id)
            .order_by(SearchHistory.created_at.desc(), SearchHistory.id.desc())
        )
        return list(self._session.scalars(stmt))

    def delete_by_owner_and_ids(self, owner_id: int, ids: Iterable[int]) -> int:
        """Delete the owner's records among `ids` and return how many were removed.

        Ids that do not exist or belong to someone else are skipped.
        """
        id_set = set(ids)
        if not id_set:
            return 0

        stmt = delete(SearchHistory).where(SearchHistory.user_id == owner_id, SearchHistory.id.in_(id_set))
        try:
            result = self._session.execute(stmt)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return result.rowcount

    def missing_ids(self, ids: Iterable[int]) -> set[int]:
        """Return the ids that match no record at all, regardless of owner."""
        id_set = set(ids)
        if not id_set:
            return set()
        existing = set(self._session.scalars(select(SearchHistory.id).where(SearchHistory.id.in_(id_set))))
        return id_set - existing
