"""
Record Store
Generic owner-scoped persistence for payload-backed entities.

Each row keeps its domain object as a JSON payload; callers work with plain dicts
of the form ``{"id": ..., **payload}``. The store never commits: the caller owns
the transaction (``get_db`` or an explicit ``await db.commit()``).
"""
import copy
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Mapping, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.records import (
    ClinicSettings,
    FinancialTransaction,
    MedicalRecord,
    Patient,
    RecordMixin,
    TherapySession,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=RecordMixin)

# Keys that live on the row, never inside the payload
_ROW_KEYS = ("id",)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_payload(obj: Mapping[str, Any]) -> Dict[str, Any]:
    """Stamp ``created_date`` (kept from the first write) and ``updated_date``"""
    payload = {k: v for k, v in dict(obj).items() if k not in _ROW_KEYS}
    now = _now_iso()
    payload["created_date"] = payload.get("created_date") or payload.get("createdAt") or now
    payload["updated_date"] = now
    return payload


def matches_filters(item: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
    """Equality filter; values are compared as strings like query-string values are"""
    for key, value in filters.items():
        if str(item.get(key)) != str(value):
            return False
    return True


class RecordStore(Generic[ModelT]):
    """CRUD over one payload-backed model, always scoped to an owner"""

    model: Type[ModelT]

    def __init__(self, db: AsyncSession, model: Optional[Type[ModelT]] = None):
        self.db = db
        if model is not None:
            self.model = model

    # ----------------- rows -----------------
    async def _get_row(self, owner_id: str, record_id: str) -> Optional[ModelT]:
        result = await self.db.execute(
            select(self.model).where(
                self.model.id == record_id,
                self.model.owner_id == owner_id,
            )
        )
        return result.scalar_one_or_none()

    async def _list_rows(self, owner_id: str, **columns: Any) -> List[ModelT]:
        query = select(self.model).where(self.model.owner_id == owner_id)
        for name, value in columns.items():
            query = query.where(getattr(self.model, name) == value)
        query = query.order_by(self.model.created_at.desc())
        result = await self.db.execute(query)
        return list(result.scalars().all())

    def _sync_columns(self, row: ModelT) -> None:
        """Hook for models that promote payload keys to columns"""

    def _write_payload(self, row: ModelT, payload: Dict[str, Any]) -> None:
        # A fresh object so SQLAlchemy sees the JSON column as changed
        row.data = copy.deepcopy(payload)
        self._sync_columns(row)

    # ----------------- public API -----------------
    async def create(self, owner_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        row = self.model(owner_id=owner_id)
        self._write_payload(row, normalize_payload(payload))
        self.db.add(row)
        await self.db.flush()
        logger.debug(f"Created {self.model.__tablename__} {row.id} for owner {owner_id}")
        return row.to_dict()

    async def get(self, owner_id: str, record_id: str) -> Optional[Dict[str, Any]]:
        row = await self._get_row(owner_id, record_id)
        return row.to_dict() if row else None

    async def update(self, owner_id: str, record_id: str, changes: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Shallow-merge ``changes`` over the stored payload"""
        row = await self._get_row(owner_id, record_id)
        if row is None:
            return None
        merged = {**(row.data or {}), **dict(changes)}
        self._write_payload(row, normalize_payload(merged))
        await self.db.flush()
        return row.to_dict()

    async def replace(self, owner_id: str, record_id: str, payload: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Overwrite the stored payload (``created_date`` is carried over when absent)"""
        row = await self._get_row(owner_id, record_id)
        if row is None:
            return None
        new_payload = dict(payload)
        new_payload.setdefault("created_date", (row.data or {}).get("created_date"))
        self._write_payload(row, normalize_payload(new_payload))
        await self.db.flush()
        return row.to_dict()

    async def delete(self, owner_id: str, record_id: str) -> bool:
        row = await self._get_row(owner_id, record_id)
        if row is None:
            return False
        await self.db.delete(row)
        await self.db.flush()
        return True

    async def list(self, owner_id: str, filters: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """All records of the owner, newest first, optionally equality-filtered"""
        items = [row.to_dict() for row in await self._list_rows(owner_id)]
        if filters:
            items = [item for item in items if matches_filters(item, filters)]
        return items

    async def filter(self, owner_id: str, **criteria: Any) -> List[Dict[str, Any]]:
        return await self.list(owner_id, criteria)

    async def count(self, owner_id: str) -> int:
        return len(await self._list_rows(owner_id))


class PatientStore(RecordStore[Patient]):
    model = Patient


class SessionStore(RecordStore[TherapySession]):
    model = TherapySession


class MedicalRecordStore(RecordStore[MedicalRecord]):
    model = MedicalRecord


class ClinicSettingsStore(RecordStore[ClinicSettings]):
    model = ClinicSettings


class FinancialStore(RecordStore[FinancialTransaction]):
    model = FinancialTransaction

    def _sync_columns(self, row: FinancialTransaction) -> None:
        payload = row.data or {}
        row.category = payload.get("category") or None
        row.session_id = payload.get("session_id") or None

    async def find_by_session(
        self, owner_id: str, session_id: str, category: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Transactions linked to a session, optionally of one category, through the indexed columns"""
        columns: Dict[str, Any] = {"session_id": session_id}
        if category is not None:
            columns["category"] = category
        rows = await self._list_rows(owner_id, **columns)
        return [row.to_dict() for row in rows]


STORES = {
    "patients": PatientStore,
    "sessions": SessionStore,
    "medical-records": MedicalRecordStore,
    "financial": FinancialStore,
    "clinic-settings": ClinicSettingsStore,
}
