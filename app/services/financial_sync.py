"""
Financial Sync Service
Keeps one "sessao" revenue transaction in step with each scheduled session.

- derive_transaction() maps a session to the transaction it should produce
- FinancialSyncService.reconcile() upserts it: linked record first, then an unlinked
  manual entry for the same patient and day, then a fresh row
- Manual edits survive: payment_method and notes are kept, and a transaction
  marked "pago" is never reverted to "pendente" by a session edit
"""
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import cache_manager
from app.models.records import SESSION_CATEGORY
from app.services.record_store import FinancialStore

logger = logging.getLogger(__name__)

NON_BILLABLE_STATUSES = {"cancelada", "falta"}
PAID_PAYMENT_STATUSES = {"pago", "isento"}
MANUAL_ONLY_FIELDS = ("payment_method", "notes")

# Payload keys that change on every write and never count as a difference
_VOLATILE_KEYS = {"id", "created_date", "updated_date"}

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def to_iso_date(value: Any) -> str:
    """Reduce a date-ish value to "YYYY-MM-DD"; "" when it cannot be parsed"""
    if value is None or value == "":
        return ""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    text = str(value).strip()
    if _ISO_DATE_RE.match(text):
        return text
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return ""
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date().isoformat()


def normalize_amount(value: Any) -> float:
    """
    Parse a price: numbers pass through, strings may use a comma as decimal
    separator ("150,50" -> 150.5). Anything unparseable is 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    else:
        text = str(value if value is not None else "").replace(",", ".", 1).strip()
        # float() would read "1_000" as a thousand
        if not text or "_" in text:
            return 0
        try:
            number = float(text)
        except ValueError:
            return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    return number


def derive_transaction(session: Optional[Mapping[str, Any]], today: Optional[date] = None) -> Optional[Dict[str, Any]]:
    """
    The transaction a session should produce, or None when it bills nothing
    (missing id/patient/date, or a cancelled / no-show session).
    """
    if not session:
        return None
    if not session.get("id") or not session.get("patient_id") or not session.get("date"):
        return None
    if session.get("status") in NON_BILLABLE_STATUSES:
        return None

    due_date = to_iso_date(session.get("date")) or (today or date.today()).isoformat()

    payment_status = session.get("payment_status") or "pendente"
    is_paid = payment_status in PAID_PAYMENT_STATUSES

    amount = normalize_amount(session.get("price"))
    if payment_status == "isento":
        amount = 0

    patient_name = session.get("patient_name") or ""
    base_description = f"Sessão - {patient_name}" if patient_name else "Sessão"

    return {
        "type": "receita",
        "category": SESSION_CATEGORY,
        "description": f"{base_description} ({due_date})",
        "amount": amount,
        "status": "pago" if is_paid else "pendente",
        "due_date": due_date,
        "payment_date": due_date if is_paid else "",
        "patient_id": session.get("patient_id") or "",
        "patient_name": patient_name,
        "session_id": session.get("id") or "",
    }


def merge_transaction(current: Mapping[str, Any], draft: Mapping[str, Any]) -> Dict[str, Any]:
    """Overlay the derived draft on a stored transaction, keeping manual edits"""
    merged = {**current, **draft}

    for key in MANUAL_ONLY_FIELDS:
        value = current.get(key) or draft.get(key)
        if value:
            merged[key] = value

    # A transaction marked as paid is never silently undone by a session edit
    if current.get("status") == "pago" and draft.get("status") == "pendente":
        merged["status"] = current["status"]
        merged["payment_date"] = current.get("payment_date") or merged.get("payment_date")

    return merged


def _differs(current: Mapping[str, Any], merged: Mapping[str, Any]) -> bool:
    keys = (set(current) | set(merged)) - _VOLATILE_KEYS
    return any(current.get(key) != merged.get(key) for key in keys)


class SyncMemo:
    """
    Session ids already reconciled by the backfill during this process lifetime.

    Mirrored to Redis (when configured) so several workers skip the same sessions.
    Purely an optimisation: reconcile() is idempotent.
    """

    KEY_PREFIX = "financial-sync"

    def __init__(self, ttl: int = 12 * 3600):
        self.ttl = ttl
        self._seen: Set[Tuple[str, str]] = set()

    def __contains__(self, item: Tuple[str, str]) -> bool:
        return item in self._seen

    async def claim(self, owner_id: str, session_id: str) -> bool:
        """Record the session; False when it was already recorded here or by another worker"""
        key = (owner_id, session_id)
        if key in self._seen:
            return False
        self._seen.add(key)
        return await cache_manager.add(f"{self.KEY_PREFIX}:{owner_id}:{session_id}", 1, self.ttl)


@dataclass
class BackfillReport:
    processed: int = 0
    skipped: int = 0
    failed: List[str] = field(default_factory=list)


class FinancialSyncService:
    """Reconciles sessions with their billing transactions for one database session"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.transactions = FinancialStore(db)

    async def reconcile(self, owner_id: str, session: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Create or update the transaction billed for ``session``.

        Returns the persisted transaction, or None when the session bills nothing.
        Never deletes. Persistence errors propagate to the caller.
        """
        draft = derive_transaction(session)
        if draft is None:
            return None

        session_id = draft["session_id"]

        linked = await self._find_linked(owner_id, session_id)
        if linked is not None:
            return await self._save_merged(owner_id, linked, draft)

        adopted = await self._adopt_orphan(owner_id, draft)
        if adopted is not None:
            return adopted

        try:
            async with self.db.begin_nested():
                created = await self.transactions.create(owner_id, draft)
        except IntegrityError:
            # Another request linked a transaction to this session meanwhile
            logger.info(f"Session {session_id} was linked concurrently; merging instead of creating")
            linked = await self._find_linked(owner_id, session_id)
            if linked is None:
                raise
            return await self._save_merged(owner_id, linked, draft)

        logger.info(f"Created financial transaction {created['id']} for session {session_id}")
        return created

    async def remove_for_session(self, owner_id: str, session_id: str) -> int:
        """Delete every transaction linked to the session; returns how many were removed"""
        removed = 0
        for transaction in await self.transactions.find_by_session(owner_id, session_id):
            if await self.transactions.delete(owner_id, transaction["id"]):
                removed += 1
        if removed:
            logger.info(f"Removed {removed} financial transaction(s) linked to session {session_id}")
        return removed

    async def backfill(
        self,
        owner_id: str,
        sessions: Iterable[Mapping[str, Any]],
        memo: SyncMemo,
    ) -> BackfillReport:
        """
        Reconcile, one after another, the sessions not yet seen by ``memo``.
        A failing session is logged and does not stop the others.
        """
        report = BackfillReport()
        for session in sessions:
            session_id = session.get("id")
            if not session_id:
                continue
            if not await memo.claim(owner_id, session_id):
                report.skipped += 1
                continue
            try:
                async with self.db.begin_nested():
                    await self.reconcile(owner_id, session)
                report.processed += 1
            except Exception as e:
                logger.warning(f"Financial backfill failed for session {session_id}: {e}")
                report.failed.append(session_id)
        return report

    # ----------------- internals -----------------
    async def _find_linked(self, owner_id: str, session_id: str) -> Optional[Dict[str, Any]]:
        # Only the billing row counts; other entries may point at the session too
        linked = await self.transactions.find_by_session(owner_id, session_id, category=SESSION_CATEGORY)
        return linked[0] if linked else None

    async def _save_merged(self, owner_id: str, current: Dict[str, Any], draft: Mapping[str, Any]) -> Dict[str, Any]:
        merged = merge_transaction(current, draft)
        if not _differs(current, merged):
            return current
        saved = await self.transactions.replace(owner_id, current["id"], merged)
        logger.debug(f"Updated financial transaction {current['id']} from session {draft['session_id']}")
        return saved

    async def _adopt_orphan(self, owner_id: str, draft: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Link a manual entry (no session_id) for the same patient and day, if any"""
        try:
            async with self.db.begin_nested():
                candidates = await self.transactions.filter(
                    owner_id,
                    category=draft["category"],
                    due_date=draft["due_date"],
                    patient_id=draft["patient_id"],
                    type=draft["type"],
                )
                orphan = next((t for t in candidates if not t.get("session_id")), None)
                if orphan is None:
                    return None
                adopted = await self._save_merged(owner_id, orphan, draft)
        except Exception as e:
            logger.warning(f"Could not adopt an unlinked transaction for session {draft['session_id']}: {e}")
            return None

        logger.info(f"Linked existing transaction {adopted['id']} to session {draft['session_id']}")
        return adopted
