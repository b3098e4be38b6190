"""
Owner Backfill
Assigns rows created before multi-tenancy (owner_id NULL) to one user.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import (
    SESSION_CATEGORY,
    ClinicSettings,
    FinancialTransaction,
    MedicalRecord,
    Patient,
    TherapySession,
    User,
)
from config import settings

logger = logging.getLogger(__name__)

OWNED_MODELS = {
    "clinicSettings": ClinicSettings,
    "patients": Patient,
    "sessions": TherapySession,
    "medicalRecords": MedicalRecord,
    "financialTransactions": FinancialTransaction,
}


def normalize_email(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


async def count_unowned(db: AsyncSession) -> Dict[str, int]:
    counts = {}
    for name, model in OWNED_MODELS.items():
        result = await db.execute(select(func.count()).select_from(model).where(model.owner_id.is_(None)))
        counts[name] = result.scalar_one()
    return counts


async def find_link_conflicts(db: AsyncSession, owner_id: str) -> List[str]:
    """
    Unowned "sessao" transactions that cannot join ``owner_id`` without breaking
    the one-billing-row-per-session index: duplicates of a session the owner
    already bills, or of another unowned row for the same session (oldest wins).
    """
    owned = await db.execute(
        select(FinancialTransaction.session_id).where(
            FinancialTransaction.owner_id == owner_id,
            FinancialTransaction.category == SESSION_CATEGORY,
            FinancialTransaction.session_id.is_not(None),
        )
    )
    linked = set(owned.scalars().all())

    unowned = await db.execute(
        select(FinancialTransaction.id, FinancialTransaction.session_id)
        .where(
            FinancialTransaction.owner_id.is_(None),
            FinancialTransaction.category == SESSION_CATEGORY,
            FinancialTransaction.session_id.is_not(None),
        )
        .order_by(FinancialTransaction.created_at, FinancialTransaction.id)
    )
    conflicts = []
    for row_id, session_id in unowned.all():
        if session_id in linked:
            conflicts.append(row_id)
        else:
            linked.add(session_id)
    return conflicts


async def backfill_owner(db: AsyncSession, email: str, dry_run: bool = False) -> Dict[str, Any]:
    """
    Give every unowned row to the user with ``email`` (case-insensitive).

    Commits on success unless ``dry_run``.
    """
    target_email = normalize_email(email)
    logger.info(f"[backfill] starting (dry_run={dry_run}) for email={target_email}")

    result = await db.execute(select(User).where(func.lower(User.email) == target_email))
    user = result.scalar_one_or_none()
    if user is None:
        logger.warning(f"[backfill] user not found for email={target_email}. Skipping.")
        return {"skipped": True, "reason": "user_not_found"}

    before = await count_unowned(db)
    logger.info(f"[backfill] rows without owner (before): {before}")

    conflicts = await find_link_conflicts(db, user.id)
    if conflicts:
        logger.warning(
            f"[backfill] {len(conflicts)} session transaction(s) duplicate an existing session link "
            f"and stay without owner: {conflicts}"
        )

    if dry_run:
        logger.info("[backfill] dry run enabled. No changes applied.")
        return {
            "skipped": False,
            "dryRun": True,
            "before": before,
            "conflicts": {"financialTransactions": conflicts},
        }

    updated = {}
    for name, model in OWNED_MODELS.items():
        query = update(model).where(model.owner_id.is_(None))
        if model is FinancialTransaction and conflicts:
            query = query.where(model.id.notin_(conflicts))
        res = await db.execute(query.values(owner_id=user.id))
        updated[name] = res.rowcount or 0
    await db.commit()

    after = await count_unowned(db)
    logger.info(f"[backfill] updated counts: {updated}; without owner (after): {after}")

    return {
        "skipped": False,
        "dryRun": False,
        "user": {"id": user.id, "email": user.email},
        "before": before,
        "updated": updated,
        "after": after,
        "conflicts": {"financialTransactions": conflicts},
    }


async def run_backfill_owner_from_env(db: AsyncSession) -> Dict[str, Any]:
    """Startup hook: runs only when BACKFILL_OWNER_EMAIL is set"""
    if not settings.BACKFILL_OWNER_EMAIL:
        return {"skipped": True}
    return await backfill_owner(db, settings.BACKFILL_OWNER_EMAIL, dry_run=settings.BACKFILL_DRY_RUN)
