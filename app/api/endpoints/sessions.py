"""
Session Endpoints
Scheduling CRUD. Every write keeps the session's billing transaction in sync
and queues the WhatsApp confirmation.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import Database, get_database, get_db
from app.api.endpoints.records import add_record_routes, check_required
from app.core.auth import get_owner_id
from app.core.error_handling import NotFoundException
from app.core.feature_flags import is_financial_backfill_enabled
from app.services.financial_sync import FinancialSyncService, SyncMemo
from app.services.record_store import SessionStore
from app.services.whatsapp_service import send_confirmation_in_background

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["Sessions"])

SYNC_HEADER = "X-Financial-Sync"
REQUIRED_FIELDS = [("patient_id", "patient_id_required"), ("date", "date_required")]


async def sync_financial(db: AsyncSession, owner_id: str, session: Dict[str, Any]) -> str:
    """
    Reconcile the billing transaction of a session that is already committed.
    Returns "synced", "skipped" (nothing to bill) or "failed".
    """
    try:
        transaction = await FinancialSyncService(db).reconcile(owner_id, session)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.warning(f"Financial sync failed for session {session.get('id')}: {e}")
        return "failed"
    return "synced" if transaction is not None else "skipped"


def queue_confirmation(
    background_tasks: BackgroundTasks,
    database: Database,
    owner_id: str,
    session: Dict[str, Any],
) -> None:
    if settings.WHATSAPP_ENABLED:
        background_tasks.add_task(send_confirmation_in_background, database, owner_id, session["id"], session)


def _sync_memo(request: Request) -> SyncMemo:
    memo = getattr(request.app.state, "sync_memo", None)
    if memo is None:
        memo = request.app.state.sync_memo = SyncMemo()
    return memo


@router.get("")
async def list_sessions(
    request: Request,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """
    List sessions, newest first, filtered by query parameters.

    Sessions not yet reconciled by this process get their billing transaction
    created or refreshed on the way.
    """
    store = SessionStore(db)
    sessions = await store.list(owner_id, dict(request.query_params))

    if is_financial_backfill_enabled() and sessions:
        report = await FinancialSyncService(db).backfill(owner_id, sessions, _sync_memo(request))
        try:
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.warning(f"Financial backfill commit failed: {e}")
        else:
            if report.processed or report.failed:
                logger.info(
                    f"Financial backfill for owner {owner_id}: {report.processed} processed, "
                    f"{report.skipped} skipped, {len(report.failed)} failed"
                )

    return sessions


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_session(
    response: Response,
    background_tasks: BackgroundTasks,
    body: Optional[Dict[str, Any]] = Body(None),
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
    database: Database = Depends(get_database),
):
    payload = body or {}
    check_required(payload, REQUIRED_FIELDS)

    created = await SessionStore(db).create(owner_id, payload)
    await db.commit()

    response.headers[SYNC_HEADER] = await sync_financial(db, owner_id, created)
    queue_confirmation(background_tasks, database, owner_id, created)
    return created


@router.put("/{session_id}")
async def update_session(
    session_id: str,
    response: Response,
    background_tasks: BackgroundTasks,
    body: Optional[Dict[str, Any]] = Body(None),
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
    database: Database = Depends(get_database),
):
    updated = await SessionStore(db).update(owner_id, session_id, body or {})
    if updated is None:
        raise NotFoundException()
    await db.commit()

    response.headers[SYNC_HEADER] = await sync_financial(db, owner_id, updated)
    queue_confirmation(background_tasks, database, owner_id, updated)
    return updated


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    owner_id: str = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
):
    """Delete a session; its linked billing transactions go first"""
    store = SessionStore(db)
    if await store.get(owner_id, session_id) is None:
        raise NotFoundException()

    try:
        await FinancialSyncService(db).remove_for_session(owner_id, session_id)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.warning(f"Could not remove transactions of session {session_id}: {e}")

    await store.delete(owner_id, session_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


add_record_routes(router, SessionStore, exclude={"list", "create", "update", "delete"})
