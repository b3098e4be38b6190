"""
Generic owner-scoped CRUD routes
Shared by every payload-backed resource; resources with extra behaviour
override single operations through ``exclude``.
"""
from typing import Any, Dict, Iterable, Optional, Tuple, Type

from fastapi import APIRouter, Body, Depends, Request, Response, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from app.core.auth import get_owner_id
from app.core.error_handling import ConflictException, NotFoundException, ValidationException
from app.services.record_store import RecordStore

# (payload key, error message) pairs checked on create
RequiredFields = Iterable[Tuple[str, str]]


def check_required(payload: Dict[str, Any], required: RequiredFields) -> None:
    for key, message in required:
        if not payload.get(key):
            raise ValidationException(message)


def add_record_routes(
    router: APIRouter,
    store_cls: Type[RecordStore],
    required: RequiredFields = (),
    exclude: Iterable[str] = (),
) -> None:
    """
    Register list/get/create/update/delete on ``router``

    ``exclude`` names operations the resource module implements itself.
    """
    exclude = set(exclude)
    required = tuple(required)

    if "list" not in exclude:
        @router.get("")
        async def list_records(
            request: Request,
            owner_id: str = Depends(get_owner_id),
            db: AsyncSession = Depends(get_db),
        ):
            """List the owner's records, newest first; query parameters filter by equality"""
            return await store_cls(db).list(owner_id, dict(request.query_params))

    if "get" not in exclude:
        @router.get("/{record_id}")
        async def get_record(
            record_id: str,
            owner_id: str = Depends(get_owner_id),
            db: AsyncSession = Depends(get_db),
        ):
            record = await store_cls(db).get(owner_id, record_id)
            if record is None:
                raise NotFoundException()
            return record

    if "create" not in exclude:
        @router.post("", status_code=status.HTTP_201_CREATED)
        async def create_record(
            body: Optional[Dict[str, Any]] = Body(None),
            owner_id: str = Depends(get_owner_id),
            db: AsyncSession = Depends(get_db),
        ):
            payload = body or {}
            check_required(payload, required)
            try:
                created = await store_cls(db).create(owner_id, payload)
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise ConflictException("session_already_linked")
            return created

    if "update" not in exclude:
        @router.put("/{record_id}")
        async def update_record(
            record_id: str,
            body: Optional[Dict[str, Any]] = Body(None),
            owner_id: str = Depends(get_owner_id),
            db: AsyncSession = Depends(get_db),
        ):
            try:
                updated = await store_cls(db).update(owner_id, record_id, body or {})
                if updated is None:
                    raise NotFoundException()
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise ConflictException("session_already_linked")
            return updated

    if "delete" not in exclude:
        @router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
        async def delete_record(
            record_id: str,
            owner_id: str = Depends(get_owner_id),
            db: AsyncSession = Depends(get_db),
        ):
            if not await store_cls(db).delete(owner_id, record_id):
                raise NotFoundException()
            await db.commit()
            return Response(status_code=status.HTTP_204_NO_CONTENT)
