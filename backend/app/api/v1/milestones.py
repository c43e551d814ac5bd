"""Milestones API: the caller's ordered milestone sequence."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.core.metrics import milestone_mutations_total
from app.database import get_db
from app.models.user import User
from app.schemas.milestone import (
    MilestoneCreate,
    MilestoneResponse,
    MilestoneUpdate,
    ReorderRequest,
)
from app.services import milestone_ordering as ordering
from app.services.milestone_ordering import MilestoneError, MilestoneState
from app.services.milestone_store import MilestoneStore

router = APIRouter(prefix="/milestones", tags=["milestones"])
logger = logging.getLogger(__name__)


def _to_response(ms: MilestoneState) -> MilestoneResponse:
    return MilestoneResponse(
        id=ms.id,
        title=ms.title,
        description=ms.description,
        type=ms.type,
        tags=list(ms.tags),
        completed=ms.completed,
        order=ms.order,
        user_id=ms.user_id,
        date=ms.created_at,
        created_at=ms.created_at,
        updated_at=ms.updated_at,
    )


def _store(db: AsyncSession, user: User) -> MilestoneStore:
    return MilestoneStore(db, user.id)


def _count(operation: str, outcome: str = "ok") -> None:
    milestone_mutations_total.labels(operation=operation, outcome=outcome).inc()


async def _complete(store: MilestoneStore, milestone_id: str) -> MilestoneState:
    """Re-check the completion rules against the stored sequence, then persist."""
    snapshot = await store.list_by_user()
    ordering.apply_completion(snapshot, milestone_id)
    return await store.update_fields(milestone_id, {"completed": True})


@router.get("", response_model=list[MilestoneResponse])
async def list_milestones(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """All of the caller's milestones, ascending by order."""
    return [_to_response(ms) for ms in await _store(db, user).list_by_user()]


@router.post("", response_model=MilestoneResponse, status_code=201)
async def create_milestone(
    body: MilestoneCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Append a milestone to the end of the sequence."""
    ms = await _store(db, user).insert(body.model_dump())
    _count("create")
    logger.info("Created milestone at order %d", ms.order, extra={"milestone_id": ms.id})
    return _to_response(ms)


@router.post("/reorder", response_model=list[MilestoneResponse])
async def reorder_milestones(
    body: ReorderRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Rearrange the incomplete milestones.

    ``ordered_ids`` must list every incomplete milestone exactly once. The
    completed milestones are packed in front, keeping their relative order.
    """
    store = _store(db, user)
    snapshot = await store.list_by_user()
    try:
        result = ordering.apply_reorder(snapshot, body.ordered_ids)
    except MilestoneError as exc:
        _count("reorder", exc.code)
        raise
    stored = await store.bulk_set_order(ordering.order_changes(snapshot, result))
    _count("reorder")
    return [_to_response(ms) for ms in stored]


@router.get("/{milestone_id}", response_model=MilestoneResponse)
async def get_milestone(
    milestone_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return _to_response(await _store(db, user).get(milestone_id))


@router.patch("/{milestone_id}", response_model=MilestoneResponse)
async def update_milestone(
    milestone_id: str,
    body: MilestoneUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Update display fields, or complete via ``completed: true``.

    ``completed: false`` is accepted only for a milestone that is still
    incomplete, where it changes nothing.
    """
    store = _store(db, user)
    update_data = body.model_dump(exclude_unset=True)
    completed = update_data.pop("completed", None)
    current = await store.get(milestone_id)

    try:
        if completed is False:
            ordering.check_uncomplete(current, completed)
        elif completed is True:
            ordering.apply_completion(await store.list_by_user(), milestone_id)
            update_data["completed"] = True
        if update_data:
            current = await store.update_fields(milestone_id, update_data)
    except MilestoneError as exc:
        _count("update", exc.code)
        raise
    _count("update")
    return _to_response(current)


@router.post("/{milestone_id}/complete", response_model=MilestoneResponse)
async def complete_milestone(
    milestone_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Mark a milestone completed. Every earlier milestone must already be."""
    try:
        ms = await _complete(_store(db, user), milestone_id)
    except MilestoneError as exc:
        _count("complete", exc.code)
        raise
    _count("complete")
    logger.info("Completed milestone", extra={"milestone_id": ms.id})
    return _to_response(ms)


@router.delete("/{milestone_id}", status_code=204)
async def delete_milestone(
    milestone_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Delete a milestone. The remaining orders are not renumbered."""
    try:
        await _store(db, user).delete(milestone_id)
    except MilestoneError as exc:
        _count("delete", exc.code)
        raise
    _count("delete")
