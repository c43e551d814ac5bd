"""Per-user milestone persistence.

The store hands out :class:`MilestoneState` snapshots and accepts the
snapshots/changes computed by :mod:`app.services.milestone_ordering`. It
commits its own writes; a failed write is rolled back in full.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.milestone import Milestone, MilestoneType
from app.services import milestone_ordering as ordering
from app.services.milestone_ordering import MilestoneNotFoundError, MilestoneState

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset({"title", "description", "type", "tags", "completed"})


class StorageUnavailableError(Exception):
    """The database could not complete the request. Safe to retry."""

    code = "storage_unavailable"
    status_code = 503

    def __init__(self, message: str = "Storage temporarily unavailable") -> None:
        super().__init__(message)
        self.message = message


def _parse_id(milestone_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(milestone_id))
    except ValueError:
        raise MilestoneNotFoundError(str(milestone_id)) from None


class MilestoneStore:
    """Milestone table access scoped to one owner."""

    def __init__(self, db: AsyncSession, user_id: uuid.UUID) -> None:
        self.db = db
        self.user_id = user_id

    # -- reads -------------------------------------------------------------

    async def _rows(self) -> list[Milestone]:
        try:
            result = await self.db.execute(
                select(Milestone)
                .where(Milestone.user_id == self.user_id)
                .order_by(Milestone.order, Milestone.created_at)
            )
        except SQLAlchemyError as exc:
            logger.exception("Failed to load milestones", extra={"user_id": str(self.user_id)})
            raise StorageUnavailableError() from exc
        return list(result.scalars().all())

    async def _row(self, milestone_id: str) -> Milestone:
        mid = _parse_id(milestone_id)
        try:
            result = await self.db.execute(
                select(Milestone).where(Milestone.id == mid, Milestone.user_id == self.user_id)
            )
        except SQLAlchemyError as exc:
            logger.exception("Failed to load milestone", extra={"milestone_id": str(mid)})
            raise StorageUnavailableError() from exc
        ms = result.scalar_one_or_none()
        if ms is None:
            raise MilestoneNotFoundError(str(milestone_id))
        return ms

    async def list_by_user(self) -> list[MilestoneState]:
        return [MilestoneState.from_model(ms) for ms in await self._rows()]

    async def get(self, milestone_id: str) -> MilestoneState:
        return MilestoneState.from_model(await self._row(milestone_id))

    # -- writes ------------------------------------------------------------

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.exception("Milestone write failed", extra={"user_id": str(self.user_id)})
            raise StorageUnavailableError() from exc

    async def insert(self, fields: Mapping) -> MilestoneState:
        """Store a new milestone at the end of the sequence."""
        snapshot = await self.list_by_user()
        draft = MilestoneState(id=ordering.new_placeholder_id(), order=0)
        placed = ordering.find(ordering.insert(snapshot, draft), draft.id)

        ms = Milestone(
            user_id=self.user_id,
            title=fields["title"],
            description=fields.get("description") or "",
            type=MilestoneType(fields.get("type") or MilestoneType.FEATURE),
            tags=list(fields.get("tags") or []),
            completed=False,
            order=placed.order,
        )
        self.db.add(ms)
        await self._commit()
        await self.db.refresh(ms)
        return MilestoneState.from_model(ms)

    async def update_fields(self, milestone_id: str, partial: Mapping) -> MilestoneState:
        """Write the given fields as-is. Completion rules are the caller's job."""
        unknown = set(partial) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        ms = await self._row(milestone_id)
        for name, value in partial.items():
            if name == "type":
                value = MilestoneType(value)
            elif name == "tags":
                value = list(value)
            setattr(ms, name, value)
        await self._commit()
        await self.db.refresh(ms)
        return MilestoneState.from_model(ms)

    async def delete(self, milestone_id: str) -> None:
        ms = await self._row(milestone_id)
        await self.db.delete(ms)
        await self._commit()

    async def bulk_set_order(
        self, pairs: Mapping[str, int] | Iterable[tuple[str, int]]
    ) -> list[MilestoneState]:
        """Set several orders in one transaction and return the full list.

        Every id is checked before anything is written, so an unknown id
        leaves the table untouched.
        """
        items = list(pairs.items()) if isinstance(pairs, Mapping) else list(pairs)
        rows = {str(ms.id): ms for ms in await self._rows()}
        for mid, _ in items:
            if mid not in rows:
                raise MilestoneNotFoundError(mid)

        for mid, new_order in items:
            rows[mid].order = new_order
        if items:
            await self._commit()
        return ordering.sort_by_order(MilestoneState.from_model(ms) for ms in rows.values())
