"""Optimistic local copy of the milestone list.

Each change is applied to the local list first, then sent to the server.
When the call fails for any reason, an unreadable response included, the
list goes back to the exact snapshot taken before the change and the error
is re-raised. Edits made while a request is in flight are lost by that
rollback.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import replace

from app.client.api_client import ApiError, MilestoneApiClient
from app.services import milestone_ordering as ordering
from app.services.milestone_ordering import MilestoneNotFoundError, MilestoneState

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[MilestoneState], bool]


class MilestoneSync:
    def __init__(self, api: MilestoneApiClient, confirm: ConfirmCallback | None = None) -> None:
        self.api = api
        # Completion cannot be undone, so it needs an explicit yes from the user
        self.confirm = confirm
        self._milestones: list[MilestoneState] = []

    @property
    def milestones(self) -> list[MilestoneState]:
        return list(self._milestones)

    def can_complete(self, milestone_id: str) -> bool:
        return ordering.can_complete(self._milestones, milestone_id)

    def _require(self, milestone_id: str) -> MilestoneState:
        ms = ordering.find(self._milestones, milestone_id)
        if ms is None:
            raise MilestoneNotFoundError(milestone_id)
        return ms

    def _replace(self, updated: MilestoneState, old_id: str | None = None) -> None:
        target = old_id or updated.id
        self._milestones = ordering.sort_by_order(
            updated if ms.id == target else ms for ms in self._milestones
        )

    def _rollback(self, snapshot: list[MilestoneState], action: str, exc: Exception) -> None:
        reason = exc.status_code if isinstance(exc, ApiError) else type(exc).__name__
        logger.info("Server rejected %s (%s); restoring previous list", action, reason)
        self._milestones = snapshot

    async def refresh(self) -> list[MilestoneState]:
        """Replace the local list with the server's."""
        self._milestones = ordering.sort_by_order(await self.api.list_milestones())
        return self.milestones

    async def create(
        self,
        title: str,
        *,
        description: str = "",
        type: str = "feature",
        tags: Sequence[str] = (),
    ) -> MilestoneState:
        snapshot = self.milestones
        draft = MilestoneState(
            id=ordering.new_placeholder_id(),
            order=0,
            title=title,
            description=description,
            type=type,
            tags=tuple(tags),
        )
        self._milestones = ordering.insert(self._milestones, draft)
        try:
            created = await self.api.create_milestone(
                title, description=description, type=type, tags=tags
            )
        except Exception as exc:
            self._rollback(snapshot, "create", exc)
            raise
        self._replace(created, old_id=draft.id)
        return created

    async def update(self, milestone_id: str, **fields) -> MilestoneState:
        """Change display fields. Use :meth:`complete` for completion."""
        if "completed" in fields:
            raise ValueError("Use complete() to change completion")
        current = self._require(milestone_id)
        snapshot = self.milestones
        local = dict(fields)
        if "tags" in local:
            local["tags"] = tuple(local["tags"])
        self._replace(replace(current, **local))
        try:
            updated = await self.api.update_milestone(milestone_id, **fields)
        except Exception as exc:
            self._rollback(snapshot, "update", exc)
            raise
        self._replace(updated)
        return updated

    async def complete(self, milestone_id: str) -> MilestoneState | None:
        """Complete a milestone after the user confirms.

        Returns None when the user declines. Rule violations raise before
        anything is sent.
        """
        target = self._require(milestone_id)
        if self.confirm is None or not self.confirm(target):
            return None
        snapshot = self.milestones
        self._milestones = ordering.apply_completion(self._milestones, milestone_id)
        try:
            completed = await self.api.complete_milestone(milestone_id)
        except Exception as exc:
            self._rollback(snapshot, "complete", exc)
            raise
        self._replace(completed)
        return completed

    async def reorder(self, ordered_incomplete_ids: Sequence[str]) -> list[MilestoneState]:
        snapshot = self.milestones
        self._milestones = ordering.apply_reorder(self._milestones, ordered_incomplete_ids)
        try:
            stored = await self.api.reorder_milestones(ordered_incomplete_ids)
        except Exception as exc:
            self._rollback(snapshot, "reorder", exc)
            raise
        self._milestones = ordering.sort_by_order(stored)
        return self.milestones

    async def delete(self, milestone_id: str) -> None:
        snapshot = self.milestones
        self._milestones = ordering.remove(self._milestones, milestone_id)
        try:
            await self.api.delete_milestone(milestone_id)
        except Exception as exc:
            self._rollback(snapshot, "delete", exc)
            raise
