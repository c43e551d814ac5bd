"""Ordering and completion rules for a user's milestone sequence.

Every function here is pure: it takes a snapshot (any sequence of
:class:`MilestoneState`) and returns a new list sorted by ``order`` without
touching its input. The server runs these rules authoritatively on every
mutating request; the client sync layer runs the same rules for optimistic
updates.

Rules:

* ``order`` values are unique per user and define the sequence.
* A milestone can be completed only when every milestone before it is.
* Completion is permanent.
* Reordering permutes the incomplete milestones only. Completed milestones
  keep their relative order and are packed into the lowest slots.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class MilestoneError(Exception):
    """Base class for rejected milestone operations."""

    code = "milestone_error"
    status_code = 400

    def __init__(self, message: str, milestone_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.milestone_id = milestone_id


class MilestoneNotFoundError(MilestoneError):
    code = "not_found"
    status_code = 404

    def __init__(self, milestone_id: str) -> None:
        super().__init__("Milestone not found", milestone_id)


class AlreadyCompletedError(MilestoneError):
    code = "already_completed"
    status_code = 409

    def __init__(self, milestone_id: str) -> None:
        super().__init__("Milestone is already completed", milestone_id)


class PrecedingIncompleteError(MilestoneError):
    code = "preceding_incomplete"

    def __init__(self, milestone_id: str, blocking_id: str | None = None) -> None:
        super().__init__("Complete previous milestones first", milestone_id)
        self.blocking_id = blocking_id


class UncompleteForbiddenError(MilestoneError):
    code = "uncomplete_forbidden"

    def __init__(self, milestone_id: str) -> None:
        super().__init__("Cannot uncheck completed milestone", milestone_id)


class SetMismatchError(MilestoneError):
    code = "set_mismatch"

    def __init__(
        self,
        *,
        missing: Iterable[str] = (),
        unexpected: Iterable[str] = (),
        duplicates: Iterable[str] = (),
    ) -> None:
        self.missing = sorted(missing)
        self.unexpected = sorted(unexpected)
        self.duplicates = sorted(duplicates)
        parts = []
        if self.missing:
            parts.append(f"missing {', '.join(self.missing)}")
        if self.unexpected:
            parts.append(f"not incomplete {', '.join(self.unexpected)}")
        if self.duplicates:
            parts.append(f"duplicated {', '.join(self.duplicates)}")
        super().__init__(
            "Reorder must list every incomplete milestone exactly once"
            + (f" ({'; '.join(parts)})" if parts else "")
        )


# ---------------------------------------------------------------------------
# Snapshot type
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MilestoneState:
    """Immutable snapshot of one milestone."""

    id: str
    order: int
    title: str = ""
    completed: bool = False
    description: str = ""
    type: str = "feature"
    tags: tuple[str, ...] = field(default_factory=tuple)
    user_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, ms: Any) -> MilestoneState:
        """Build a snapshot from a ``Milestone`` ORM row."""
        ms_type = ms.type.value if hasattr(ms.type, "value") else ms.type
        return cls(
            id=str(ms.id),
            order=ms.order,
            title=ms.title,
            completed=bool(ms.completed),
            description=ms.description or "",
            type=ms_type,
            tags=tuple(ms.tags or ()),
            user_id=str(ms.user_id) if ms.user_id else None,
            created_at=ms.created_at,
            updated_at=ms.updated_at,
        )

    @classmethod
    def from_dict(cls, data: dict) -> MilestoneState:
        """Build a snapshot from an API payload."""
        return cls(
            id=str(data["id"]),
            order=int(data["order"]),
            title=data.get("title", ""),
            completed=bool(data.get("completed", False)),
            description=data.get("description") or "",
            type=data.get("type") or "feature",
            tags=tuple(data.get("tags") or ()),
            user_id=data.get("user_id"),
            created_at=_parse_dt(data.get("created_at")),
            updated_at=_parse_dt(data.get("updated_at")),
        )


def _parse_dt(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def new_placeholder_id() -> str:
    """Temporary id for a milestone the server has not stored yet."""
    return f"pending-{uuid.uuid4().hex}"


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def sort_by_order(milestones: Iterable[MilestoneState]) -> list[MilestoneState]:
    return sorted(milestones, key=lambda m: m.order)


def find(milestones: Iterable[MilestoneState], milestone_id: str) -> MilestoneState | None:
    for ms in milestones:
        if ms.id == milestone_id:
            return ms
    return None


def next_order(milestones: Iterable[MilestoneState]) -> int:
    orders = [m.order for m in milestones]
    return max(orders) + 1 if orders else 0


def incomplete_ids(milestones: Iterable[MilestoneState]) -> list[str]:
    """Ids of the incomplete milestones, in their current order."""
    return [m.id for m in sort_by_order(milestones) if not m.completed]


def _first_blocker(
    milestones: Sequence[MilestoneState], target: MilestoneState
) -> MilestoneState | None:
    for ms in sort_by_order(milestones):
        if ms.order >= target.order:
            break
        if not ms.completed:
            return ms
    return None


def can_complete(milestones: Sequence[MilestoneState], milestone_id: str) -> bool:
    """True iff *milestone_id* exists and everything before it is completed."""
    target = find(milestones, milestone_id)
    if target is None:
        return False
    return _first_blocker(milestones, target) is None


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def apply_completion(
    milestones: Sequence[MilestoneState], milestone_id: str
) -> list[MilestoneState]:
    """Mark *milestone_id* completed. Only that milestone's flag changes."""
    target = find(milestones, milestone_id)
    if target is None:
        raise MilestoneNotFoundError(milestone_id)
    if target.completed:
        raise AlreadyCompletedError(milestone_id)
    blocker = _first_blocker(milestones, target)
    if blocker is not None:
        raise PrecedingIncompleteError(milestone_id, blocker.id)
    return sort_by_order(
        replace(ms, completed=True) if ms.id == milestone_id else ms for ms in milestones
    )


def check_uncomplete(milestone: MilestoneState, completed: bool) -> None:
    """Reject a completed -> incomplete transition."""
    if milestone.completed and not completed:
        raise UncompleteForbiddenError(milestone.id)


def apply_reorder(
    milestones: Sequence[MilestoneState], ordered_incomplete_ids: Sequence[str]
) -> list[MilestoneState]:
    """Renumber the whole sequence: completed prefix, then the given permutation.

    *ordered_incomplete_ids* must contain each currently incomplete id exactly
    once and nothing else.
    """
    ordered = sort_by_order(milestones)
    pending = {ms.id: ms for ms in ordered if not ms.completed}

    seen: set[str] = set()
    duplicates: set[str] = set()
    for mid in ordered_incomplete_ids:
        if mid in seen:
            duplicates.add(mid)
        seen.add(mid)
    missing = set(pending) - seen
    unexpected = seen - set(pending)
    if missing or unexpected or duplicates:
        raise SetMismatchError(missing=missing, unexpected=unexpected, duplicates=duplicates)

    done = [ms for ms in ordered if ms.completed]
    result = [replace(ms, order=slot) for slot, ms in enumerate(done)]
    offset = len(done)
    result.extend(
        replace(pending[mid], order=offset + slot)
        for slot, mid in enumerate(ordered_incomplete_ids)
    )
    return result


def insert(
    milestones: Sequence[MilestoneState], new_milestone: MilestoneState
) -> list[MilestoneState]:
    """Append *new_milestone* after the current last milestone."""
    appended = replace(new_milestone, order=next_order(milestones))
    return sort_by_order([*milestones, appended])


def remove(milestones: Sequence[MilestoneState], milestone_id: str) -> list[MilestoneState]:
    """Drop *milestone_id*. Other orders are left as they are."""
    if find(milestones, milestone_id) is None:
        raise MilestoneNotFoundError(milestone_id)
    return sort_by_order(ms for ms in milestones if ms.id != milestone_id)


def order_changes(
    before: Iterable[MilestoneState], after: Iterable[MilestoneState]
) -> dict[str, int]:
    """Map of id -> new order for every milestone whose order differs."""
    old = {ms.id: ms.order for ms in before}
    return {ms.id: ms.order for ms in after if old.get(ms.id) != ms.order}
