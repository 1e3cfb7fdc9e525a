"""
Round selectors and their resolution.

A plan step names its round with one of three selectors. Resolution is a pure
function over round-like objects (ORM rows or snapshot models): anything with
``id``, ``position``, ``scheduled_at`` and ``result`` attributes.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Union

from sqlalchemy.orm import Session

from ..contracts.types import RoundTargetSpec
from ..models import InterviewRound


@dataclass(frozen=True)
class ById:
    round_id: int


@dataclass(frozen=True)
class LatestPending:
    pass


@dataclass(frozen=True)
class Latest:
    pass


RoundSelector = Union[ById, LatestPending, Latest]


def parse_selector(spec: Optional[RoundTargetSpec]) -> Optional[RoundSelector]:
    """None for "none", unknown selectors, and by_id without an id."""
    if spec is None:
        return None
    if spec.selector == "by_id":
        return ById(spec.id) if spec.id is not None else None
    if spec.selector == "latest_pending":
        return LatestPending()
    if spec.selector == "latest":
        return Latest()
    return None


def _nulls_last(value: Any):
    return (value is None, value if value is not None else 0)


def round_order_key(r: Any):
    """Display order: position, then scheduled_at, then id (missing values last)."""
    scheduled = getattr(r, "scheduled_at", None)
    return (
        _nulls_last(getattr(r, "position", None)),
        (scheduled is None, scheduled if scheduled is not None else ""),
        r.id,
    )


def ordered(rounds: Iterable[Any]) -> list:
    return sorted(rounds, key=round_order_key)


def resolve_round(selector: Optional[RoundSelector], rounds: Iterable[Any]) -> Optional[Any]:
    rounds = list(rounds)
    if isinstance(selector, ById):
        return next((r for r in rounds if r.id == selector.round_id), None)
    if isinstance(selector, LatestPending):
        pending = [r for r in rounds if r.result == "pending"]
        if not pending:
            return None
        # Most recently scheduled first; unscheduled rounds rank below scheduled ones.
        with_date = [r for r in pending if r.scheduled_at is not None]
        if with_date:
            return max(with_date, key=lambda r: (r.scheduled_at, r.id))
        return max(pending, key=lambda r: r.id)
    if isinstance(selector, Latest):
        return ordered(rounds)[-1] if rounds else None
    return None


def load_rounds(db: Session, application_id: Optional[int]) -> list[InterviewRound]:
    """Current rounds for an application, in display order."""
    if application_id is None:
        return []
    rows = db.query(InterviewRound).filter(InterviewRound.interview_application_id == application_id).all()
    return ordered(rows)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse ISO-8601 (trailing Z allowed) into a naive UTC datetime."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt
