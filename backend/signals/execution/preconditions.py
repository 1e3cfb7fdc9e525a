"""
Precondition evaluation for plan steps.

Predicates are matched against a closed list of patterns; nothing is ever
evaluated as code. A predicate that matches no pattern is reported as unknown
and counts as failed.
"""
import re
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Union

from sqlalchemy.orm import Session

from ..contracts.types import PlanStep
from ..models import CompanyFeedback, InterviewApplication, InterviewFeedback, InterviewRound, SyncedEmail
from .targets import load_rounds, parse_selector, resolve_round

UNKNOWN = "unknown"


@dataclass
class PreconditionContext:
    db: Session
    email: SyncedEmail
    step: PlanStep

    @property
    def application(self) -> Optional[InterviewApplication]:
        return self.email.interview_application


Outcome = Union[bool, str]


def _match_matched(ctx: PreconditionContext, m: re.Match) -> Outcome:
    return ctx.email.matched


def _pipeline_stage_ne(ctx: PreconditionContext, m: re.Match) -> Outcome:
    app = ctx.application
    return app is not None and (app.pipeline_stage or "") != m.group(1)


def _pipeline_stage_eq(ctx: PreconditionContext, m: re.Match) -> Outcome:
    app = ctx.application
    return app is not None and (app.pipeline_stage or "") == m.group(1)


def _status_eq(ctx: PreconditionContext, m: re.Match) -> Outcome:
    app = ctx.application
    return app is not None and (app.status or "") == m.group(1)


def _company_feedback_null(ctx: PreconditionContext, m: re.Match) -> Outcome:
    app = ctx.application
    if app is None:
        return False
    return (
        ctx.db.query(CompanyFeedback.id)
        .filter(CompanyFeedback.interview_application_id == app.id)
        .first()
        is None
    )


def _any_pending_round(ctx: PreconditionContext, m: re.Match) -> Outcome:
    app = ctx.application
    if app is None:
        return False
    return (
        ctx.db.query(InterviewRound.id)
        .filter(InterviewRound.interview_application_id == app.id, InterviewRound.result == "pending")
        .first()
        is not None
    )


def _round_feedback_null(ctx: PreconditionContext, m: re.Match) -> Outcome:
    app = ctx.application
    if app is None:
        return False
    selector = parse_selector(ctx.step.target.round)
    rnd = resolve_round(selector, load_rounds(ctx.db, app.id))
    if rnd is None:
        return False
    return (
        ctx.db.query(InterviewFeedback.id)
        .filter(InterviewFeedback.interview_round_id == rnd.id)
        .first()
        is None
    )


PREDICATES: list[tuple[re.Pattern, Callable[[PreconditionContext, re.Match], Outcome]]] = [
    (re.compile(r"\Amatch\.matched == true\Z"), _match_matched),
    (re.compile(r"\Aapplication\.pipeline_stage != (\w+)\Z"), _pipeline_stage_ne),
    (re.compile(r"\Aapplication\.pipeline_stage == (\w+)\Z"), _pipeline_stage_eq),
    (re.compile(r"\Aapplication\.status == (\w+)\Z"), _status_eq),
    (re.compile(r"\Aapplication\.company_feedback == null\Z"), _company_feedback_null),
    (re.compile(r"\Aapplication\.rounds_recent\.any\(result==pending\) == true\Z"), _any_pending_round),
    (re.compile(r"\Around\.interview_feedback == null\Z"), _round_feedback_null),
]


def evaluate(predicate: str, ctx: PreconditionContext) -> Outcome:
    """True/False for a known predicate, UNKNOWN otherwise."""
    pred = (predicate or "").strip()
    for pattern, check in PREDICATES:
        m = pattern.match(pred)
        if m:
            return bool(check(ctx, m))
    return UNKNOWN


def evaluate_all(predicates: Iterable[str], ctx: PreconditionContext) -> dict:
    """Returns {"ok", "failed", "unknown"}. Unknown predicates appear in both lists."""
    preds = [str(p).strip() for p in (predicates or []) if p is not None and str(p).strip()]
    failed: list[str] = []
    unknown: list[str] = []
    for pred in preds:
        res = evaluate(pred, ctx)
        if res == UNKNOWN:
            unknown.append(pred)
            failed.append(pred)
        elif res is False:
            failed.append(pred)
    return {"ok": not failed, "failed": failed, "unknown": unknown}
