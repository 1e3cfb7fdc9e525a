#!/usr/bin/env python3
"""
Re-run signals decisioning for synced emails, synchronously (no Redis/Celery).

Each email gets its own recorded run with trigger=manual.

Usage (from backend/; use the project venv):
  ./.venv/bin/python scripts/replay_decisions.py --email-id 42

Common examples:
  # Plan only, persist decision_input_v1/decision_plan_v1 without executing
  ./.venv/bin/python scripts/replay_decisions.py --email-id 42 --shadow

  # Replay every email whose last execution was rejected by semantic validation
  ./.venv/bin/python scripts/replay_decisions.py --status semantic_invalid --limit 100
"""

from __future__ import annotations

import argparse
import os
import sys

# Ensure backend packages are importable when run as script from backend or project root
_script_dir = os.path.dirname(os.path.abspath(__file__))
_backend = os.path.dirname(_script_dir)
if _backend not in sys.path:
    sys.path.insert(0, _backend)

from sqlalchemy.orm import Session

from signals.config import PipelineConfig
from signals.database import SessionLocal
from signals.decisioning.runner import EXECUTION_META_KEY
from signals.models import SyncedEmail
from signals.tasks import run_email_signals


def _email_ids_with_status(db: Session, status: str, limit: int) -> list[int]:
    ids = []
    # extracted_data is a JSON blob; filter in Python so this works on SQLite and Postgres alike.
    for email in db.query(SyncedEmail).order_by(SyncedEmail.id.asc()).yield_per(200):
        data = email.extracted_data if isinstance(email.extracted_data, dict) else {}
        meta = data.get(EXECUTION_META_KEY) or {}
        if meta.get("status") == status:
            ids.append(email.id)
            if len(ids) >= limit:
                break
    return ids


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Replay signals decisioning for synced emails.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--email-id", type=int, default=None, help="Synced email id to replay")
    parser.add_argument("--status", type=str, default=None, help="Replay emails whose decision_execution_v1.status matches")
    parser.add_argument("--limit", type=int, default=100, help="Max emails for --status (default: 100)")
    parser.add_argument("--shadow", action="store_true", help="Plan and validate only; execute nothing")
    args = parser.parse_args()

    if args.email_id is None and not args.status:
        print("ERROR: --email-id or --status is required", file=sys.stderr)
        return 2

    config = PipelineConfig.from_settings()
    mode = "shadow" if args.shadow else "execute"
    if mode == "execute" and not config.execution_enabled:
        print("WARNING: SIGNALS_DECISION_EXECUTION_ENABLED is off; runs will record ok=False", file=sys.stderr)

    db: Session = SessionLocal()
    failures = 0
    try:
        email_ids = [args.email_id] if args.email_id is not None else _email_ids_with_status(db, args.status, args.limit)
        print(f"Replay starting: mode={mode} emails={len(email_ids)}")
        for email_id in email_ids:
            try:
                result = run_email_signals(db, email_id, trigger="manual", mode=mode, config=config)
            except Exception as e:
                failures += 1
                print(f"[{email_id}] exception {type(e).__name__}: {e}", file=sys.stderr, flush=True)
                continue
            if not result.get("ok"):
                failures += 1
            print(f"[{email_id}] {result}", flush=True)
        print(f"Replay done: emails={len(email_ids)} failures={failures}")
        return 0 if failures == 0 else 1
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
