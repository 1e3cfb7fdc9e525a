"""Email signals pipeline: facts extraction, deterministic planning, guarded execution."""
