"""Operator commands for review coordination."""

# purpose: let operators inspect the current distribution epoch and sweep stale locks
# status: active
# depends_on: backend.judging.services.registry, backend.judging.tasks

from __future__ import annotations

import json

import typer

from ..database import SessionLocal
from ..services import registry
from ..services.distribution import NoActiveJudges
from ..tasks import sweep_expired_review_locks

app = typer.Typer(help="Judge review coordination commands")


def preview_distribution(seed: str | None = None) -> dict[str, object]:
    """Summarise the plan the assignment endpoint would serve right now."""

    session = SessionLocal()
    try:
        plan = registry.current_plan(session, seed=seed if seed is not None else registry.DISTRIBUTION_SEED)
    finally:
        session.close()
    counts = plan.counts()
    return {
        "judges": [
            {
                "judge_id": judge_id,
                "position": plan.position(judge_id),
                "assigned": counts[judge_id],
                "target": plan.targets[judge_id],
            }
            for judge_id in plan.judge_order
        ],
        "total_applications": sum(counts.values()) + len(plan.unassigned),
        "expertise_matched": len(plan.expertise_matched),
        "overflow": len(plan.overflow),
        "uncovered_sectors": plan.uncovered_sectors,
        "over_capacity": plan.over_capacity,
        "unassigned": plan.unassigned,
    }


@app.command("preview-distribution")
def preview_distribution_command(
    seed: str = typer.Option(None, help="Seed for the in-sector permutation"),
) -> None:
    try:
        summary = preview_distribution(seed=seed)
    except NoActiveJudges as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(json.dumps(summary, indent=2))


@app.command("sweep-locks")
def sweep_locks_command() -> None:
    """Remove expired review lock rows once."""

    removed = sweep_expired_review_locks()
    typer.echo(json.dumps({"removed": removed}))


if __name__ == "__main__":
    app()
