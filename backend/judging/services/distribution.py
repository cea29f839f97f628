"""Deterministic partition of the application pool across active judges.

Two passes:

1. Expertise pass. Applications are grouped by sector and each sector is
   split into contiguous blocks across the judges whose expertise covers it;
   the first ``n mod k`` qualified judges take one extra. Sectors nobody
   covers are deferred to the overflow pool.
2. Rebalancing pass. Every judge gets a target of ``floor(N / J)`` with the
   first ``N mod J`` judges taking one extra. Judges above target give up the
   tail of their list; the overflow pool is then handed out one application
   at a time to the judge with the most remaining capacity.

Judges are ordered by ``(created_at, judge_id)`` and applications inside a
sector by ``(created_at, application_id)``. Passing a ``seed`` replaces the
in-sector order with a Mersenne Twister permutation from
``random.Random(f"{seed}:{sector}")``; string seeds are hashed with SHA-512,
so the permutation does not depend on ``PYTHONHASHSEED`` or on the process.

Without exclusions every application lands in exactly one list and the
per-judge counts differ by at most one.
"""

from __future__ import annotations

import logging
import random
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping, Sequence

# purpose: compute each judge's worklist for one distribution epoch from explicit snapshots
# status: active

logger = logging.getLogger(__name__)


class DistributionError(ValueError):
    """Raised when the inputs cannot be partitioned."""


class NoActiveJudges(DistributionError):
    """Raised when there is nobody to distribute applications to."""


@dataclass(frozen=True)
class ApplicationSnapshot:
    application_id: str
    sector: str
    created_at: datetime | None = None


@dataclass(frozen=True)
class JudgeSnapshot:
    judge_id: str
    expertise_sectors: frozenset[str] = frozenset()
    created_at: datetime | None = None
    max_applications: int | None = None


@dataclass
class DistributionPlan:
    """Outcome of one distribution epoch plus the diagnostics behind it."""

    assignments: dict[str, list[str]]
    targets: dict[str, int]
    judge_order: list[str]
    expertise_matched: frozenset[str] = frozenset()
    overflow: list[str] = field(default_factory=list)
    uncovered_sectors: list[str] = field(default_factory=list)
    over_capacity: list[str] = field(default_factory=list)
    unassigned: list[str] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {judge_id: len(apps) for judge_id, apps in self.assignments.items()}

    def for_judge(self, judge_id: str) -> list[str]:
        return list(self.assignments.get(judge_id, []))

    def position(self, judge_id: str) -> int | None:
        """1-based position of the judge in the stable order."""

        try:
            return self.judge_order.index(judge_id) + 1
        except ValueError:
            return None


def _stable_key(created_at: datetime | None, identifier: str) -> tuple:
    if created_at is None:
        return (1, identifier)
    return (0, created_at, identifier)


def _order_sector(
    applications: list[ApplicationSnapshot],
    sector: str,
    seed: str | None,
) -> list[ApplicationSnapshot]:
    ordered = sorted(applications, key=lambda app: _stable_key(app.created_at, app.application_id))
    if seed is not None:
        random.Random(f"{seed}:{sector}").shuffle(ordered)
    return ordered


def plan_distribution(
    applications: Sequence[ApplicationSnapshot],
    judges: Sequence[JudgeSnapshot],
    *,
    exclusions: Mapping[str, Iterable[str]] | None = None,
    seed: str | None = None,
) -> DistributionPlan:
    """Partition ``applications`` across ``judges``.

    Args:
        applications: Snapshot of the pool for this epoch.
        judges: Snapshot of the active judges for this epoch.
        exclusions: ``judge_id -> application ids`` the judge must never
            receive (declared conflicts of interest).
        seed: Optional seed for the in-sector permutation.

    Raises:
        NoActiveJudges: ``judges`` is empty.
        DistributionError: duplicate application or judge ids.
    """

    if not judges:
        raise NoActiveJudges("cannot distribute applications without active judges")

    order = sorted(judges, key=lambda judge: _stable_key(judge.created_at, judge.judge_id))
    judge_ids = [judge.judge_id for judge in order]
    if len(set(judge_ids)) != len(judge_ids):
        raise DistributionError("duplicate judge ids in snapshot")
    position = {judge_id: index for index, judge_id in enumerate(judge_ids)}
    excluded = {
        judge_id: frozenset(application_ids)
        for judge_id, application_ids in (exclusions or {}).items()
    }
    assignments: dict[str, list[str]] = {judge_id: [] for judge_id in judge_ids}

    by_sector: dict[str, list[ApplicationSnapshot]] = defaultdict(list)
    seen: set[str] = set()
    for application in applications:
        if application.application_id in seen:
            raise DistributionError(f"duplicate application id {application.application_id}")
        seen.add(application.application_id)
        by_sector[application.sector].append(application)

    deferred: list[str] = []
    uncovered: list[str] = []
    for sector in sorted(by_sector):
        sector_apps = _order_sector(by_sector[sector], sector, seed)
        qualified = [judge for judge in order if sector in judge.expertise_sectors]
        if not qualified:
            logger.warning(
                "no active judge covers sector %s; %s applications deferred to overflow",
                sector,
                len(sector_apps),
            )
            uncovered.append(sector)
            deferred.extend(app.application_id for app in sector_apps)
            continue
        base, extra = divmod(len(sector_apps), len(qualified))
        cursor = 0
        for index, judge in enumerate(qualified):
            size = base + (1 if index < extra else 0)
            for app in sector_apps[cursor : cursor + size]:
                if app.application_id in excluded.get(judge.judge_id, ()):
                    deferred.append(app.application_id)
                else:
                    assignments[judge.judge_id].append(app.application_id)
            cursor += size

    base, extra = divmod(len(seen), len(order))
    targets = {judge_id: base + (1 if index < extra else 0) for index, judge_id in enumerate(judge_ids)}

    excess: list[str] = []
    for judge_id in judge_ids:
        assigned = assignments[judge_id]
        target = targets[judge_id]
        if len(assigned) > target:
            excess.extend(assigned[target:])
            del assigned[target:]

    matched = frozenset(app_id for assigned in assignments.values() for app_id in assigned)

    def capacity(judge_id: str) -> int:
        return targets[judge_id] - len(assignments[judge_id])

    overflow: list[str] = []
    unassigned: list[str] = []
    for app_id in deferred + excess:
        eligible = [judge_id for judge_id in judge_ids if app_id not in excluded.get(judge_id, ())]
        if not eligible:
            unassigned.append(app_id)
            continue
        receiver = max(eligible, key=lambda judge_id: (capacity(judge_id), -position[judge_id]))
        if capacity(receiver) <= 0:
            receiver = min(eligible, key=lambda judge_id: (len(assignments[judge_id]), position[judge_id]))
        assignments[receiver].append(app_id)
        overflow.append(app_id)

    if unassigned:
        logger.warning("%s applications excluded for every judge and left unassigned", len(unassigned))

    over_capacity = [
        judge.judge_id
        for judge in order
        if judge.max_applications is not None and len(assignments[judge.judge_id]) > judge.max_applications
    ]
    if over_capacity:
        logger.info("%s judges assigned beyond their capacity hint", len(over_capacity))

    return DistributionPlan(
        assignments=assignments,
        targets=targets,
        judge_order=judge_ids,
        expertise_matched=matched,
        overflow=overflow,
        uncovered_sectors=uncovered,
        over_capacity=over_capacity,
        unassigned=unassigned,
    )


def distribute(
    applications: Sequence[ApplicationSnapshot],
    judges: Sequence[JudgeSnapshot],
    *,
    exclusions: Mapping[str, Iterable[str]] | None = None,
    seed: str | None = None,
) -> dict[str, list[str]]:
    """Return ``judge_id -> ordered application ids`` for one epoch."""

    return plan_distribution(applications, judges, exclusions=exclusions, seed=seed).assignments
