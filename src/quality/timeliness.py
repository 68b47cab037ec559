"""
Timeliness Dimension
====================

Compares recorded stage durations (milliseconds) against per-stage targets.

Points per stage by ``duration / target``:

    <= 1.0  -> 1.0
    <= 1.5  -> 0.8
    <= 2.0  -> 0.6
    <= 3.0  -> 0.3
    >  3.0  -> 0.0

The score is the mean over stages. ``details["bottleneck"]`` always names
the slowest stage relative to its target. A ``bottleneck`` Issue is raised
only when that stage is over its target; a run where every stage meets its
target carries no bottleneck Issue.
"""

from typing import Any, Dict, List, Tuple

from src.quality.base import DimensionScorer, ScoringContext
from src.shared.enums import DimensionName, IssueType, Severity
from src.shared.models import Issue

NO_METRICS_SCORE = 0.5

# (max ratio, points), checked in order
RATIO_POINTS: List[Tuple[float, float]] = [
    (1.0, 1.0),
    (1.5, 0.8),
    (2.0, 0.6),
    (3.0, 0.3),
]

# Aggregate timings reported alongside stages but not scored as stages
AGGREGATE_KEYS = frozenset({"total"})


def points_for(ratio: float) -> float:
    for limit, points in RATIO_POINTS:
        if ratio <= limit:
            return points
    return 0.0


class TimelinessScorer(DimensionScorer):
    """Stage durations against targets."""

    name = DimensionName.TIMELINESS

    def evaluate(self, context: ScoringContext) -> Tuple[float, List[Issue], Dict[str, Any]]:
        if not context.has_metrics:
            return NO_METRICS_SCORE, [Issue(
                type=IssueType.METRICS_UNAVAILABLE,
                severity=Severity.WARNING,
                suggestion="Record per-stage durations to assess timeliness",
            )], {}

        targets = context.options.timeliness
        stages = {
            stage: float(duration)
            for stage, duration in context.perf_metrics.items()
            if stage not in AGGREGATE_KEYS and duration is not None
        }
        if not stages:
            stages = {k: float(v) for k, v in context.perf_metrics.items() if v is not None}

        issues: List[Issue] = []
        ratios: Dict[str, float] = {}
        points: Dict[str, float] = {}

        for stage in sorted(stages):
            target = targets.target_for(stage)
            ratio = stages[stage] / target if target > 0 else 0.0
            ratios[stage] = ratio
            points[stage] = points_for(ratio)
            if ratio > 1.0:
                issues.append(Issue(
                    type=IssueType.SLOW_STAGE,
                    severity=Severity.MINOR if ratio <= 2.0 else Severity.MAJOR,
                    field=stage,
                    suggestion=f"Stage '{stage}' took {stages[stage]:.0f}ms against a {target:.0f}ms target",
                    details={"duration_ms": round(stages[stage], 3), "target_ms": target},
                ))

        bottleneck = max(sorted(ratios), key=lambda s: ratios[s]) if ratios else None
        if bottleneck is not None and ratios[bottleneck] > 1.0:
            issues.append(Issue(
                type=IssueType.BOTTLENECK,
                severity=Severity.WARNING,
                field=bottleneck,
                suggestion=f"'{bottleneck}' is the slowest stage ({ratios[bottleneck]:.1f}x its target); optimize it first",
                details={"ratio": round(ratios[bottleneck], 4)},
            ))

        score = sum(points.values()) / len(points) if points else NO_METRICS_SCORE
        details = {
            "stages": {s: round(p, 4) for s, p in points.items()},
            "bottleneck": bottleneck,
        }
        return score, issues, details
