"""
Route optimization scoring for field technicians.

The score is a heuristic over a technician's bookings for one day:

    score = baseline (70)
          + 15 if more than 6 cases
          + 10 if average distance per case is below 8 km (only with cases)
          +  5 if the position data came from live telemetry
    clamped to [0, 100]

Classification:
- excellent: score >= 85
- good: score >= 75
- average: 60 <= score < 75
- poor: score < 60

When no measured distance is available the total distance comes from a
DistanceEstimator: case_count * uniform(min_km, max_km). The estimator owns
the only source of randomness in the engine; seed it (or inject a numpy
Generator) for reproducible scores.

Key Components:
- RouteScoringConfig: Weights and thresholds of the heuristic
- DistanceEstimator: Seeded per-case distance model (numpy Generator)
- GeographicOptimizer.optimize: Score one technician-day
- classify_route: Score -> RouteEfficiency
- summarize_routes: Totals over a day's routes
"""

from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, Optional

import numpy as np

from technician_analytics.models.enums import RouteDataSource, RouteEfficiency
from technician_analytics.models.schemas import RouteOptimization, RouteSummary


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True)
class RouteScoringConfig:
    """
    Weights and thresholds of the route heuristic.

    Attributes:
        baseline: Starting score.
        case_density_threshold: Case count that must be exceeded for the
            density bonus.
        case_density_bonus: Bonus for a dense day.
        short_distance_km: Average km per case below which the distance
            bonus applies.
        short_distance_bonus: Bonus for short average distances.
        telemetry_bonus: Bonus when live telemetry backed the route.
        excellent_min: Minimum score for 'excellent'.
        good_min: Minimum score for 'good'.
        average_min: Minimum score for 'average'; below is 'poor'.
    """
    baseline: float = 70.0
    case_density_threshold: int = 6
    case_density_bonus: float = 15.0
    short_distance_km: float = 8.0
    short_distance_bonus: float = 10.0
    telemetry_bonus: float = 5.0
    excellent_min: float = 85.0
    good_min: float = 75.0
    average_min: float = 60.0


DEFAULT_SCORING = RouteScoringConfig()


# =============================================================================
# Distance Estimate
# =============================================================================


class DistanceEstimator:
    """
    Per-case distance model used when no measured distance exists.

    Args:
        min_km: Lower bound of the per-case distance.
        max_km: Upper bound of the per-case distance.
        seed: Seed for a fresh numpy Generator; ignored when rng is given.
        rng: Generator to draw from.

    Raises:
        ValueError: If the bounds are negative or reversed.
    """

    def __init__(
        self,
        min_km: float = 8.0,
        max_km: float = 14.0,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        if min_km < 0 or max_km < min_km:
            raise ValueError(f"Invalid distance bounds: min_km={min_km}, max_km={max_km}")
        self.min_km = min_km
        self.max_km = max_km
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def estimate(self, case_count: int) -> float:
        """Estimated total km for a day with case_count cases."""
        if case_count <= 0:
            return 0.0
        per_case = float(self.rng.uniform(self.min_km, self.max_km))
        return case_count * per_case


# =============================================================================
# Scoring
# =============================================================================


def classify_route(score: float, config: RouteScoringConfig = DEFAULT_SCORING) -> RouteEfficiency:
    """Map an optimization score onto its efficiency class."""
    if score >= config.excellent_min:
        return RouteEfficiency.EXCELLENT
    if score >= config.good_min:
        return RouteEfficiency.GOOD
    if score >= config.average_min:
        return RouteEfficiency.AVERAGE
    return RouteEfficiency.POOR


class GeographicOptimizer:
    """
    Scores technician routes.

    Args:
        config: Heuristic weights and thresholds.
        estimator: Distance model for days without a measured distance.
    """

    def __init__(
        self,
        config: RouteScoringConfig = DEFAULT_SCORING,
        estimator: Optional[DistanceEstimator] = None,
    ):
        self.config = config
        self.estimator = estimator if estimator is not None else DistanceEstimator()

    def score(
        self,
        case_count: int,
        avg_distance_per_case_km: float,
        data_source: RouteDataSource,
    ) -> float:
        """Heuristic score for the given day, clamped to [0, 100]."""
        config = self.config
        score = config.baseline

        if case_count > config.case_density_threshold:
            score += config.case_density_bonus
        if case_count > 0 and avg_distance_per_case_km < config.short_distance_km:
            score += config.short_distance_bonus
        if data_source is RouteDataSource.TELEMETRY:
            score += config.telemetry_bonus

        return float(min(100.0, max(0.0, score)))

    def optimize(
        self,
        technician_id: str,
        day: date,
        case_count: int,
        data_source: RouteDataSource,
        total_distance_km: Optional[float] = None,
        name: str = "",
    ) -> RouteOptimization:
        """
        Score one technician's route for one day.

        Args:
            technician_id: Technician identifier.
            day: Day of the route.
            case_count: Cases booked that day.
            data_source: Provenance of the position data.
            total_distance_km: Measured total distance; estimated when None.
            name: Technician display name.

        Returns:
            RouteOptimization with distance, score and classification.

        Raises:
            ValueError: If case_count or the distance is negative.
        """
        if case_count < 0:
            raise ValueError("case_count must be non-negative")
        if total_distance_km is None:
            total_distance_km = self.estimator.estimate(case_count)
        if total_distance_km < 0:
            raise ValueError("total_distance_km must be non-negative")

        avg_distance = total_distance_km / case_count if case_count > 0 else 0.0
        score = self.score(case_count, avg_distance, data_source)

        return RouteOptimization(
            technician_id=technician_id,
            name=name,
            date=day,
            total_cases=case_count,
            total_distance_km=round(total_distance_km, 2),
            avg_distance_per_case_km=round(avg_distance, 2),
            optimization_score=score,
            route_efficiency=classify_route(score, self.config),
            data_source=data_source,
        )


def summarize_routes(routes: Iterable[RouteOptimization]) -> RouteSummary:
    """Totals, mean score and class/provenance counts over routes."""
    routes = list(routes)
    source_counts: Dict[RouteDataSource, int] = {source: 0 for source in RouteDataSource}
    for route in routes:
        source_counts[route.data_source] += 1

    return RouteSummary(
        technician_count=len(routes),
        total_distance_km=round(sum(r.total_distance_km for r in routes), 2),
        avg_optimization_score=(
            round(float(np.mean([r.optimization_score for r in routes])), 2) if routes else 0.0
        ),
        excellent_count=sum(1 for r in routes if r.route_efficiency is RouteEfficiency.EXCELLENT),
        poor_count=sum(1 for r in routes if r.route_efficiency is RouteEfficiency.POOR),
        data_source_counts=source_counts,
    )
