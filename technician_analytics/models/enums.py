"""
Enumeration definitions for the technician analytics backend.

All enums inherit from both `str` and `Enum` to ensure JSON serialization
compatibility with Pydantic models, enabling automatic serialization in API
responses.

Besides the categorical outputs (efficiency rating, route efficiency, data
source) this module holds the per-source status vocabularies of the three
case stores, since the completion statuses differ between stores.
"""

from enum import Enum
from typing import Dict, FrozenSet


class CaseSource(str, Enum):
    """
    Case store a record originated from.

    - individual: Individual-customer cases (table private_cases)
    - business: Business-customer cases (table business_cases)
    - contract: Contract-customer cases (table cases)
    """
    INDIVIDUAL = "individual"
    BUSINESS = "business"
    CONTRACT = "contract"


class EfficiencyRating(str, Enum):
    """
    Categorical classification of utilization percent.

    - low: utilization below the low threshold (default 60%)
    - optimal: between the thresholds, both bounds inclusive
    - overbooked: utilization above the overbooked threshold (default 95%)
    """
    LOW = "low"
    OPTIMAL = "optimal"
    OVERBOOKED = "overbooked"


class RouteEfficiency(str, Enum):
    """
    Four-level classification of a route optimization score.

    - excellent: score >= 85
    - good: score >= 75
    - average: 60 <= score < 75
    - poor: score < 60
    """
    EXCELLENT = "excellent"
    GOOD = "good"
    AVERAGE = "average"
    POOR = "poor"


class RouteDataSource(str, Enum):
    """
    Provenance of the position data behind a route optimization.

    - telemetry: live vehicle position from the telemetry provider
    - estimated: provider had no position for the vehicle; heuristic only
    - error: provider call failed; heuristic only
    """
    TELEMETRY = "telemetry"
    ESTIMATED = "estimated"
    ERROR = "error"


# =============================================================================
# Case Store Status Vocabularies
# Individual and business stores share a single completion status; the
# contract store uses three equivalent ones.
# =============================================================================

COMPLETED_STATUS = "Avslutat"

COMPLETED_STATUSES: Dict[CaseSource, FrozenSet[str]] = {
    CaseSource.INDIVIDUAL: frozenset({COMPLETED_STATUS}),
    CaseSource.BUSINESS: frozenset({COMPLETED_STATUS}),
    CaseSource.CONTRACT: frozenset({"Avslutat", "Genomförd", "Klar"}),
}

# Pest category used for records whose store has no pest type
UNKNOWN_PEST_TYPE = "unknown"
