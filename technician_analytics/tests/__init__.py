'''
Technician Analytics Backend Test Suite

Test Modules:
-------------
- test_source_fetcher.py: Store rows -> canonical records
  - Normalization of the three store schemas
  - Partial results when a case store is unavailable
  - CaseRecordStore query arguments and error wrapping

- test_aggregation.py: Snapshot fold and ranking
  - Totals equal the per-source sums
  - Order independence, mergeable partial folds
  - Malformed record dropping, zero snapshots
  - Revenue ranking with technician id tie-break

- test_trends.py / test_pest_specialization.py: Monthly trend and pest rows
- test_utilization.py / test_scheduling.py: Work hours and ratings
- test_geographic.py: Route heuristic and distance estimate
- test_comparison.py: Cohort deltas and recommendation rules
- test_fanout.py: Bounded fan-out with timeouts
- test_telemetry.py: Vehicle telemetry client over httpx.MockTransport
- test_performance_engine.py: Orchestration over in-memory fakes
- test_api.py: FastAPI routes and HTTP error mapping

Running Tests:
--------------
    pip install -e ".[test]"
    pytest -v

Configuration:
--------------
See conftest.py for shared fixtures and test configuration.
'''

__all__ = []
