"""
Technician Analytics Backend Package.

FastAPI service computing performance and routing analytics for the
technicians of a pest-control operations portal: cohort rankings, monthly
revenue trends, pest-type specialization, utilization ratings, route
optimization scores and technician-versus-cohort comparisons.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, database, dependencies and exceptions
    - models: Pydantic schemas and enums
    - services: Aggregation, scoring and orchestration services
    - sql: Parameterized SQL queries
"""

__version__ = "1.0.0"
