"""
Technician analytics API package initialization.

This package contains FastAPI router modules:
- performance: Cohort performance, monthly trend, pest specialization, KPI
  and technician comparison
- coordinator: Utilization and route optimization for field technicians
- errors: Mapping of analytics errors onto HTTP errors
"""
