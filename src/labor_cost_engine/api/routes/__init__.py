"""API routes."""

from labor_cost_engine.api.routes.audit import router as audit_router
from labor_cost_engine.api.routes.bulk import router as bulk_router
from labor_cost_engine.api.routes.health import router as health_router
from labor_cost_engine.api.routes.rates import router as rates_router
from labor_cost_engine.api.routes.time_entries import router as time_entries_router

__all__ = [
    "audit_router",
    "bulk_router",
    "health_router",
    "rates_router",
    "time_entries_router",
]
