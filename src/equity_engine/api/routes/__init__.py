"""API routes."""

from equity_engine.api.routes.allocations import router as allocations_router
from equity_engine.api.routes.board_approvals import router as board_approvals_router
from equity_engine.api.routes.health import router as health_router
from equity_engine.api.routes.periods import router as periods_router

__all__ = [
    "allocations_router",
    "board_approvals_router",
    "health_router",
    "periods_router",
]
