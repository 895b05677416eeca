from __future__ import annotations

from ratekeeper.api.routes.api import router as api_router
from ratekeeper.api.routes.health import router as health_router

__all__ = ["api_router", "health_router"]
