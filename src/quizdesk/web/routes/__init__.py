"""Route handlers for Web API."""

from quizdesk.web.routes.health import router as health_router
from quizdesk.web.routes.tabs import router as tabs_router
from quizdesk.web.routes.portal import router as portal_router

__all__ = [
    "health_router",
    "tabs_router",
    "portal_router",
]
