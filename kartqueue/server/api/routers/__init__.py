"""API routers exposed by the server package."""

from .v1.cases import router as cases_router
from .v1.events import router as events_router
from .v1.health import router as health_router
from .v1.karts import router as karts_router
from .v1.observability import router as observability_router
from .v1.orders import router as orders_router
from .v1.users import router as users_router

__all__ = [
	"cases_router",
	"events_router",
	"health_router",
	"karts_router",
	"observability_router",
	"orders_router",
	"users_router",
]
