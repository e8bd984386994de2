"""REST API 라우터"""
from .admin import router as admin_router
from .analytics import router as analytics_router
from .auth import router as auth_router
from .incomes import router as incomes_router
from .notifications import router as notifications_router
from .properties import router as properties_router
from .search import router as search_router
from .shares import router as shares_router
from .tokens import router as tokens_router
from .valuations import router as valuations_router

routers = [
    auth_router,
    properties_router,
    tokens_router,
    shares_router,
    analytics_router,
    notifications_router,
    search_router,
    admin_router,
    valuations_router,
    incomes_router,
]

__all__ = ["routers"]
