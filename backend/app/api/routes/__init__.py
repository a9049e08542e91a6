# backend/app/api/routes/__init__.py

from .admin import router as admin_router
from .comments import router as comments_router
from .daos import router as daos_router
from .health import router as health_router
from .notifications import router as notifications_router
from .tasks import router as tasks_router
from .users import router as users_router

routers = [
    health_router,
    daos_router,
    tasks_router,
    comments_router,
    notifications_router,
    users_router,
    admin_router,
]
