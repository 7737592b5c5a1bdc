"""API routers."""

from dreik.routers.account import router as account_router
from dreik.routers.auth import router as auth_router
from dreik.routers.workouts import router as workouts_router

__all__ = ["auth_router", "account_router", "workouts_router"]
